import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from progress_api.api.v1.router import router as v1_router
from progress_api.core.config import settings
from progress_api.core.errors import ApiError
from progress_api.core.logging_config import log_request, structured_log
from progress_api.core.prod_check import validate_production_config
from progress_api.core.request_metrics import observe
from progress_api.db.base import Base
from progress_api.db.bootstrap import bootstrap_database_with_write_probe
from progress_api.db.session import engine

validate_production_config()

if settings.app_env != 'prod' and not settings.db_bootstrap_on_start:
    Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.app_name, version='1.0.0')

if settings.cors_origins and settings.cors_origins.strip() != '*':
    origins = [o.strip() for o in settings.cors_origins.split(',') if o.strip()]
else:
    origins = ['*']


def _cors_error_headers(request: Request) -> dict[str, str]:
    origin = request.headers.get('origin', '').strip()
    if not origin:
        return {}
    if origin not in origins and '*' not in origins:
        return {}
    return {
        'access-control-allow-origin': origin,
        'vary': 'Origin',
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=['GET', 'POST', 'PUT'],
    allow_headers=['*'],
)


def _trace_id(request: Request) -> str:
    return getattr(request.state, 'trace_id', None) or request.headers.get('x-trace-id') or str(uuid.uuid4())


@app.middleware('http')
async def trace_and_logging(request: Request, call_next):
    trace_id = request.headers.get('x-trace-id') or str(uuid.uuid4())
    request.state.trace_id = trace_id
    start = time.time()
    try:
        response = await call_next(request)
        latency = round((time.time() - start) * 1000, 2)
        observe(request.url.path, latency, response.status_code)
        log_request(request.url.path, request.method, trace_id, latency, response.status_code)
        response.headers['x-trace-id'] = trace_id
        response.headers['x-latency-ms'] = str(latency)
        return response
    except Exception as exc:
        latency = round((time.time() - start) * 1000, 2)
        observe(request.url.path, latency, 500)
        structured_log(
            'error', 'request_failed',
            trace_id=trace_id, duration_ms=latency,
            endpoint=f'{request.method} {request.url.path}',
            error=repr(exc),
        )
        body = {'error_code': 'INTERNAL_ERROR', 'message': 'Internal server error', 'details': None, 'trace_id': trace_id}
        headers = {'x-trace-id': trace_id, 'x-latency-ms': str(latency)}
        headers.update(_cors_error_headers(request))
        return JSONResponse(status_code=500, content=body, headers=headers)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    trace_id = _trace_id(request)
    if exc.status_code >= 500:
        structured_log('error', 'api_error', trace_id=trace_id, error_code=exc.error_code, path=request.url.path)
    body = {**exc.to_body(), 'trace_id': trace_id}
    headers = {}
    if exc.status_code == 429 and isinstance(exc.details, dict) and exc.details.get('retry_after') is not None:
        headers['retry-after'] = str(int(exc.details['retry_after']))
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    trace_id = _trace_id(request)
    if isinstance(exc.detail, dict):
        body = {
            'error_code': str(exc.detail.get('error_code') or 'HTTP_ERROR'),
            'message': str(exc.detail.get('message') or 'HTTP Error'),
            'details': exc.detail.get('details'),
            'trace_id': trace_id,
        }
    else:
        body = {'error_code': 'HTTP_ERROR', 'message': str(exc.detail), 'details': None, 'trace_id': trace_id}
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    body = {
        'error_code': 'INVALID_PAYLOAD',
        'message': 'Invalid request payload',
        'details': {'errors': [{k: v for k, v in err.items() if k != 'ctx'} for err in exc.errors()]},
        'trace_id': _trace_id(request),
    }
    return JSONResponse(status_code=422, content=body)


app.include_router(v1_router)


@app.on_event('startup')
def _bootstrap_db_on_startup() -> None:
    if settings.db_bootstrap_on_start:
        bootstrap_database_with_write_probe()
