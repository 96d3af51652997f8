from fastapi import APIRouter, Depends, Query, Request

from progress_api.core.deps import get_api_principal, get_env
from progress_api.core.env import ReportingEnv
from progress_api.core.errors import MethodNotAllowedError
from progress_api.core.rate_limit import DailyRateLimiter
from progress_api.core.security import ApiPrincipal
from progress_api.repositories.request_log import log_api_access
from progress_api.schemas.common import ErrorBody
from progress_api.schemas.progress import CourseProgressIn
from progress_api.services.progress_service import ProgressService

router = APIRouter()

ENDPOINT_NAME = 'get_course_progress'
ERROR_RESPONSES = {code: {'model': ErrorBody} for code in (400, 401, 403, 405, 429, 503)}


def _serve(request: Request, env: ReportingEnv, principal: ApiPrincipal, limit: int, offset: int) -> list[dict]:
    service = ProgressService(env)
    service.validate_paging(limit, offset)
    DailyRateLimiter(env).check(principal.userid)
    log_api_access(
        env.db,
        userid=principal.userid,
        companyid=principal.companyid,
        endpoint=ENDPOINT_NAME,
        now=env.now(),
        ipaddress=request.client.host if request.client else '',
        useragent=request.headers.get('user-agent', ''),
        request_data={'limit': limit, 'offset': offset},
    )
    return service.get_course_progress(principal, limit=limit, offset=offset)


@router.post('/course-progress', responses=ERROR_RESPONSES)
def course_progress(
    request: Request,
    payload: CourseProgressIn | None = None,
    env: ReportingEnv = Depends(get_env),
    principal: ApiPrincipal = Depends(get_api_principal),
):
    """Course progress rows for the caller's company; the field set follows company settings."""
    body = payload or CourseProgressIn()
    return _serve(request, env, principal, body.limit, body.offset)


def _get_method_enabled(env: ReportingEnv = Depends(get_env)) -> None:
    if not env.settings.allow_get_method:
        raise MethodNotAllowedError(details={'allowed': ['POST']})


@router.get('/course-progress', responses=ERROR_RESPONSES)
def course_progress_get(
    request: Request,
    limit: int = Query(default=100),
    offset: int = Query(default=0),
    _enabled: None = Depends(_get_method_enabled),
    env: ReportingEnv = Depends(get_env),
    principal: ApiPrincipal = Depends(get_api_principal),
):
    return _serve(request, env, principal, limit, offset)
