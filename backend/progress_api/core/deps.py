from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from progress_api.core.config import settings
from progress_api.core.env import ReportingEnv, system_clock
from progress_api.core.errors import ApiError
from progress_api.core.security import ApiPrincipal, assert_permission, decode_token, resolve_api_principal
from progress_api.db.session import get_db
from progress_api.repositories.request_log import log_security_event

bearer_scheme = HTTPBearer(auto_error=False)


def get_clock():
    return system_clock


def get_env(db: Session = Depends(get_db), clock=Depends(get_clock)) -> ReportingEnv:
    return ReportingEnv(db=db, settings=settings, clock=clock)


def get_api_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    env: ReportingEnv = Depends(get_env),
) -> ApiPrincipal:
    token = credentials.credentials if credentials is not None else None
    try:
        return resolve_api_principal(env.db, token, env.now())
    except ApiError as exc:
        if exc.error_code in ('INVALID_TOKEN', 'EXPIRED_TOKEN'):
            log_security_event(
                env.db,
                userid=0,
                companyid=0,
                event=exc.error_code.lower(),
                now=env.now(),
                ipaddress=request.client.host if request.client else '',
            )
        raise


def get_token_payload(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)):
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={'error_code': 'UNAUTHORIZED', 'message': 'Operator token required', 'details': None},
        )
    return decode_token(credentials.credentials)


def require_permission(permission: str):
    def _checker(payload: dict = Depends(get_token_payload)):
        assert_permission(payload, permission)
        return payload

    return _checker
