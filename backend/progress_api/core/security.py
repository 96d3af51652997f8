import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from fastapi import HTTPException, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from progress_api.core.config import settings
from progress_api.core.errors import AccessDeniedError, AuthenticationError
from progress_api.models.source import CompanyUser, ExternalToken, LmsUser

ROLE_PERMISSIONS: Dict[str, List[str]] = {
    'admin': ['sync:read', 'sync:run', 'settings:read', 'settings:write', 'system:read'],
    'operator': ['sync:read', 'sync:run', 'settings:read', 'system:read'],
    'viewer': ['sync:read', 'settings:read'],
}


@dataclass(frozen=True)
class ApiPrincipal:
    userid: int
    companyid: int
    token_hash: str


def hash_token(token: str) -> str:
    return hashlib.sha256(str(token).encode('utf-8')).hexdigest()


def resolve_api_principal(db: Session, token: str | None, now: int) -> ApiPrincipal:
    """Map a raw bearer token to the (user, company) it acts for."""
    raw = str(token or '').strip()
    if not raw:
        raise AuthenticationError('API token is required', error_code='MISSING_TOKEN')
    if len(raw) < settings.token_min_length:
        raise AuthenticationError('API token format is invalid', error_code='INVALID_TOKEN_FORMAT')

    token_hash = hash_token(raw)
    row = (
        db.query(ExternalToken)
        .filter(ExternalToken.token_hash == token_hash, ExternalToken.service == settings.api_service_name)
        .first()
    )
    if row is None:
        raise AuthenticationError('API token is invalid', error_code='INVALID_TOKEN')
    if row.validuntil and int(row.validuntil) < int(now):
        raise AuthenticationError('API token has expired', error_code='EXPIRED_TOKEN')

    user = db.query(LmsUser).filter(LmsUser.id == row.userid).first()
    if user is None or user.deleted or user.suspended:
        raise AccessDeniedError('Token user is deleted or suspended', error_code='INVALID_USER')

    membership = (
        db.query(CompanyUser)
        .filter(CompanyUser.userid == user.id)
        .order_by(CompanyUser.id.asc())
        .first()
    )
    if membership is None:
        raise AccessDeniedError('Token user is not associated with a company', error_code='NO_COMPANY_ASSOCIATION')

    return ApiPrincipal(userid=int(user.id), companyid=int(membership.companyid), token_hash=token_hash)


def create_access_token(data: dict, expires_minutes: int | None = None):
    to_encode = data.copy()
    role = str(to_encode.get('role') or 'viewer')
    to_encode.setdefault('permissions', ROLE_PERMISSIONS.get(role, []))
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)
    to_encode.update({'exp': expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str):
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={'error_code': 'UNAUTHORIZED', 'message': 'Invalid operator token', 'details': None},
        )


def assert_permission(payload: dict, required: str):
    perms = payload.get('permissions', [])
    if required not in perms:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={'error_code': 'FORBIDDEN', 'message': 'Insufficient permission', 'details': {'required': required}},
        )
