import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from fastapi import HTTPException, status
from jose import JWTError, jwt

from revsync.core.config import settings

CRON_ACTOR = 'cron'

ROLE_PERMISSIONS: Dict[str, List[str]] = {
    'admin': ['sync:read', 'sync:write', 'signals:read', 'system:read'],
    'merchant': ['sync:read', 'sync:write', 'signals:read'],
    'viewer': ['sync:read', 'signals:read'],
}


def permissions_for_role(role: str) -> List[str]:
    return list(ROLE_PERMISSIONS.get(str(role or '').strip().lower(), []))


def create_access_token(data: dict, expires_minutes: int | None = None):
    """Issue a bearer token. Session handling lives outside this service; this is used by tooling and tests."""
    to_encode = data.copy()
    if 'permissions' not in to_encode and 'role' in to_encode:
        to_encode['permissions'] = permissions_for_role(to_encode['role'])
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
            detail={'error_code': 'UNAUTHORIZED', 'message': 'Invalid token', 'details': None},
        )


def is_cron_secret(token: str | None) -> bool:
    expected = str(settings.cron_secret or '')
    if not token or not expected:
        return False
    return secrets.compare_digest(token.encode('utf-8'), expected.encode('utf-8'))


def cron_identity() -> dict:
    return {'sub': CRON_ACTOR, 'role': 'admin', 'permissions': permissions_for_role('admin'), 'cron': True}


def assert_permission(payload: dict, required: str):
    perms = payload.get('permissions', [])
    if required not in perms:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={'error_code': 'FORBIDDEN', 'message': 'Insufficient permission', 'details': {'required': required}},
        )
