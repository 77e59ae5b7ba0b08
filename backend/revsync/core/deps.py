from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from revsync.core.config import settings
from revsync.core.rate_limit import SlidingWindowRateLimiter, caller_key, retry_after_header
from revsync.core.security import assert_permission, cron_identity, decode_token, is_cron_secret

bearer_scheme = HTTPBearer(auto_error=False)
sync_limiter = SlidingWindowRateLimiter(settings.sync_rate_limit, settings.sync_rate_window_seconds)
cron_limiter = SlidingWindowRateLimiter(settings.sync_rate_limit, settings.sync_rate_window_seconds)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={'error_code': 'UNAUTHORIZED', 'message': message, 'details': None},
    )


def get_token_payload(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)):
    """Resolve the caller from either a user bearer token or the cron shared secret."""
    if credentials is None:
        raise _unauthorized('Missing token')
    if is_cron_secret(credentials.credentials):
        return cron_identity()
    return decode_token(credentials.credentials)


def require_permission(permission: str):
    def _checker(payload: dict = Depends(get_token_payload)):
        assert_permission(payload, permission)
        return payload

    return _checker


def require_cron(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)):
    if credentials is None or not is_cron_secret(credentials.credentials):
        raise _unauthorized('Cron secret required')
    return cron_identity()


def get_sync_service(request: Request):
    return request.app.state.sync_service


def get_signal_detector(request: Request):
    return request.app.state.signal_detector


def rate_limited(limiter: SlidingWindowRateLimiter, scope: str):
    """Dependency charging one request against the caller's budget in `limiter`."""
    def _dependency(payload: dict = Depends(get_token_payload)):
        wait = limiter.hit(f'{scope}:{caller_key(payload)}')
        if wait <= 0:
            return payload
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                'error_code': 'RATE_LIMITED',
                'message': 'Too many requests',
                'details': {
                    'limit': limiter.limit,
                    'window_seconds': limiter.window_seconds,
                    'scope': scope,
                },
            },
            headers=retry_after_header(wait),
        )

    return _dependency


sync_rate_limiter = rate_limited(sync_limiter, 'sync')
cron_rate_limiter = rate_limited(cron_limiter, 'cron')
