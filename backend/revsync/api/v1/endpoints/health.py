import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from revsync.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get('/health')
def health(request: Request):
    """
    Health check. Returns 200 with db_ok true when DB is reachable.
    Returns 503 when DB is unreachable.
    """
    db_ok = False
    db = request.app.state.session_factory()
    try:
        db.execute(text('SELECT 1'))
        db_ok = True
    except Exception:
        logger.warning('health check database probe failed', exc_info=True)
    finally:
        db.close()
    if not db_ok:
        return JSONResponse(
            status_code=503,
            content={'ok': False, 'service': settings.app_name, 'db_ok': False, 'message': 'Database unreachable'},
        )
    return {'ok': True, 'service': settings.app_name, 'db_ok': True}
