import logging

from fastapi import APIRouter, Depends

from revsync.core.config import settings
from revsync.core.deps import cron_rate_limiter, get_signal_detector, get_sync_service, require_cron
from revsync.core.security import CRON_ACTOR
from revsync.schemas.signals import DetectSignalsOut
from revsync.schemas.sync import SyncRunOut
from revsync.services.signal_detector import RevenueSignalDetector
from revsync.services.sync_service import SyncService, TriggerStatus

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get('/sync-all', response_model=SyncRunOut, status_code=202)
def cron_sync_all(
    _rl=Depends(cron_rate_limiter),
    _cron=Depends(require_cron),
    service: SyncService = Depends(get_sync_service),
):
    """Scheduled refresh of every active connection; fresh accounts are skipped by the worker."""
    connections = service.cache.active_connections(limit=settings.cron_sync_max_connections)
    results = service.trigger_connections(connections, force=False, actor=CRON_ACTOR)
    triggered = sum(1 for r in results if r['status'] == TriggerStatus.TRIGGERED)
    logger.info('cron sync-all triggered=%s total=%s', triggered, len(results))
    return {
        'success': all(r['status'] != TriggerStatus.ERROR for r in results),
        'message': f'Sync started for {triggered} of {len(results)} connection(s)',
        'results': results,
    }


@router.get('/detect-signals', response_model=DetectSignalsOut)
def cron_detect_signals(
    _rl=Depends(cron_rate_limiter),
    _cron=Depends(require_cron),
    detector: RevenueSignalDetector = Depends(get_signal_detector),
):
    return {'success': True, 'processed': detector.detect_for_all_users()}
