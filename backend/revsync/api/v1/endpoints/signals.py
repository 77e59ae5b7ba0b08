from fastapi import APIRouter, Depends, Query

from revsync.core.deps import get_signal_detector, require_permission
from revsync.schemas.signals import SignalListOut
from revsync.services.signal_detector import RevenueSignalDetector

router = APIRouter()


@router.get('', response_model=SignalListOut)
def list_signals(
    limit: int = Query(default=50, ge=1, le=500),
    user=Depends(require_permission('signals:read')),
    detector: RevenueSignalDetector = Depends(get_signal_detector),
):
    user_id = str(user.get('sub'))
    return {'user_id': user_id, 'signals': detector.list_signals(user_id, limit=limit)}
