from fastapi import APIRouter, Depends, HTTPException, Query

from revsync.core.deps import get_sync_service, require_permission, sync_rate_limiter
from revsync.schemas.sync import SyncJobOut, SyncRunIn, SyncRunOut, SyncStatusOut
from revsync.services.sync_service import SyncService, TriggerStatus

router = APIRouter()


def _sees_all_accounts(user: dict) -> bool:
    return bool(user.get('cron')) or str(user.get('role') or '') == 'admin'


def _not_found(message: str) -> HTTPException:
    return HTTPException(status_code=404, detail={'error_code': 'NOT_FOUND', 'message': message, 'details': None})


def _owned_connection(service: SyncService, user: dict, *, connection_id: int | None = None, account_id: str | None = None) -> dict:
    conn = service.cache.get_connection(connection_id=connection_id, account_id=account_id)
    if conn is None or (not _sees_all_accounts(user) and conn['user_id'] != str(user.get('sub'))):
        raise _not_found('No active billing connection found')
    return conn


@router.post('/run', response_model=SyncRunOut, status_code=202)
def run_sync(
    payload: SyncRunIn,
    _rl=Depends(sync_rate_limiter),
    user=Depends(require_permission('sync:write')),
    service: SyncService = Depends(get_sync_service),
):
    actor = str(user.get('sub', 'system'))
    if payload.connection_id is not None or payload.account_id is not None:
        connections = [
            _owned_connection(service, user, connection_id=payload.connection_id, account_id=payload.account_id)
        ]
    else:
        owner = None if _sees_all_accounts(user) else actor
        connections = service.cache.active_connections(user_id=owner)
    if not connections:
        return {'success': True, 'message': 'No active billing connections to sync', 'results': []}

    results = service.trigger_connections(connections, force=payload.force, actor=actor)
    triggered = sum(1 for r in results if r['status'] == TriggerStatus.TRIGGERED)
    return {
        'success': all(r['status'] != TriggerStatus.ERROR for r in results),
        'message': f'Sync started for {triggered} of {len(results)} connection(s)',
        'results': results,
    }


@router.get('/status', response_model=SyncStatusOut)
def sync_status(
    account_id: str = Query(min_length=1, max_length=64),
    user=Depends(require_permission('sync:read')),
    service: SyncService = Depends(get_sync_service),
):
    account_id = account_id.strip()
    if not _sees_all_accounts(user):
        _owned_connection(service, user, account_id=account_id)
    return service.status(account_id).to_dict()


@router.get('/jobs/{job_id}', response_model=SyncJobOut)
def sync_job(
    job_id: str,
    user=Depends(require_permission('sync:read')),
    service: SyncService = Depends(get_sync_service),
):
    job = service.job(job_id.strip())
    if job is None:
        raise _not_found('Sync job not found')
    if not _sees_all_accounts(user):
        _owned_connection(service, user, account_id=job['account_id'])
    return job
