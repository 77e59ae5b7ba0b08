from __future__ import annotations

import logging
import socket
import threading
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.orm import sessionmaker

from revsync.core.config import settings
from revsync.db.base import utcnow
from revsync.repositories.billing_cache import BillingCacheRepository
from revsync.repositories.status_store import StatusStore, SyncStage, SyncStatusView
from revsync.repositories.sync_queue import JobStatus, SyncQueue
from revsync.services.backoff import BillingAPIError
from revsync.services.billing_client import SafeBillingClient, build_billing_client
from revsync.services.metrics import compute_metrics, is_fresh, subscription_mrr

logger = logging.getLogger(__name__)

_MAX_ERROR_MESSAGE = 300

ClientFactory = Callable[[str], SafeBillingClient]


def worker_group_name(role: str) -> str:
    """
    Name under which a process claims queue jobs, e.g. `billing-api-1:api`.

    Stable across restarts of the same process and distinct between processes
    sharing the queue; set SYNC_WORKER_NAME when several run on one host.
    """
    base = (settings.sync_worker_name or '').strip() or socket.gethostname()
    return f'{base}:{role}'


class TriggerStatus:
    TRIGGERED = 'triggered'
    ALREADY_SYNCING = 'already_syncing'
    ERROR = 'error'


def _from_epoch(value: Any) -> datetime | None:
    if value in (None, '', 0):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _ref_id(value: Any) -> str | None:
    """Expandable references arrive either as an id string or as an embedded object."""
    if isinstance(value, dict):
        return str(value.get('id') or '') or None
    return str(value) if value else None


def _subscription_row(account_id: str, sub: dict[str, Any], synced_at: datetime) -> dict[str, Any]:
    items = ((sub.get('items') or {}).get('data')) or []
    item = items[0] if items else {}
    price = (item or {}).get('price') or {}
    product = price.get('product')
    plan_name = product.get('name') if isinstance(product, dict) else price.get('nickname')
    return {
        'account_id': account_id,
        'subscription_id': str(sub['id']),
        'customer_id': _ref_id(sub.get('customer')),
        'status': str(sub.get('status') or 'unknown'),
        'mrr_amount': round(subscription_mrr(sub), 4),
        'interval': (price.get('recurring') or {}).get('interval'),
        'currency': str(sub.get('currency') or '').upper() or None,
        'plan_name': plan_name,
        'price_id': price.get('id'),
        'quantity': int((item or {}).get('quantity') or 1),
        'current_period_start': _from_epoch(sub.get('current_period_start')),
        'current_period_end': _from_epoch(sub.get('current_period_end')),
        'created_at_remote': _from_epoch(sub.get('created')),
        'canceled_at': _from_epoch(sub.get('canceled_at')),
        'ended_at': _from_epoch(sub.get('ended_at')),
        'synced_at': synced_at,
    }


def _customer_row(account_id: str, customer: dict[str, Any], synced_at: datetime) -> dict[str, Any]:
    return {
        'account_id': account_id,
        'customer_id': str(customer['id']),
        'email': customer.get('email'),
        'name': customer.get('name'),
        'created_at_remote': _from_epoch(customer.get('created')),
        'synced_at': synced_at,
    }


def _invoice_row(account_id: str, inv: dict[str, Any], synced_at: datetime) -> dict[str, Any]:
    transitions = inv.get('status_transitions') or {}
    return {
        'account_id': account_id,
        'invoice_id': str(inv['id']),
        'customer_id': _ref_id(inv.get('customer')),
        'subscription_id': _ref_id(inv.get('subscription')),
        'status': str(inv.get('status') or 'unknown'),
        'amount_due_cents': int(inv.get('amount_due') or 0),
        'amount_paid_cents': int(inv.get('amount_paid') or 0),
        'attempt_count': int(inv.get('attempt_count') or 0),
        'next_payment_attempt': _from_epoch(inv.get('next_payment_attempt')),
        'hosted_invoice_url': inv.get('hosted_invoice_url'),
        'created_at_remote': _from_epoch(inv.get('created')),
        'paid_at_remote': _from_epoch(transitions.get('paid_at')),
        'synced_at': synced_at,
    }


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, BillingAPIError):
        text = f'{exc.kind}: {exc}'
    else:
        text = str(exc) or exc.__class__.__name__
    secret = str(settings.billing_api_key or '')
    if secret:
        text = text.replace(secret, '***')
    return text[:_MAX_ERROR_MESSAGE]


class SyncService:
    """
    Per-account sync orchestrator.

    `trigger` records the request and returns at once; a worker later claims
    the queued job and runs fetch, compute and persist, writing each stage to
    the status store. A run never raises into its worker.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        client_factory: ClientFactory | None = None,
        status_store: StatusStore | None = None,
        queue: SyncQueue | None = None,
        cache: BillingCacheRepository | None = None,
        freshness_minutes: int | None = None,
        invoice_lookback_days: int | None = None,
    ) -> None:
        self.client_factory = client_factory or build_billing_client
        self.status_store = status_store or StatusStore(session_factory)
        self.queue = queue or SyncQueue(session_factory, lock_ttl_seconds=settings.sync_lock_ttl_seconds)
        self.cache = cache or BillingCacheRepository(session_factory)
        self.freshness_minutes = settings.sync_freshness_minutes if freshness_minutes is None else freshness_minutes
        self.invoice_lookback_days = (
            settings.billing_invoice_lookback_days if invoice_lookback_days is None else invoice_lookback_days
        )
        self._listeners: list[Callable[[], None]] = []
        self._listeners_lock = threading.Lock()

    def add_enqueue_listener(self, callback: Callable[[], None]) -> None:
        with self._listeners_lock:
            self._listeners.append(callback)

    def _notify_enqueued(self) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for callback in listeners:
            callback()

    def _set_status(self, account_id: str, stage: str, progress: int, message: str, job_id: str | None) -> None:
        try:
            self.status_store.set_status(account_id, stage, progress, message, job_id=job_id)
        except Exception:
            logger.exception('status write failed account=%s stage=%s progress=%s', account_id, stage, progress)

    def trigger(self, account_id: str, force: bool = False, actor: str = 'system') -> dict[str, Any]:
        job_id = str(uuid.uuid4())
        try:
            if not self.queue.acquire_lock(account_id, job_id):
                logger.info('sync already running account=%s', account_id)
                return {'account_id': account_id, 'status': TriggerStatus.ALREADY_SYNCING, 'job_id': None, 'error': None}
        except Exception as exc:
            logger.exception('sync lock failed account=%s', account_id)
            return {'account_id': account_id, 'status': TriggerStatus.ERROR, 'job_id': None, 'error': _error_message(exc)}

        try:
            self.status_store.set_status(account_id, SyncStage.SYNCING, 5, 'Starting sync job...', job_id=job_id)
            self.queue.enqueue(job_id=job_id, account_id=account_id, force=force, actor=actor)
        except Exception as exc:
            logger.exception('sync trigger failed account=%s job_id=%s', account_id, job_id)
            self.queue.release_lock(account_id, job_id)
            self._set_status(account_id, SyncStage.ERROR, 100, f'Sync failed to start: {_error_message(exc)}', job_id)
            return {'account_id': account_id, 'status': TriggerStatus.ERROR, 'job_id': None, 'error': _error_message(exc)}

        logger.info('sync triggered account=%s job_id=%s force=%s actor=%s', account_id, job_id, bool(force), actor)
        self._notify_enqueued()
        return {'account_id': account_id, 'status': TriggerStatus.TRIGGERED, 'job_id': job_id, 'error': None}

    def trigger_connections(self, connections: list[dict[str, Any]], force: bool = False, actor: str = 'system') -> list[dict[str, Any]]:
        results = []
        for conn in connections:
            result = self.trigger(str(conn['account_id']), force=force, actor=actor)
            result['connection_id'] = conn.get('connection_id')
            results.append(result)
        return results

    def _is_fresh(self, account_id: str) -> bool:
        snapshots = self.cache.latest_snapshots(account_id, limit=1)
        if not snapshots:
            return False
        return is_fresh(snapshots[0].get('created_at'), int(self.freshness_minutes or 0))

    def run_job(self, job_id: str, account_id: str, force: bool = False) -> tuple[str, str | None]:
        """Run one sync to a terminal stage. Returns (job status, error)."""
        client: SafeBillingClient | None = None
        try:
            if not force and self._is_fresh(account_id):
                self._set_status(account_id, SyncStage.READY, 100, 'Data is fresh; sync skipped.', job_id)
                logger.info('sync skipped, data fresh account=%s job_id=%s', account_id, job_id)
                return JobStatus.SKIPPED, None

            client = self.client_factory(account_id)

            self._set_status(account_id, SyncStage.SYNCING, 25, 'Fetching subscriptions...', job_id)
            subscriptions = client.list_all_subscriptions(status='all')
            now = utcnow()
            self.cache.upsert_subscriptions([_subscription_row(account_id, sub, now) for sub in subscriptions])
            logger.info('fetched %s subscription(s) account=%s', len(subscriptions), account_id)

            self._set_status(account_id, SyncStage.SYNCING, 45, 'Fetching customers...', job_id)
            customers = client.list_all_customers()
            self.cache.upsert_customers([_customer_row(account_id, cust, now) for cust in customers])
            logger.info('fetched %s customer(s) account=%s', len(customers), account_id)

            self._set_status(account_id, SyncStage.SYNCING, 55, 'Fetching invoices...', job_id)
            since = int((datetime.now(timezone.utc) - timedelta(days=self.invoice_lookback_days)).timestamp())
            invoices = client.list_all_invoices(created={'gte': since})
            self.cache.upsert_invoices([_invoice_row(account_id, inv, now) for inv in invoices])
            logger.info('fetched %s invoice(s) account=%s', len(invoices), account_id)

            self._set_status(account_id, SyncStage.SYNCING, 65, 'Computing metrics...', job_id)
            metrics = compute_metrics(
                self.cache.subscriptions_for(account_id),
                self.cache.count_customers(account_id),
                now=now,
            )

            self._set_status(account_id, SyncStage.SYNCING, 85, 'Saving metrics snapshot...', job_id)
            self.cache.save_snapshot(account_id, date.today(), metrics)

            self._set_status(account_id, SyncStage.READY, 100, 'Sync completed successfully.', job_id)
            logger.info('sync completed account=%s job_id=%s mrr=%s', account_id, job_id, metrics['mrr'])
            return JobStatus.COMPLETED, None
        except Exception as exc:
            message = _error_message(exc)
            logger.exception('sync failed account=%s job_id=%s', account_id, job_id)
            self._set_status(account_id, SyncStage.ERROR, 100, f'Sync failed: {message}', job_id)
            return JobStatus.FAILED, message
        finally:
            if client is not None:
                try:
                    client.close()
                except Exception:
                    logger.warning('closing billing client failed account=%s', account_id, exc_info=True)
            try:
                self.queue.release_lock(account_id, job_id)
            except Exception:
                logger.exception('releasing sync lock failed account=%s job_id=%s', account_id, job_id)

    def poll_and_run_next(self, worker_name: str = 'sync-worker') -> bool:
        claimed = self.queue.claim_next(worker_name)
        if not claimed:
            return False
        job_id = str(claimed['job_id'])
        status, error = self.run_job(job_id, str(claimed['account_id']), force=bool(claimed['force']))
        self.queue.mark_done(job_id, status, error)
        return True

    def worker_bootstrap_cleanup(self, worker_names: list[str]) -> int:
        interrupted = self.queue.cleanup_interrupted(worker_names)
        for item in interrupted:
            self._set_status(item['account_id'], SyncStage.ERROR, 100, 'Sync interrupted by a service restart.', item['job_id'])
        if interrupted:
            logger.warning('failed %s interrupted sync job(s) on startup', len(interrupted))
        return len(interrupted)

    def status(self, account_id: str) -> SyncStatusView:
        return self.status_store.get_status(account_id)

    def job(self, job_id: str) -> dict[str, Any] | None:
        return self.queue.get_job(job_id)


class SyncWorkerPool:
    """Fixed set of daemon threads draining the sync queue inside the API process."""

    def __init__(
        self,
        service: SyncService,
        size: int,
        idle_sleep_seconds: float = 1.5,
        group_name: str | None = None,
    ) -> None:
        self.service = service
        self.size = max(0, int(size))
        self.idle_sleep_seconds = max(0.05, float(idle_sleep_seconds))
        group = group_name or worker_group_name('api')
        self.worker_names = [f'{group}#{index + 1}' for index in range(self.size)]
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._threads: list[threading.Thread] = []
        service.add_enqueue_listener(self.wake)

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def wake(self) -> None:
        self._wake.set()

    def bootstrap_cleanup(self) -> int:
        """Fail jobs this pool's workers left running before a restart."""
        if not self.size:
            return 0
        return self.service.worker_bootstrap_cleanup(self.worker_names)

    def start(self) -> None:
        if self._threads or not self.size:
            return
        self._stop.clear()
        for name in self.worker_names:
            thread = threading.Thread(target=self._run, args=(name,), name=name, daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info('sync worker pool started size=%s', self.size)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        self._wake.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []

    def _run(self, worker_name: str) -> None:
        while not self._stop.is_set():
            try:
                ran = self.service.poll_and_run_next(worker_name=worker_name)
            except Exception:
                logger.exception('sync worker loop error worker=%s', worker_name)
                ran = False
            if not ran:
                self._wake.wait(self.idle_sleep_seconds)
                self._wake.clear()
