"""
Heuristic revenue-health signals.

Two rules, kept deliberately simple:

* payment_failure: failed charges concentrate in the last 7 days of a
  30 day window (more than half of them).
* churn_spike: revenue churn rate rose by more than 2 percentage points
  between the two most recent metrics snapshots.

Each rule runs on its own; one failing never suppresses the other.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.orm import sessionmaker

from revsync.db.base import utcnow
from revsync.repositories.billing_cache import BillingCacheRepository
from revsync.repositories.signal_log import SignalLog
from revsync.services.billing_client import SafeBillingClient, build_billing_client

logger = logging.getLogger(__name__)

PAYMENT_FAILURE = 'payment_failure'
CHURN_SPIKE = 'churn_spike'

RECENT_WINDOW_DAYS = 7
BASELINE_WINDOW_DAYS = 30
FAILURE_RATIO_THRESHOLD = 0.5
FAILURE_HIGH_COUNT = 3
CHURN_INCREASE_THRESHOLD = 0.02
CHURN_HIGH_INCREASE = 0.10


@dataclass(frozen=True)
class DetectedSignal:
    user_id: str
    type: str
    severity: str
    value: float | None
    meta: dict[str, Any] = field(default_factory=dict)
    detected_at: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        return {
            'user_id': self.user_id,
            'type': self.type,
            'severity': self.severity,
            'value': self.value,
            'meta': dict(self.meta),
            'detected_at': self.detected_at or utcnow().replace(microsecond=0),
        }


def detect_payment_failure(user_id: str, failed7d: int, failed30d: int, detected_at: datetime | None = None) -> DetectedSignal | None:
    if failed7d <= 0 or failed30d <= 0:
        return None
    if failed7d / failed30d <= FAILURE_RATIO_THRESHOLD:
        return None
    return DetectedSignal(
        user_id=user_id,
        type=PAYMENT_FAILURE,
        severity='high' if failed7d > FAILURE_HIGH_COUNT else 'medium',
        value=float(failed7d),
        meta={'failed7d': failed7d, 'failed30d': failed30d},
        detected_at=detected_at,
    )


def detect_churn_spike(user_id: str, current_rate: float, previous_rate: float, detected_at: datetime | None = None) -> DetectedSignal | None:
    current_rate = float(current_rate or 0.0)
    previous_rate = float(previous_rate or 0.0)
    increase = current_rate - previous_rate
    if increase <= CHURN_INCREASE_THRESHOLD:
        return None
    return DetectedSignal(
        user_id=user_id,
        type=CHURN_SPIKE,
        severity='high' if increase > CHURN_HIGH_INCREASE else 'medium',
        value=round(increase * 100, 2),
        meta={'current_rate': current_rate, 'previous_rate': previous_rate, 'increase': increase},
        detected_at=detected_at,
    )


def count_failed_charges(charges: list[dict[str, Any]], now: datetime) -> tuple[int, int]:
    """(failed in the recent window, failed in the baseline window) for epoch-stamped charges."""
    recent_cutoff = (now - timedelta(days=RECENT_WINDOW_DAYS)).timestamp()
    baseline_cutoff = (now - timedelta(days=BASELINE_WINDOW_DAYS)).timestamp()
    failed7d = 0
    failed30d = 0
    for charge in charges:
        if charge.get('status') != 'failed':
            continue
        created = float(charge.get('created') or 0)
        if created >= baseline_cutoff:
            failed30d += 1
            if created >= recent_cutoff:
                failed7d += 1
    return failed7d, failed30d


class RevenueSignalDetector:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        client_factory: Callable[[str], SafeBillingClient] | None = None,
        cache: BillingCacheRepository | None = None,
        signal_log: SignalLog | None = None,
    ) -> None:
        self.client_factory = client_factory or build_billing_client
        self.cache = cache or BillingCacheRepository(session_factory)
        self.signal_log = signal_log or SignalLog(session_factory)

    def _resolve_account(self, user_id: str, account_id: str | None) -> str | None:
        if account_id:
            return account_id
        connections = self.cache.active_connections(user_id=user_id, limit=1)
        return connections[0]['account_id'] if connections else None

    def _payment_failure(self, user_id: str, account_id: str, now: datetime, detected_at: datetime) -> DetectedSignal | None:
        since = int((now - timedelta(days=BASELINE_WINDOW_DAYS)).timestamp())
        client = self.client_factory(account_id)
        try:
            charges = client.list_all_charges(created={'gte': since})
        finally:
            client.close()
        failed7d, failed30d = count_failed_charges(charges, now)
        return detect_payment_failure(user_id, failed7d, failed30d, detected_at)

    def _churn_spike(self, user_id: str, account_id: str, detected_at: datetime) -> DetectedSignal | None:
        snapshots = self.cache.latest_snapshots(account_id, limit=2)
        if len(snapshots) < 2:
            return None
        current, previous = snapshots[0], snapshots[1]
        return detect_churn_spike(user_id, current['revenue_churn_rate'], previous['revenue_churn_rate'], detected_at)

    def detect(self, user_id: str, account_id: str | None = None) -> list[DetectedSignal]:
        account_id = self._resolve_account(user_id, account_id)
        if not account_id:
            return []
        now = datetime.now(timezone.utc)
        detected_at = now.replace(tzinfo=None, microsecond=0)
        signals: list[DetectedSignal] = []

        try:
            signal = self._payment_failure(user_id, account_id, now, detected_at)
            if signal is not None:
                signals.append(signal)
        except Exception:
            logger.exception('payment failure analysis failed user=%s account=%s', user_id, account_id)

        try:
            signal = self._churn_spike(user_id, account_id, detected_at)
            if signal is not None:
                signals.append(signal)
        except Exception:
            logger.exception('churn comparison failed user=%s account=%s', user_id, account_id)

        return signals

    def save_signals(self, signals: list[DetectedSignal]) -> int:
        """Write each heuristic's signals separately; a failed write drops only that type."""
        by_type: dict[str, list[DetectedSignal]] = {}
        for signal in signals:
            by_type.setdefault(signal.type, []).append(signal)
        saved = 0
        for signal_type, batch in by_type.items():
            try:
                saved += self.signal_log.insert_many([signal.to_row() for signal in batch])
            except Exception:
                logger.exception('saving %s revenue signal(s) failed type=%s', len(batch), signal_type)
        return saved

    def detect_and_save(self, user_id: str, account_id: str | None = None) -> list[DetectedSignal]:
        signals = self.detect(user_id, account_id)
        self.save_signals(signals)
        return signals

    def detect_for_all_users(self) -> int:
        user_ids: list[str] = []
        for conn in self.cache.active_connections():
            uid = str(conn.get('user_id') or '')
            if uid and uid not in user_ids:
                user_ids.append(uid)

        processed = 0
        for user_id in user_ids:
            try:
                self.detect_and_save(user_id)
                processed += 1
            except Exception:
                logger.exception('signal detection failed user=%s', user_id)
        logger.info('signal detection processed %s of %s user(s)', processed, len(user_ids))
        return processed

    def list_signals(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        return self.signal_log.list_for_user(user_id, limit=limit)
