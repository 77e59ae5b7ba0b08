from __future__ import annotations

from datetime import date
from typing import Any, Iterable

from sqlalchemy.orm import Session, sessionmaker

from revsync.db.base import utcnow
from revsync.db.upsert import dialect_insert
from revsync.models.billing import BillingConnection, CustomerCache, InvoiceCache, MetricsSnapshot, SubscriptionCache

UPSERT_BATCH_SIZE = 500


def _chunks(rows: list[dict], size: int) -> Iterable[list[dict]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def _upsert_rows(db: Session, model, rows: list[dict], conflict_cols: list[str]) -> int:
    if not rows:
        return 0
    # A statement may not touch the same conflict key twice; last one wins.
    rows = list({tuple(row[col] for col in conflict_cols): row for row in rows}.values())
    table = model.__table__
    written = 0
    for chunk in _chunks(rows, UPSERT_BATCH_SIZE):
        insert_stmt = dialect_insert(db, table).values(chunk)
        update_cols = {
            col: getattr(insert_stmt.excluded, col)
            for col in chunk[0].keys()
            if col not in conflict_cols
        }
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=[table.c[col] for col in conflict_cols],
            set_=update_cols,
        )
        db.execute(stmt)
        written += len(chunk)
    return written


class BillingCacheRepository:
    """Cached billing records, metrics snapshots and the connection registry."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _write(self, model, rows: list[dict], conflict_cols: list[str]) -> int:
        db: Session = self._session_factory()
        try:
            written = _upsert_rows(db, model, rows, conflict_cols)
            db.commit()
            return written
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def upsert_subscriptions(self, rows: list[dict]) -> int:
        return self._write(SubscriptionCache, rows, ['account_id', 'subscription_id'])

    def upsert_customers(self, rows: list[dict]) -> int:
        return self._write(CustomerCache, rows, ['account_id', 'customer_id'])

    def upsert_invoices(self, rows: list[dict]) -> int:
        return self._write(InvoiceCache, rows, ['account_id', 'invoice_id'])

    def save_snapshot(self, account_id: str, snapshot_date: date, metrics: dict[str, Any]) -> None:
        row = {'account_id': account_id, 'snapshot_date': snapshot_date, 'created_at': utcnow()}
        row.update(metrics)
        self._write(MetricsSnapshot, [row], ['account_id', 'snapshot_date'])

    def subscriptions_for(self, account_id: str) -> list[dict[str, Any]]:
        db: Session = self._session_factory()
        try:
            rows = db.query(SubscriptionCache).filter(SubscriptionCache.account_id == account_id).all()
            return [
                {
                    'subscription_id': row.subscription_id,
                    'customer_id': row.customer_id,
                    'status': row.status,
                    'mrr_amount': float(row.mrr_amount or 0.0),
                    'canceled_at': row.canceled_at,
                    'ended_at': row.ended_at,
                }
                for row in rows
            ]
        finally:
            db.close()

    def count_customers(self, account_id: str) -> int:
        db: Session = self._session_factory()
        try:
            return int(db.query(CustomerCache).filter(CustomerCache.account_id == account_id).count())
        finally:
            db.close()

    def latest_snapshots(self, account_id: str, limit: int = 2) -> list[dict[str, Any]]:
        """Most recent snapshots first."""
        db: Session = self._session_factory()
        try:
            rows = (
                db.query(MetricsSnapshot)
                .filter(MetricsSnapshot.account_id == account_id)
                .order_by(MetricsSnapshot.snapshot_date.desc())
                .limit(max(1, int(limit)))
                .all()
            )
            return [
                {
                    'snapshot_date': row.snapshot_date,
                    'mrr': float(row.mrr or 0.0),
                    'revenue_churn_rate': float(row.revenue_churn_rate or 0.0),
                    'customer_churn_rate': float(row.customer_churn_rate or 0.0),
                    'created_at': row.created_at,
                }
                for row in rows
            ]
        finally:
            db.close()

    def get_connection(self, *, connection_id: int | None = None, account_id: str | None = None) -> dict[str, Any] | None:
        db: Session = self._session_factory()
        try:
            q = db.query(BillingConnection).filter(BillingConnection.is_active.is_(True))
            if connection_id is not None:
                q = q.filter(BillingConnection.id == int(connection_id))
            if account_id is not None:
                q = q.filter(BillingConnection.account_id == account_id)
            row = q.first()
            return _connection_dict(row) if row is not None else None
        finally:
            db.close()

    def active_connections(self, *, user_id: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        db: Session = self._session_factory()
        try:
            q = db.query(BillingConnection).filter(BillingConnection.is_active.is_(True))
            if user_id is not None:
                q = q.filter(BillingConnection.user_id == user_id)
            q = q.order_by(BillingConnection.id.asc())
            if limit is not None:
                q = q.limit(max(0, int(limit)))
            return [_connection_dict(row) for row in q.all()]
        finally:
            db.close()


def _connection_dict(row: BillingConnection) -> dict[str, Any]:
    return {
        'connection_id': row.id,
        'account_id': row.account_id,
        'user_id': row.user_id,
        'business_name': row.business_name,
    }
