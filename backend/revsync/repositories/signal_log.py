from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from revsync.db.upsert import dialect_insert
from revsync.models.billing import RevenueSignal


class SignalLog:
    """Append-only store of detected revenue signals."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def insert_many(self, rows: list[dict[str, Any]]) -> int:
        """Insert signals; rows already stored for (user, type, detected_at) are left untouched."""
        if not rows:
            return 0
        db: Session = self._session_factory()
        try:
            stmt = dialect_insert(db, RevenueSignal.__table__).values(rows).on_conflict_do_nothing(
                index_elements=['user_id', 'type', 'detected_at']
            )
            result = db.execute(stmt)
            db.commit()
            return max(0, int(result.rowcount or 0))
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_for_user(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        db: Session = self._session_factory()
        try:
            rows = (
                db.query(RevenueSignal)
                .filter(RevenueSignal.user_id == user_id)
                .order_by(RevenueSignal.detected_at.desc(), RevenueSignal.id.desc())
                .limit(max(1, min(500, int(limit))))
                .all()
            )
            return [
                {
                    'id': row.id,
                    'user_id': row.user_id,
                    'type': row.type,
                    'severity': row.severity,
                    'value': row.value,
                    'meta': dict(row.meta or {}),
                    'detected_at': row.detected_at,
                }
                for row in rows
            ]
        finally:
            db.close()
