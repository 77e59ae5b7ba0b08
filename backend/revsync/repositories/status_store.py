"""
Durable per-account sync status.

Every write is a single INSERT ... ON CONFLICT DO UPDATE carrying stage,
progress and message together, so a reader can never observe a mix of two
writes (e.g. stage=ready with progress=5).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from revsync.db.base import utcnow
from revsync.db.upsert import dialect_insert
from revsync.models.billing import SyncStatus

DEFAULT_IDLE_MESSAGE = 'ready to sync'
_MAX_MESSAGE = 500


class SyncStage:
    IDLE = 'idle'
    SYNCING = 'syncing'
    READY = 'ready'
    ERROR = 'error'

    ALL = frozenset({IDLE, SYNCING, READY, ERROR})


@dataclass(frozen=True)
class SyncStatusView:
    account_id: str
    stage: str
    progress: int
    message: str
    last_synced_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            'account_id': self.account_id,
            'stage': self.stage,
            'progress': self.progress,
            'message': self.message,
            'last_synced_at': self.last_synced_at.isoformat() if self.last_synced_at else None,
        }


class StatusStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get_status(self, account_id: str) -> SyncStatusView:
        db: Session = self._session_factory()
        try:
            row = db.get(SyncStatus, account_id)
            if row is None:
                return SyncStatusView(account_id=account_id, stage=SyncStage.IDLE, progress=0, message=DEFAULT_IDLE_MESSAGE)
            return SyncStatusView(
                account_id=account_id,
                stage=row.stage,
                progress=int(row.progress or 0),
                message=row.message or '',
                last_synced_at=row.last_synced_at,
            )
        finally:
            db.close()

    def set_status(self, account_id: str, stage: str, progress: int, message: str, job_id: str | None = None) -> None:
        if stage not in SyncStage.ALL:
            raise ValueError(f'unknown sync stage: {stage}')
        progress = 100 if stage == SyncStage.READY else max(0, min(100, int(progress)))
        now = utcnow()
        values = {
            'account_id': account_id,
            'stage': stage,
            'progress': progress,
            'message': str(message or '')[:_MAX_MESSAGE],
            'job_id': job_id,
            'updated_at': now,
        }
        if stage == SyncStage.READY:
            values['last_synced_at'] = now
        if stage == SyncStage.ERROR:
            values['last_sync_attempt_at'] = now

        db: Session = self._session_factory()
        try:
            insert_stmt = dialect_insert(db, SyncStatus.__table__).values(**values)
            update_cols = {key: getattr(insert_stmt.excluded, key) for key in values if key != 'account_id'}
            stmt = insert_stmt.on_conflict_do_update(index_elements=[SyncStatus.__table__.c.account_id], set_=update_cols)
            db.execute(stmt)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
