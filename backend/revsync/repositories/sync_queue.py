from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from revsync.db.base import utcnow
from revsync.models.billing import SyncJob, SyncLock

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = 'job_interrupted_on_restart'


class JobStatus:
    PENDING = 'pending'
    RUNNING = 'running'
    COMPLETED = 'completed'
    SKIPPED = 'skipped'
    FAILED = 'failed'


class SyncQueue:
    """Durable work queue (`sync_jobs`) plus per-account sync leases (`sync_locks`)."""

    def __init__(self, session_factory: sessionmaker, lock_ttl_seconds: int = 3600) -> None:
        self._session_factory = session_factory
        self.lock_ttl_seconds = max(1, int(lock_ttl_seconds))

    def acquire_lock(self, account_id: str, job_id: str) -> bool:
        """
        Take the account's sync lease for `job_id`.

        Returns False while another job holds a lease younger than the TTL.
        An expired lease (crashed worker) is taken over.
        """
        now = utcnow()
        db: Session = self._session_factory()
        try:
            db.add(SyncLock(account_id=account_id, job_id=job_id, acquired_at=now))
            try:
                db.commit()
                return True
            except IntegrityError:
                db.rollback()
            cutoff = now - timedelta(seconds=self.lock_ttl_seconds)
            result = db.execute(
                update(SyncLock)
                .where(SyncLock.account_id == account_id, SyncLock.acquired_at < cutoff)
                .values(job_id=job_id, acquired_at=now)
            )
            db.commit()
            if result.rowcount:
                logger.warning('took over expired sync lock account=%s job_id=%s', account_id, job_id)
                return True
            return False
        finally:
            db.close()

    def release_lock(self, account_id: str, job_id: str) -> None:
        db: Session = self._session_factory()
        try:
            db.execute(delete(SyncLock).where(SyncLock.account_id == account_id, SyncLock.job_id == job_id))
            db.commit()
        finally:
            db.close()

    def enqueue(self, *, job_id: str, account_id: str, force: bool, actor: str) -> None:
        db: Session = self._session_factory()
        try:
            db.add(
                SyncJob(
                    job_id=job_id,
                    account_id=account_id,
                    status=JobStatus.PENDING,
                    force=bool(force),
                    actor=actor or 'system',
                )
            )
            db.commit()
        finally:
            db.close()

    def claim_next(self, worker_name: str) -> dict[str, Any] | None:
        db: Session = self._session_factory()
        try:
            while True:
                row = (
                    db.query(SyncJob)
                    .filter(SyncJob.status == JobStatus.PENDING)
                    .order_by(SyncJob.created_at.asc(), SyncJob.id.asc())
                    .first()
                )
                if row is None:
                    return None
                now = utcnow()
                # Conditional update so two workers never claim the same row.
                result = db.execute(
                    update(SyncJob)
                    .where(SyncJob.id == row.id, SyncJob.status == JobStatus.PENDING)
                    .values(status=JobStatus.RUNNING, locked_by=worker_name, started_at=now)
                )
                db.commit()
                if result.rowcount:
                    return {
                        'job_id': row.job_id,
                        'account_id': row.account_id,
                        'force': bool(row.force),
                        'actor': row.actor,
                    }
                db.expire_all()
        finally:
            db.close()

    def mark_done(self, job_id: str, status: str, error: str | None = None) -> None:
        db: Session = self._session_factory()
        try:
            row = db.query(SyncJob).filter(SyncJob.job_id == job_id).first()
            if row is None:
                return
            row.status = status
            row.error = error
            row.finished_at = utcnow()
            db.commit()
        finally:
            db.close()

    def get_job(self, job_id: str) -> dict[str, Any] | None:
        db: Session = self._session_factory()
        try:
            row = db.query(SyncJob).filter(SyncJob.job_id == job_id).first()
            if row is None:
                return None
            return {
                'job_id': row.job_id,
                'account_id': row.account_id,
                'status': row.status,
                'force': bool(row.force),
                'actor': row.actor,
                'locked_by': row.locked_by,
                'error': row.error,
                'created_at': row.created_at,
                'started_at': row.started_at,
                'finished_at': row.finished_at,
            }
        finally:
            db.close()

    def cleanup_interrupted(self, worker_names: list[str]) -> list[dict[str, str]]:
        """
        Fail running jobs claimed under `worker_names` and drop their leases.

        Called by a worker process as it boots: a job still marked running
        under one of its own names lost its worker in the previous
        incarnation. Jobs claimed by any other worker are left alone.
        Returns the affected (job_id, account_id) pairs.
        """
        names = [str(name) for name in worker_names if name]
        if not names:
            return []
        db: Session = self._session_factory()
        try:
            stale = (
                db.query(SyncJob)
                .filter(SyncJob.status == JobStatus.RUNNING, SyncJob.locked_by.in_(names))
                .all()
            )
            if not stale:
                return []
            now = utcnow()
            affected = []
            for row in stale:
                row.status = JobStatus.FAILED
                row.error = INTERRUPTED_ERROR
                row.finished_at = now
                affected.append({'job_id': row.job_id, 'account_id': row.account_id})
            db.execute(delete(SyncLock).where(SyncLock.job_id.in_([item['job_id'] for item in affected])))
            db.commit()
            return affected
        finally:
            db.close()
