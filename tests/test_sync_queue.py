import os
import sys
import unittest
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'backend'))

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test_revsync_api.db')

from revsync.db.base import utcnow  # noqa: E402
from revsync.db.bootstrap import bootstrap_database  # noqa: E402
from revsync.db.session import build_engine, build_session_factory  # noqa: E402
from revsync.models.billing import SyncLock  # noqa: E402
from revsync.repositories.sync_queue import INTERRUPTED_ERROR, JobStatus, SyncQueue  # noqa: E402


class SyncQueueTests(unittest.TestCase):
    def setUp(self):
        engine = build_engine('sqlite://')
        bootstrap_database(engine)
        self.session_factory = build_session_factory(engine)
        self.queue = SyncQueue(self.session_factory, lock_ttl_seconds=60)

    def _lock_holder(self, account_id):
        db = self.session_factory()
        try:
            row = db.get(SyncLock, account_id)
            return row.job_id if row is not None else None
        finally:
            db.close()

    def test_lock_is_exclusive_per_account(self):
        self.assertTrue(self.queue.acquire_lock('acct_1', 'job-1'))
        self.assertFalse(self.queue.acquire_lock('acct_1', 'job-2'))
        self.assertTrue(self.queue.acquire_lock('acct_2', 'job-3'))
        self.assertEqual(self._lock_holder('acct_1'), 'job-1')

    def test_release_only_by_owner(self):
        self.queue.acquire_lock('acct_1', 'job-1')
        self.queue.release_lock('acct_1', 'job-other')
        self.assertEqual(self._lock_holder('acct_1'), 'job-1')
        self.queue.release_lock('acct_1', 'job-1')
        self.assertIsNone(self._lock_holder('acct_1'))
        self.assertTrue(self.queue.acquire_lock('acct_1', 'job-2'))

    def test_expired_lock_is_taken_over(self):
        self.queue.acquire_lock('acct_1', 'job-1')
        db = self.session_factory()
        try:
            row = db.get(SyncLock, 'acct_1')
            row.acquired_at = utcnow() - timedelta(seconds=120)
            db.commit()
        finally:
            db.close()
        with self.assertLogs('revsync.repositories.sync_queue', level='WARNING'):
            self.assertTrue(self.queue.acquire_lock('acct_1', 'job-2'))

    def test_claims_in_fifo_order_once(self):
        self.queue.enqueue(job_id='job-1', account_id='acct_1', force=True, actor='u1')
        self.queue.enqueue(job_id='job-2', account_id='acct_2', force=False, actor='u2')
        first = self.queue.claim_next('w1')
        second = self.queue.claim_next('w2')
        self.assertEqual(first['job_id'], 'job-1')
        self.assertTrue(first['force'])
        self.assertEqual(second['job_id'], 'job-2')
        self.assertIsNone(self.queue.claim_next('w3'))
        self.assertEqual(self.queue.get_job('job-1')['status'], JobStatus.RUNNING)
        self.assertEqual(self.queue.get_job('job-1')['locked_by'], 'w1')

    def test_mark_done(self):
        self.queue.enqueue(job_id='job-1', account_id='acct_1', force=False, actor='u1')
        self.queue.claim_next('w1')
        self.queue.mark_done('job-1', JobStatus.FAILED, 'boom')
        job = self.queue.get_job('job-1')
        self.assertEqual(job['status'], JobStatus.FAILED)
        self.assertEqual(job['error'], 'boom')

    def test_cleanup_interrupted_only_touches_named_workers(self):
        self.queue.acquire_lock('acct_1', 'job-1')
        self.queue.acquire_lock('acct_2', 'job-2')
        self.queue.enqueue(job_id='job-1', account_id='acct_1', force=False, actor='u1')
        self.queue.enqueue(job_id='job-2', account_id='acct_2', force=False, actor='u2')
        self.queue.claim_next('host-a:api#1')
        self.queue.claim_next('host-b:worker')

        self.assertEqual(self.queue.cleanup_interrupted([]), [])
        affected = self.queue.cleanup_interrupted(['host-a:api#1', 'host-a:api#2'])
        self.assertEqual(affected, [{'job_id': 'job-1', 'account_id': 'acct_1'}])
        self.assertEqual(self.queue.get_job('job-1')['error'], INTERRUPTED_ERROR)
        self.assertIsNotNone(self.queue.get_job('job-1')['finished_at'])
        self.assertIsNone(self._lock_holder('acct_1'))

        self.assertEqual(self.queue.get_job('job-2')['status'], JobStatus.RUNNING)
        self.assertEqual(self._lock_holder('acct_2'), 'job-2')
        self.assertEqual(self.queue.cleanup_interrupted(['host-a:api#1']), [])

    def test_get_unknown_job(self):
        self.assertIsNone(self.queue.get_job('missing'))


if __name__ == '__main__':
    unittest.main()
