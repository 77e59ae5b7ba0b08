import os
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'backend'))

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test_revsync_api.db')

from revsync.db.bootstrap import bootstrap_database  # noqa: E402
from revsync.db.session import build_engine, build_session_factory  # noqa: E402
from revsync.models.billing import SyncStatus  # noqa: E402
from revsync.repositories.status_store import DEFAULT_IDLE_MESSAGE, StatusStore, SyncStage  # noqa: E402


class StatusStoreTests(unittest.TestCase):
    def setUp(self):
        engine = build_engine('sqlite://')
        bootstrap_database(engine)
        self.session_factory = build_session_factory(engine)
        self.store = StatusStore(self.session_factory)

    def _row(self, account_id):
        db = self.session_factory()
        try:
            return db.get(SyncStatus, account_id)
        finally:
            db.close()

    def test_unknown_account_reads_as_idle(self):
        view = self.store.get_status('acct_new')
        self.assertEqual(view.stage, SyncStage.IDLE)
        self.assertEqual(view.progress, 0)
        self.assertEqual(view.message, DEFAULT_IDLE_MESSAGE)
        self.assertIsNone(view.last_synced_at)
        self.assertIsNone(self._row('acct_new'))

    def test_stage_progress_and_message_written_together(self):
        self.store.set_status('acct_1', SyncStage.SYNCING, 45, 'Fetching customers...', job_id='job-1')
        view = self.store.get_status('acct_1')
        self.assertEqual((view.stage, view.progress, view.message), ('syncing', 45, 'Fetching customers...'))
        self.assertIsNone(view.last_synced_at)
        self.assertEqual(self._row('acct_1').job_id, 'job-1')

    def test_ready_sets_last_synced_and_full_progress(self):
        self.store.set_status('acct_1', SyncStage.SYNCING, 5, 'Starting sync job...')
        self.store.set_status('acct_1', SyncStage.READY, 85, 'done')
        view = self.store.get_status('acct_1')
        self.assertEqual(view.stage, 'ready')
        self.assertEqual(view.progress, 100)
        self.assertIsNotNone(view.last_synced_at)

    def test_new_run_keeps_previous_last_synced_at(self):
        self.store.set_status('acct_1', SyncStage.READY, 100, 'done')
        synced_at = self.store.get_status('acct_1').last_synced_at
        self.store.set_status('acct_1', SyncStage.SYNCING, 5, 'Starting sync job...')
        view = self.store.get_status('acct_1')
        self.assertEqual(view.stage, 'syncing')
        self.assertEqual(view.last_synced_at, synced_at)

    def test_error_records_attempt_time_only(self):
        self.store.set_status('acct_1', SyncStage.ERROR, 100, 'Sync failed: api: upstream down')
        row = self._row('acct_1')
        self.assertEqual(row.stage, 'error')
        self.assertIsNotNone(row.last_sync_attempt_at)
        self.assertIsNone(row.last_synced_at)

    def test_progress_is_clamped(self):
        self.store.set_status('acct_1', SyncStage.SYNCING, 140, 'x')
        self.assertEqual(self.store.get_status('acct_1').progress, 100)
        self.store.set_status('acct_1', SyncStage.SYNCING, -3, 'x')
        self.assertEqual(self.store.get_status('acct_1').progress, 0)

    def test_unknown_stage_is_rejected(self):
        with self.assertRaises(ValueError):
            self.store.set_status('acct_1', 'done', 100, 'x')

    def test_to_dict_serializes_timestamp(self):
        self.store.set_status('acct_1', SyncStage.READY, 100, 'done')
        payload = self.store.get_status('acct_1').to_dict()
        self.assertEqual(payload['account_id'], 'acct_1')
        self.assertIsInstance(payload['last_synced_at'], str)


if __name__ == '__main__':
    unittest.main()
