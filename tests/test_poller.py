import json
import sys
import unittest
from pathlib import Path

import httpx

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'backend'))

from revsync.client.poller import FAILED, PENDING, SyncStatusPoller  # noqa: E402


def _status(stage, progress, message='', last_synced_at=None):
    return httpx.Response(
        200,
        json={'account_id': 'acct_1', 'stage': stage, 'progress': progress, 'message': message, 'last_synced_at': last_synced_at},
    )


class SyncStatusPollerTests(unittest.TestCase):
    def setUp(self):
        self.requests = []
        self.responses = []
        self.sleeps = []

    def _handler(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def _poller(self, **kwargs):
        return SyncStatusPoller(
            'http://api.test',
            'acct_1',
            'token-123',
            interval=3.0,
            transport=httpx.MockTransport(self._handler),
            sleep=self.sleeps.append,
            **kwargs,
        )

    def test_polls_until_ready(self):
        self.responses = [
            _status('syncing', 25),
            _status('syncing', 65),
            _status('ready', 100, 'done', '2026-03-01T12:00:00'),
        ]
        seen = []
        with self._poller(on_change=lambda s: seen.append(s.stage)) as poller:
            final = poller.start()
        self.assertEqual(final.stage, 'ready')
        self.assertEqual(final.progress, 100)
        self.assertIsNotNone(final.last_synced_at)
        self.assertEqual(len(self.requests), 3)
        self.assertEqual(self.sleeps, [3.0, 3.0])
        self.assertEqual(seen, ['syncing', 'syncing', 'ready'])
        self.assertEqual(self.requests[0].url.params.get('account_id'), 'acct_1')
        self.assertEqual(self.requests[0].headers['Authorization'], 'Bearer token-123')

    def test_settled_stage_reads_once(self):
        self.responses = [_status('idle', 0, 'ready to sync')]
        with self._poller() as poller:
            self.assertEqual(poller.start().stage, 'idle')
        self.assertEqual(self.sleeps, [])

    def test_error_stage_stops_polling(self):
        self.responses = [_status('syncing', 45), _status('error', 100, 'Sync failed: api: upstream down')]
        with self._poller() as poller:
            final = poller.start()
        self.assertEqual(final.stage, 'error')
        self.assertIn('upstream', final.message)

    def test_unauthorized_moves_to_failed(self):
        self.responses = [httpx.Response(401, json={'error_code': 'UNAUTHORIZED'})]
        with self._poller() as poller:
            final = poller.start()
        self.assertEqual(final.stage, FAILED)
        self.assertIn('401', final.error)
        self.assertEqual(len(self.requests), 1)

    def test_non_json_body_moves_to_failed(self):
        self.responses = [httpx.Response(200, text='<html>gateway</html>')]
        with self._poller() as poller:
            self.assertEqual(poller.refresh().stage, FAILED)

    def test_network_error_moves_to_failed(self):
        self.responses = [httpx.ConnectError('refused')]
        with self._poller() as poller:
            final = poller.start()
        self.assertEqual(final.stage, FAILED)
        self.assertIn('network', final.error)

    def test_trigger_goes_pending_then_reconciles(self):
        self.responses = [
            httpx.Response(202, json={'success': True, 'message': 'ok', 'results': []}),
            _status('syncing', 5),
            _status('ready', 100),
        ]
        seen = []
        with self._poller(on_change=lambda s: seen.append(s.stage)) as poller:
            state = poller.trigger(force=True)
            self.assertEqual(state.stage, PENDING)
            final = poller.start()
        self.assertEqual(final.stage, 'ready')
        self.assertEqual(seen[0], PENDING)
        body = json.loads(self.requests[0].content)
        self.assertEqual(body, {'account_id': 'acct_1', 'force': True})

    def test_trigger_forbidden_moves_to_failed(self):
        self.responses = [httpx.Response(403, json={'error_code': 'FORBIDDEN'})]
        with self._poller() as poller:
            self.assertEqual(poller.trigger().stage, FAILED)


if __name__ == '__main__':
    unittest.main()
