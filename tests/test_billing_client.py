import sys
import unittest
from pathlib import Path

import httpx

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'backend'))

from revsync.services.backoff import BillingAPIError, ErrorKind, RetryOptions  # noqa: E402
from revsync.services.billing_api import ACCOUNT_HEADER, BillingAPI  # noqa: E402
from revsync.services.billing_client import DeletedResourceError, SafeBillingClient  # noqa: E402

NO_WAIT = RetryOptions(max_retries=3, base_delay_ms=0, max_delay_ms=0)


class SafeBillingClientTests(unittest.TestCase):
    def setUp(self):
        self.requests = []
        self.responses = []

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def _client(self, **kwargs):
        api = BillingAPI(
            'sk_test_123',
            account_id='acct_1',
            base_url='https://billing.test',
            transport=httpx.MockTransport(self._handler),
        )
        kwargs.setdefault('retry_options', NO_WAIT)
        kwargs.setdefault('sleep', lambda s: None)
        return SafeBillingClient(api, **kwargs)

    def test_lists_every_page_with_account_header(self):
        self.responses = [
            httpx.Response(200, json={'data': [{'id': 'sub_1'}, {'id': 'sub_2'}], 'has_more': True}),
            httpx.Response(200, json={'data': [{'id': 'sub_3'}], 'has_more': False}),
        ]
        client = self._client(page_size=2)
        subs = client.list_all_subscriptions(status='all')
        client.close()

        self.assertEqual([s['id'] for s in subs], ['sub_1', 'sub_2', 'sub_3'])
        self.assertEqual(len(self.requests), 2)
        first, second = self.requests
        self.assertEqual(first.url.path, '/v1/subscriptions')
        self.assertEqual(first.headers[ACCOUNT_HEADER], 'acct_1')
        self.assertEqual(first.headers['Authorization'], 'Bearer sk_test_123')
        self.assertEqual(first.url.params.get('status'), 'all')
        self.assertEqual(first.url.params.get('limit'), '2')
        self.assertIsNone(first.url.params.get('starting_after'))
        self.assertEqual(second.url.params.get('starting_after'), 'sub_2')

    def test_nested_filters_are_flattened(self):
        self.responses = [httpx.Response(200, json={'data': [], 'has_more': False})]
        client = self._client()
        client.list_all_invoices(created={'gte': 1700000000})
        self.assertEqual(self.requests[0].url.params.get('created[gte]'), '1700000000')

    def test_rate_limited_page_is_retried(self):
        self.responses = [
            httpx.Response(429, json={'error': {'message': 'Too many requests'}}),
            httpx.Response(200, json={'data': [{'id': 'cus_1'}], 'has_more': False}),
        ]
        client = self._client()
        customers = client.list_all_customers()
        self.assertEqual([c['id'] for c in customers], ['cus_1'])
        self.assertEqual(len(self.requests), 2)

    def test_authentication_error_is_not_retried(self):
        self.responses = [httpx.Response(401, json={'error': {'message': 'Invalid API Key'}})]
        client = self._client()
        with self.assertRaises(BillingAPIError) as ctx:
            client.list_all_charges()
        self.assertEqual(ctx.exception.kind, ErrorKind.AUTHENTICATION)
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertIn('Invalid API Key', str(ctx.exception))
        self.assertEqual(len(self.requests), 1)

    def test_server_errors_exhaust_attempts(self):
        self.responses = [httpx.Response(503, text='unavailable') for _ in range(3)]
        client = self._client()
        with self.assertRaises(BillingAPIError) as ctx:
            client.get_subscription('sub_9')
        self.assertEqual(ctx.exception.kind, ErrorKind.API)
        self.assertEqual(len(self.requests), 3)

    def test_malformed_body_is_invalid_response(self):
        self.responses = [httpx.Response(200, text='<html>oops</html>')]
        client = self._client()
        with self.assertRaises(BillingAPIError) as ctx:
            client.get_subscription('sub_1')
        self.assertEqual(ctx.exception.kind, ErrorKind.INVALID_RESPONSE)

    def test_get_customer_rejects_deleted_customer(self):
        self.responses = [httpx.Response(200, json={'id': 'cus_gone', 'deleted': True})]
        client = self._client()
        with self.assertRaises(DeletedResourceError) as ctx:
            client.get_customer('cus_gone')
        self.assertIn('cus_gone', str(ctx.exception))
        self.assertEqual(self.requests[0].url.path, '/v1/customers/cus_gone')

    def test_connection_error_maps_to_connection_kind(self):
        def _boom(request):
            raise httpx.ConnectError('refused', request=request)

        api = BillingAPI('sk_test_123', base_url='https://billing.test', transport=httpx.MockTransport(_boom))
        client = SafeBillingClient(api, retry_options=RetryOptions(max_retries=1), sleep=lambda s: None)
        with self.assertRaises(BillingAPIError) as ctx:
            client.get_customer('cus_1')
        self.assertEqual(ctx.exception.kind, ErrorKind.CONNECTION)


if __name__ == '__main__':
    unittest.main()
