import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'backend'))

from revsync.services.backoff import BillingAPIError, ErrorKind, RetryOptions  # noqa: E402
from revsync.services.pagination import BillingPage, fetch_all  # noqa: E402


def _items(*ids):
    return [{'id': i} for i in ids]


class _Pages:
    def __init__(self, pages):
        self.pages = list(pages)
        self.cursors = []

    def __call__(self, starting_after, limit):
        self.cursors.append(starting_after)
        page = self.pages.pop(0)
        if isinstance(page, BaseException):
            raise page
        return page


class FetchAllTests(unittest.TestCase):
    def test_walks_pages_in_order_and_advances_cursor(self):
        pages = _Pages([
            BillingPage(_items('a', 'b'), True),
            BillingPage(_items('c'), True),
            BillingPage(_items('d'), False),
        ])
        result = fetch_all(pages, max_pages=10)
        self.assertEqual([item['id'] for item in result], ['a', 'b', 'c', 'd'])
        self.assertEqual(pages.cursors, [None, 'b', 'c'])

    def test_stops_at_max_pages_and_warns(self):
        pages = _Pages([BillingPage(_items(f'x{i}'), True) for i in range(5)])
        with self.assertLogs('revsync.services.pagination', level='WARNING') as logs:
            result = fetch_all(pages, max_pages=3)
        self.assertEqual(len(result), 3)
        self.assertEqual(len(pages.cursors), 3)
        self.assertTrue(any('max pages' in line for line in logs.output))

    def test_empty_page_ends_walk_even_if_more_reported(self):
        pages = _Pages([BillingPage(_items('a'), True), BillingPage([], True), BillingPage(_items('never'), False)])
        result = fetch_all(pages, max_pages=10)
        self.assertEqual([item['id'] for item in result], ['a'])
        self.assertEqual(len(pages.cursors), 2)

    def test_transient_page_error_is_retried(self):
        pages = _Pages([
            BillingPage(_items('a'), True),
            BillingAPIError(ErrorKind.RATE_LIMIT, 'busy', 429),
            BillingPage(_items('b'), False),
        ])
        result = fetch_all(pages, options=RetryOptions(max_retries=3, base_delay_ms=0, max_delay_ms=0), sleep=lambda s: None)
        self.assertEqual([item['id'] for item in result], ['a', 'b'])
        self.assertEqual(pages.cursors, [None, 'a', 'a'])

    def test_fatal_error_discards_partial_results(self):
        pages = _Pages([BillingPage(_items('a'), True), BillingAPIError(ErrorKind.INVALID_REQUEST, 'bad', 400)])
        with self.assertRaises(BillingAPIError):
            fetch_all(pages, sleep=lambda s: None)


if __name__ == '__main__':
    unittest.main()
