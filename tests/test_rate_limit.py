import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'backend'))

from revsync.core.rate_limit import SlidingWindowRateLimiter, caller_key, retry_after_header  # noqa: E402


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class SlidingWindowRateLimiterTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.limiter = SlidingWindowRateLimiter(limit=2, window_seconds=60, clock=self.clock)

    def test_budget_refills_as_hits_leave_the_window(self):
        self.assertEqual(self.limiter.hit('user:a'), 0.0)
        self.clock.now += 10
        self.assertEqual(self.limiter.hit('user:a'), 0.0)
        self.assertAlmostEqual(self.limiter.hit('user:a'), 50.0)

        self.clock.now += 50
        self.assertEqual(self.limiter.hit('user:a'), 0.0)

    def test_callers_have_separate_budgets(self):
        self.limiter.hit('user:a')
        self.limiter.hit('user:a')
        self.assertGreater(self.limiter.hit('user:a'), 0)
        self.assertEqual(self.limiter.hit('user:b'), 0.0)

    def test_idle_callers_are_evicted(self):
        for index in range(50):
            self.limiter.hit(f'user:{index}')
        self.assertEqual(self.limiter.tracked_keys(), 50)

        self.clock.now += 61
        self.limiter.hit('user:fresh')
        self.assertEqual(self.limiter.tracked_keys(), 1)

    def test_caller_key(self):
        self.assertEqual(caller_key({'sub': 'user-1', 'role': 'merchant'}), 'user:user-1')
        self.assertEqual(caller_key({'sub': 'cron', 'cron': True}), 'cron')
        self.assertEqual(caller_key({}), 'user:anonymous')

    def test_retry_after_rounds_up(self):
        self.assertEqual(retry_after_header(0.2), {'Retry-After': '1'})
        self.assertEqual(retry_after_header(12.1), {'Retry-After': '13'})


if __name__ == '__main__':
    unittest.main()
