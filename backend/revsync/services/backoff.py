"""
Bounded retry with exponential backoff and jitter for billing API calls.

Only transient error kinds (rate limit, connection, upstream API fault) are
retried. Everything else propagates on the first attempt.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

_MAX_LOGGED_MESSAGE = 200
_JITTER_RATIO = 0.3


class ErrorKind:
    RATE_LIMIT = 'rate_limit'
    CONNECTION = 'connection'
    API = 'api'
    AUTHENTICATION = 'authentication'
    NOT_FOUND = 'not_found'
    INVALID_REQUEST = 'invalid_request'
    INVALID_RESPONSE = 'invalid_response'

    RETRYABLE = frozenset({RATE_LIMIT, CONNECTION, API})


class BillingAPIError(RuntimeError):
    """Failure reported by the billing platform boundary, tagged with an ErrorKind."""

    def __init__(self, kind: str, message: str, status_code: int | None = None) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind in ErrorKind.RETRYABLE


@dataclass(frozen=True)
class RetryOptions:
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000


DEFAULT_RETRY_OPTIONS = RetryOptions()


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, BillingAPIError) and exc.retryable


def compute_delay_ms(attempt: int, options: RetryOptions) -> float:
    return float(min(options.base_delay_ms * (2 ** attempt), options.max_delay_ms))


def execute_with_backoff(
    work: Callable[[], T],
    options: RetryOptions | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    uniform: Callable[[float, float], float] = random.uniform,
) -> T:
    """
    Run `work` until it succeeds or the attempt budget is spent.

    `options.max_retries` is the total number of attempts. After the last
    attempt fails the last error is re-raised unchanged.
    """
    opts = options or DEFAULT_RETRY_OPTIONS
    attempts = max(1, int(opts.max_retries))
    attempt = 0
    while True:
        try:
            return work()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            if attempt >= attempts - 1:
                logger.error('billing call failed after %s attempt(s): %s', attempt + 1, str(exc)[:_MAX_LOGGED_MESSAGE])
                raise
            delay_ms = compute_delay_ms(attempt, opts)
            jitter_ms = delay_ms * uniform(0.0, _JITTER_RATIO)
            total_ms = delay_ms + jitter_ms
            logger.warning(
                'billing call retry %s/%s kind=%s delay_ms=%s error=%s',
                attempt + 1,
                attempts,
                getattr(exc, 'kind', None),
                round(total_ms),
                str(exc)[:_MAX_LOGGED_MESSAGE],
            )
            sleep(total_ms / 1000.0)
            attempt += 1
