from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from revsync.services.backoff import RetryOptions, execute_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 100
DEFAULT_PAGE_SIZE = 100


@dataclass(frozen=True)
class BillingPage:
    """One batch of records from a list endpoint plus the has-more flag."""

    items: list[dict[str, Any]] = field(default_factory=list)
    has_more: bool = False


PageFn = Callable[[str | None, int], BillingPage]


def fetch_all(
    page_fn: PageFn,
    max_pages: int = DEFAULT_MAX_PAGES,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    options: RetryOptions | None = None,
    sleep: Callable[[float], None] | None = None,
) -> list[dict[str, Any]]:
    """
    Walk a cursor-paginated list endpoint and return every item in order.

    `page_fn(starting_after, limit)` is called through the backoff executor.
    The walk stops when the source reports no more pages, when a page comes
    back empty while still claiming more, or after `max_pages` pages. In the
    last case the result is a bounded snapshot and a warning is logged.
    Errors propagate and nothing collected so far is returned.
    """
    items: list[dict[str, Any]] = []
    starting_after: str | None = None
    has_more = True
    page_count = 0
    backoff_kwargs = {'sleep': sleep} if sleep is not None else {}

    while has_more and page_count < max_pages:
        cursor = starting_after
        page = execute_with_backoff(lambda: page_fn(cursor, page_size), options, **backoff_kwargs)
        items.extend(page.items)
        has_more = bool(page.has_more)
        page_count += 1

        if not page.items:
            if has_more:
                logger.warning('empty page with has_more=true after %s page(s); stopping', page_count)
            break
        starting_after = str(page.items[-1].get('id') or '') or None
        if has_more and starting_after is None:
            logger.warning('last item on page %s has no id; cannot advance cursor', page_count)
            break

    if has_more and page_count >= max_pages:
        logger.warning('reached max pages (%s); returning %s item(s), more data remains', max_pages, len(items))
    return items
