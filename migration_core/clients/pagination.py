"""
Header-driven pagination
Follows next-page cursors, merging items and pagination/rate-limit metadata
"""
import time
from collections import namedtuple

from migration_core.logging.logger import get_logger

logger = get_logger("pagination")

PageScheme = namedtuple(
    "PageScheme",
    ["page_param", "size_param", "next_header", "items_key", "first_cursor"]
)

# GitLab: ?page=N&per_page=M, X-Next-Page header (empty on the last page)
GITLAB_PAGES = PageScheme("page", "per_page", "X-Next-Page", None, 1)

# Azure DevOps: ?$top=M&continuationToken=T, {"count": n, "value": [...]} envelope
ADO_CONTINUATION = PageScheme("continuationToken", "$top", "x-ms-continuationtoken", "value", None)

PageMeta = namedtuple(
    "PageMeta",
    [
        "endpoint",
        "page_size",
        "total",
        "total_pages",
        "collected_pages",
        "total_time_ms",
        "avg_time_per_page_ms",
        "rate_limit_remaining",
        "rate_limit_reset",
        "link_header",
    ]
)

FetchResult = namedtuple("FetchResult", ["items", "meta", "denied"])


def _header(headers, *names):
    for name in names:
        value = headers.get(name)
        if value not in (None, ""):
            return value
    return None


def _int_header(headers, *names):
    value = _header(headers, *names)
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class _PageTracker:
    """Mutable metadata collected during one fetch; frozen into PageMeta at the end."""

    def __init__(self, endpoint, page_size, clock):
        self.endpoint = endpoint
        self.page_size = page_size
        self.clock = clock
        self.started = clock()
        self.total = None
        self.total_pages = None
        self.collected_pages = 0
        self.rate_limit_remaining = None
        self.rate_limit_reset = None
        self.link_header = None

    def record_page(self, headers):
        self.collected_pages += 1
        total = _int_header(headers, "X-Total")
        if total is not None:
            self.total = total
        total_pages = _int_header(headers, "X-Total-Pages")
        if total_pages is not None:
            self.total_pages = total_pages
        remaining = _int_header(headers, "RateLimit-Remaining", "X-RateLimit-Remaining")
        if remaining is not None:
            self.rate_limit_remaining = remaining
        reset = _header(headers, "RateLimit-Reset", "X-RateLimit-Reset")
        if reset is not None:
            self.rate_limit_reset = reset
        link = _header(headers, "Link")
        if link is not None:
            self.link_header = link

    def snapshot(self):
        total_time_ms = (self.clock() - self.started) * 1000
        avg = total_time_ms / self.collected_pages if self.collected_pages else 0.0
        return PageMeta(
            endpoint=self.endpoint,
            page_size=self.page_size,
            total=self.total,
            total_pages=self.total_pages,
            collected_pages=self.collected_pages,
            total_time_ms=total_time_ms,
            avg_time_per_page_ms=avg,
            rate_limit_remaining=self.rate_limit_remaining,
            rate_limit_reset=self.rate_limit_reset,
            link_header=self.link_header,
        )


class PaginatedAggregator:
    """
    Collects every page of a listing endpoint.

    A denial on any page stops the fetch and reports denied=True with
    items=None, so "not authorized" is never confused with "nothing exists".
    """

    def __init__(self, call, page_size=100, clock=time.monotonic):
        """
        Args:
            call: Callable(side, method, endpoint, params=...) -> CallResult
            page_size: Items requested per page
            clock: Monotonic clock in seconds
        """
        self.call = call
        self.page_size = page_size
        self.clock = clock

    def fetch_all(self, side, endpoint, query=None, scheme=GITLAB_PAGES):
        """
        Fetch all pages of an endpoint.

        Args:
            side: API side
            endpoint: Path or URL of the listing
            query: Extra query parameters
            scheme: PageScheme describing the cursor parameters

        Returns:
            FetchResult: (items, meta, denied)

        Raises:
            NormalizedError: A page failed with a non-denial error
        """
        tracker = _PageTracker(endpoint, self.page_size, self.clock)
        items = []
        cursor = scheme.first_cursor

        while True:
            params = dict(query or {})
            params[scheme.size_param] = self.page_size
            if cursor is not None:
                params[scheme.page_param] = cursor

            result = self.call(side, "GET", endpoint, params=params)

            if result.is_denied:
                logger.warning(
                    f"Listing denied ({result.status_code}) for {endpoint} "
                    f"after {tracker.collected_pages} page(s)"
                )
                return FetchResult(None, tracker.snapshot(), True)

            tracker.record_page(result.headers)
            page_items = result.items(scheme.items_key)
            items.extend(page_items)

            if not page_items:
                break

            next_cursor = _header(result.headers, scheme.next_header)
            if next_cursor is None:
                break
            if str(next_cursor) == str(cursor):
                logger.warning(f"Server repeated page cursor {cursor} for {endpoint}, stopping")
                break
            cursor = next_cursor

        meta = tracker.snapshot()
        logger.debug(
            f"Fetched {len(items)} item(s) from {endpoint} in {meta.collected_pages} page(s) "
            f"({meta.total_time_ms:.0f} ms, {meta.avg_time_per_page_ms:.0f} ms/page)"
        )
        return FetchResult(items, meta, False)
