# src/incremental_exports/pagination/engine.py

from __future__ import annotations

"""
Pagination engine.

Two cursor-following drains that flatten a remote paged API into one ordered
list of records:

- drain_by_time: time-cursor exports (`?start_time=<cursor>`, pages report
  `end_time` and `end_of_stream`)
- drain_by_offset: page-numbered listings (`?page=N`), continued through a
  `next_page` link or a `has_more_page` flag

Both are iterative with an explicit page bound, sleep between pages to respect
upstream rate limits, and return what they managed to read instead of
raising. The returned `end_cursor` is the resume point for the next drain; the
engine does no deduplication.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import FetchResponse, JSONRecord, PageFetcher

logger = logging.getLogger(__name__)

TIME_CURSOR_MAX_ITERATIONS = 20
OFFSET_MAX_PAGES = 1000

# Minimum inter-page delays. Export-triggering callers use the larger floor.
PLAIN_PULL_FLOOR_MS = 1000
EXPORT_FLOOR_MS = 6000

Sleep = Callable[[float], Awaitable[Any]]


class PaginationConfigError(ValueError):
    """Drain called with an unusable configuration (e.g. no rate limit)."""


class PageFetchError(RuntimeError):
    """A page could not be fetched or did not have the expected shape."""


@dataclass(slots=True)
class PageBatch:
    records: list[JSONRecord]
    end_cursor: str | None = None
    end_of_stream: bool = False
    next_page: str | None = None
    has_more: bool = False


@dataclass(slots=True)
class DrainResult:
    records: list[JSONRecord] = field(default_factory=list)
    end_cursor: str | int | None = None
    pages: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def effective_delay_ms(min_delay_ms: int | float | None, floor_ms: int = PLAIN_PULL_FLOOR_MS) -> int:
    """Clamp the caller's delay to the floor; a missing delay is a config error."""
    if min_delay_ms is None:
        raise PaginationConfigError("A min_delay_ms is required for automatic pagination.")
    return max(int(min_delay_ms), int(floor_ms))


def _records_from(payload: Any, data_key: str) -> list[JSONRecord]:
    if not isinstance(payload, dict):
        raise PageFetchError("page body is not a JSON object")
    batch = payload.get(data_key)
    if not isinstance(batch, list):
        raise PageFetchError(f"page has no {data_key!r} list")
    return batch


def parse_time_page(payload: Any, data_key: str) -> PageBatch:
    records = _records_from(payload, data_key)
    end_time = payload.get("end_time")
    return PageBatch(
        records=records,
        end_cursor=str(end_time) if end_time is not None and end_time != "" else None,
        end_of_stream=bool(payload.get("end_of_stream")),
    )


def parse_offset_page(payload: Any, data_key: str) -> PageBatch:
    records = _records_from(payload, data_key)

    if "next_page" in payload:
        link = payload.get("next_page")
        return PageBatch(records=records, next_page=str(link) if link else None, has_more=bool(link))

    more = payload.get("has_more_page")
    if more is None:
        ctx = payload.get("page_context")
        if isinstance(ctx, dict):
            more = ctx.get("has_more_page")
    return PageBatch(records=records, has_more=bool(more))


def _is_success(resp: FetchResponse) -> bool:
    if not resp.ok:
        return False
    # Some APIs answer 200 with an application-level error code.
    if isinstance(resp.payload, dict) and "code" in resp.payload:
        return resp.payload.get("code") == 0
    return True


async def drain_by_time(
        fetcher: PageFetcher,
        uri: str,
        start_cursor: str | int,
        data_key: str,
        min_delay_ms: int | float | None,
        *,
        floor_ms: int = PLAIN_PULL_FLOOR_MS,
        max_iterations: int = TIME_CURSOR_MAX_ITERATIONS,
        sleep: Sleep = asyncio.sleep,
) -> DrainResult:
    """
    Follow a time cursor until end_of_stream or max_iterations pages.

    On a fetch/parse error the records read so far are returned together with
    the cursor of the last good page (the start cursor if none) and an error
    marker, so the caller can persist partial progress and resume.
    """
    delay_s = effective_delay_ms(min_delay_ms, floor_ms) / 1000.0
    if max_iterations < 1:
        raise PaginationConfigError("max_iterations must be >= 1")

    cursor = str(start_cursor)
    records: list[JSONRecord] = []
    pages = 0

    for page_no in range(1, max_iterations + 1):
        try:
            resp = await fetcher.get_json(uri, {"start_time": cursor})
            if not resp.ok:
                raise PageFetchError(f"HTTP {resp.status_code}")
            batch = parse_time_page(resp.payload, data_key)
            if batch.end_cursor is None and not batch.end_of_stream:
                raise PageFetchError("page reported no end_time")
        except Exception as exc:
            logger.error("Time pagination stopped uri=%s start_time=%s: %s", uri, cursor, exc)
            return DrainResult(
                records=records,
                end_cursor=cursor,
                pages=pages,
                error=f"time pagination failed at start_time={cursor}: {exc}",
            )

        pages += 1
        records.extend(batch.records)
        if batch.end_cursor is not None:
            cursor = batch.end_cursor

        if batch.end_of_stream:
            break
        if page_no == max_iterations:
            logger.info("Time pagination hit %s-page cap uri=%s; resume from %s", max_iterations, uri, cursor)
            break

        await sleep(delay_s)

    logger.debug("Time pagination uri=%s pages=%s records=%s end=%s", uri, pages, len(records), cursor)
    return DrainResult(records=records, end_cursor=cursor, pages=pages)


async def drain_by_offset(
        fetcher: PageFetcher,
        uri: str,
        extra_params: Mapping[str, Any] | None,
        data_key: str,
        min_delay_ms: int | float | None,
        *,
        start_page: int | None = 1,
        max_pages: int | None = None,
        floor_ms: int = PLAIN_PULL_FLOOR_MS,
        sleep: Sleep = asyncio.sleep,
) -> DrainResult:
    """
    Walk page numbers from start_page, at most max_pages fetches.

    Stops when the server reports no more pages, when the page bound is hit,
    or on a non-success response (not an error: accumulated records are still
    returned). end_cursor is the next page number to fetch, None when done.
    """
    delay_s = effective_delay_ms(min_delay_ms, floor_ms) / 1000.0
    limit = int(max_pages) if max_pages and int(max_pages) > 0 else OFFSET_MAX_PAGES
    base_params = dict(extra_params or {})

    page = max(1, int(start_page or 1))
    url = uri
    params: dict[str, Any] = {**base_params, "page": page}
    records: list[JSONRecord] = []
    pages = 0

    while pages < limit:
        try:
            resp = await fetcher.get_json(url, params)
        except Exception as exc:
            logger.error("Offset pagination stopped uri=%s page=%s: %s", url, page, exc)
            return DrainResult(
                records=records,
                end_cursor=page,
                pages=pages,
                error=f"offset pagination failed at page {page}: {exc}",
            )

        if not _is_success(resp):
            logger.info(
                "Offset pagination stopped on non-success response uri=%s page=%s status=%s",
                url,
                page,
                resp.status_code,
            )
            return DrainResult(records=records, end_cursor=page, pages=pages)

        try:
            batch = parse_offset_page(resp.payload, data_key)
        except PageFetchError as exc:
            logger.error("Offset pagination got a malformed page uri=%s page=%s: %s", url, page, exc)
            return DrainResult(
                records=records,
                end_cursor=page,
                pages=pages,
                error=f"offset pagination failed at page {page}: {exc}",
            )

        pages += 1
        records.extend(batch.records)
        page += 1

        if batch.next_page:
            url, params = batch.next_page, dict(base_params)
        elif batch.has_more:
            params = {**base_params, "page": page}
        else:
            return DrainResult(records=records, end_cursor=None, pages=pages)

        if pages < limit:
            await sleep(delay_s)

    logger.info("Offset pagination hit %s-page ceiling uri=%s; resume from page %s", limit, uri, page)
    return DrainResult(records=records, end_cursor=page, pages=pages)
