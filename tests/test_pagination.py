# tests/test_pagination.py

from __future__ import annotations

import pytest

from incremental_exports.core.ports import FetchResponse
from incremental_exports.pagination.engine import (
    EXPORT_FLOOR_MS,
    PaginationConfigError,
    drain_by_offset,
    drain_by_time,
    effective_delay_ms,
)

from .fakes import RecordingSleep, ScriptedFetcher, TimePagedSource, ok

URI = "/api/v2/incremental/tickets/cursor.json"


# ---- time cursor ----


@pytest.mark.asyncio
async def test_time_drain_reads_all_pages_in_order() -> None:
    source = TimePagedSource(45, page_size=10)
    sleep = RecordingSleep()

    result = await drain_by_time(source, URI, "1000", "tickets", 1500, sleep=sleep)

    assert result.ok
    assert result.pages == 5
    assert [r["id"] for r in result.records] == list(range(45))
    assert result.end_cursor == "1045"
    assert [params["start_time"] for _, params in source.calls] == ["1000", "1010", "1020", "1030", "1040"]
    # No sleep after the final page.
    assert sleep.calls == [1.5] * 4


@pytest.mark.asyncio
async def test_time_drain_is_resumable_from_end_cursor() -> None:
    source = TimePagedSource(45, page_size=10)
    sleep = RecordingSleep()

    first = await drain_by_time(source, URI, 1000, "tickets", 1000, max_iterations=2, sleep=sleep)
    assert first.ok and first.pages == 2
    assert first.end_cursor == "1020"

    second = await drain_by_time(source, URI, first.end_cursor, "tickets", 1000, sleep=sleep)
    assert second.ok and second.pages == 3

    ids = [r["id"] for r in first.records + second.records]
    assert ids == list(range(45))


@pytest.mark.asyncio
async def test_time_drain_caps_at_twenty_pages() -> None:
    source = TimePagedSource(500, page_size=10)
    sleep = RecordingSleep()

    result = await drain_by_time(source, URI, "1000", "tickets", 1000, sleep=sleep)

    assert result.ok
    assert result.pages == 20
    assert len(result.records) == 200
    assert result.end_cursor == "1200"
    assert len(sleep.calls) == 19


@pytest.mark.asyncio
async def test_time_drain_empty_stream_keeps_cursor() -> None:
    source = TimePagedSource(0)

    result = await drain_by_time(source, URI, "1000", "tickets", 1000, sleep=RecordingSleep())

    assert result.ok
    assert result.records == []
    assert result.end_cursor == "1000"
    assert result.pages == 1


@pytest.mark.asyncio
async def test_time_drain_clamps_delay_to_floor() -> None:
    plain = RecordingSleep()
    await drain_by_time(TimePagedSource(25), URI, "1000", "tickets", 10, sleep=plain)
    assert plain.calls == [1.0, 1.0]

    export = RecordingSleep()
    await drain_by_time(
        TimePagedSource(25), URI, "1000", "tickets", 10, floor_ms=EXPORT_FLOOR_MS, sleep=export
    )
    assert export.calls == [6.0, 6.0]


@pytest.mark.asyncio
async def test_time_drain_requires_delay() -> None:
    with pytest.raises(PaginationConfigError):
        await drain_by_time(TimePagedSource(5), URI, "1000", "tickets", None, sleep=RecordingSleep())


@pytest.mark.asyncio
async def test_time_drain_error_returns_partial_progress() -> None:
    fetcher = ScriptedFetcher(
        [
            ok({"tickets": [{"id": 1}, {"id": 2}], "end_time": 2000, "end_of_stream": False}),
            RuntimeError("connection reset"),
        ]
    )

    result = await drain_by_time(fetcher, URI, "1000", "tickets", 1000, sleep=RecordingSleep())

    assert not result.ok
    assert "connection reset" in (result.error or "")
    assert [r["id"] for r in result.records] == [1, 2]
    assert result.end_cursor == "2000"
    assert result.pages == 1


@pytest.mark.asyncio
async def test_time_drain_http_error_is_reported() -> None:
    fetcher = ScriptedFetcher([FetchResponse(status_code=429, payload={"error": "slow down"})])

    result = await drain_by_time(fetcher, URI, "1000", "tickets", 1000, sleep=RecordingSleep())

    assert not result.ok
    assert "429" in (result.error or "")
    assert result.records == []
    assert result.end_cursor == "1000"


@pytest.mark.asyncio
async def test_time_drain_page_without_end_time_is_an_error() -> None:
    fetcher = ScriptedFetcher([ok({"tickets": [{"id": 1}], "end_of_stream": False})])

    result = await drain_by_time(fetcher, URI, "1000", "tickets", 1000, sleep=RecordingSleep())

    assert not result.ok
    assert result.end_cursor == "1000"


# ---- offset / page number ----


@pytest.mark.asyncio
async def test_offset_drain_follows_has_more_page() -> None:
    fetcher = ScriptedFetcher(
        [
            ok({"code": 0, "invoices": [{"id": 1}], "page_context": {"has_more_page": True}}),
            ok({"code": 0, "invoices": [{"id": 2}], "page_context": {"has_more_page": False}}),
        ]
    )
    sleep = RecordingSleep()

    result = await drain_by_offset(fetcher, "/invoices", {"organization_id": "42"}, "invoices", 1200, sleep=sleep)

    assert result.ok
    assert [r["id"] for r in result.records] == [1, 2]
    assert result.end_cursor is None
    assert [params for _, params in fetcher.calls] == [
        {"organization_id": "42", "page": 1},
        {"organization_id": "42", "page": 2},
    ]
    assert sleep.calls == [1.2]


@pytest.mark.asyncio
async def test_offset_drain_follows_next_page_link() -> None:
    fetcher = ScriptedFetcher(
        [
            ok({"tickets": [{"id": 1}], "next_page": "https://x.test/api/tickets.json?page=2"}),
            ok({"tickets": [{"id": 2}], "next_page": None}),
        ]
    )

    result = await drain_by_offset(fetcher, "/api/tickets.json", None, "tickets", 1000, sleep=RecordingSleep())

    assert [r["id"] for r in result.records] == [1, 2]
    assert fetcher.calls == [
        ("/api/tickets.json", {"page": 1}),
        ("https://x.test/api/tickets.json?page=2", {}),
    ]
    assert result.end_cursor is None


@pytest.mark.asyncio
async def test_offset_drain_stops_on_application_error_code() -> None:
    fetcher = ScriptedFetcher(
        [
            ok({"code": 0, "items": [{"id": 1}], "page_context": {"has_more_page": True}}),
            ok({"code": 57, "message": "not authorized", "items": []}),
        ]
    )

    result = await drain_by_offset(fetcher, "/items", None, "items", 1000, sleep=RecordingSleep())

    assert result.ok
    assert [r["id"] for r in result.records] == [1]
    assert result.end_cursor == 2


@pytest.mark.asyncio
async def test_offset_drain_stops_on_http_error_without_error_marker() -> None:
    fetcher = ScriptedFetcher([FetchResponse(status_code=500, payload=None)])

    result = await drain_by_offset(fetcher, "/items", None, "items", 1000, sleep=RecordingSleep())

    assert result.ok
    assert result.records == []
    assert result.end_cursor == 1


@pytest.mark.asyncio
async def test_offset_drain_respects_page_bound() -> None:
    pages = [ok({"items": [{"id": i}], "has_more_page": True}) for i in range(5)]
    fetcher = ScriptedFetcher(pages)
    sleep = RecordingSleep()

    result = await drain_by_offset(fetcher, "/items", None, "items", 1000, max_pages=3, sleep=sleep)

    assert result.pages == 3
    assert [r["id"] for r in result.records] == [0, 1, 2]
    assert result.end_cursor == 4
    assert len(sleep.calls) == 2


@pytest.mark.asyncio
async def test_offset_drain_starts_at_given_page() -> None:
    fetcher = ScriptedFetcher([ok({"items": [], "has_more_page": False})])

    await drain_by_offset(fetcher, "/items", None, "items", 1000, start_page=7, sleep=RecordingSleep())

    assert fetcher.calls == [("/items", {"page": 7})]


@pytest.mark.asyncio
async def test_offset_drain_transport_error_is_reported() -> None:
    fetcher = ScriptedFetcher(
        [
            ok({"items": [{"id": 1}], "has_more_page": True}),
            ConnectionError("refused"),
        ]
    )

    result = await drain_by_offset(fetcher, "/items", None, "items", 1000, sleep=RecordingSleep())

    assert not result.ok
    assert [r["id"] for r in result.records] == [1]
    assert result.end_cursor == 2


@pytest.mark.asyncio
async def test_offset_drain_requires_delay() -> None:
    with pytest.raises(PaginationConfigError):
        await drain_by_offset(ScriptedFetcher([]), "/items", None, "items", None, sleep=RecordingSleep())


def test_effective_delay() -> None:
    assert effective_delay_ms(200) == 1000
    assert effective_delay_ms(2500) == 2500
    assert effective_delay_ms(2500, floor_ms=EXPORT_FLOOR_MS) == 6000
    with pytest.raises(PaginationConfigError):
        effective_delay_ms(None)
