# src/incremental_exports/workers/incremental.py

from __future__ import annotations

"""
Incremental export workers.

One worker per time-cursor source. On each run it:
- reads the stored cursor for its schedule key (missing -> now),
- drains the source from that cursor,
- strips unwanted keys and exports the records (NDJSON + transfer run),
- advances the cursor once the records are safely exported.

Workers are built from JSON definitions, so adding a source needs no code.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..core.ports import PageFetcher, ScheduleRepo
from ..export.pipeline import ExportPipeline
from ..export.records import cursor_to_rfc3339, delete_keys
from ..pagination.engine import EXPORT_FLOOR_MS, TIME_CURSOR_MAX_ITERATIONS, drain_by_time
from .registry import InvocationStyle, WorkerRegistry, WorkerResult

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class IncrementalExportDefinition:
    name: str
    uri: str
    data_key: str
    blob_name: str
    folder_path: str = ""
    transfer_path: str | None = None
    min_delay_ms: int = EXPORT_FLOOR_MS
    max_iterations: int = TIME_CURSOR_MAX_ITERATIONS
    keys_to_delete: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> IncrementalExportDefinition:
        missing = [k for k in ("name", "uri", "data_key", "blob_name") if not raw.get(k)]
        if missing:
            raise ValueError(f"worker definition is missing {', '.join(missing)}: {raw!r}")
        return cls(
            name=str(raw["name"]),
            uri=str(raw["uri"]),
            data_key=str(raw["data_key"]),
            blob_name=str(raw["blob_name"]),
            folder_path=str(raw.get("folder_path") or ""),
            transfer_path=raw.get("transfer_path") or None,
            min_delay_ms=int(raw.get("min_delay_ms") or EXPORT_FLOOR_MS),
            max_iterations=int(raw.get("max_iterations") or TIME_CURSOR_MAX_ITERATIONS),
            keys_to_delete=tuple(raw.get("keys_to_delete") or ()),
        )


def load_worker_definitions(path: str | Path) -> list[IncrementalExportDefinition]:
    """Read a JSON list of worker definitions."""
    data = json.loads(Path(path).read_text("utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of worker definitions")
    return [IncrementalExportDefinition.from_dict(item) for item in data]


class IncrementalExportWorker:
    def __init__(
        self,
        definition: IncrementalExportDefinition,
        *,
        schedules: ScheduleRepo,
        fetcher: PageFetcher,
        pipeline: ExportPipeline,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.definition = definition
        self._schedules = schedules
        self._fetcher = fetcher
        self._pipeline = pipeline
        self._sleep = sleep

    async def __call__(self, schedule_key: str) -> WorkerResult:
        d = self.definition
        start = self._schedules.get_start_time(schedule_key)

        drain = await drain_by_time(
            self._fetcher,
            d.uri,
            start,
            d.data_key,
            d.min_delay_ms,
            floor_ms=EXPORT_FLOOR_MS,
            max_iterations=d.max_iterations,
            sleep=self._sleep,
        )
        end_cursor = str(drain.end_cursor) if drain.end_cursor is not None else start
        records = delete_keys(drain.records, d.keys_to_delete)
        summary: dict[str, Any] = {"records": len(records), "pages": drain.pages, "export": None}

        if records:
            outcome = await self._pipeline.export_and_transfer(
                d.transfer_path or schedule_key,
                d.blob_name,
                d.folder_path,
                records,
                custom_time=cursor_to_rfc3339(end_cursor),
            )
            summary["export"] = outcome.status.value
            if not outcome.ok:
                # Cursor stays put: the next run re-reads the same window.
                return WorkerResult(result=summary, end_cursor=start, error=outcome.message)
        else:
            logger.info("%s: no %s to write", d.name, d.data_key)

        if end_cursor != start:
            self._schedules.update_start_time(schedule_key, end_cursor)

        return WorkerResult(result=summary, end_cursor=end_cursor, error=drain.error)


def register_incremental_workers(
    registry: WorkerRegistry,
    definitions: Iterable[IncrementalExportDefinition],
    *,
    schedules: ScheduleRepo,
    fetcher: PageFetcher,
    pipeline: ExportPipeline,
) -> int:
    count = 0
    for definition in definitions:
        worker = IncrementalExportWorker(
            definition, schedules=schedules, fetcher=fetcher, pipeline=pipeline
        )
        registry.register(definition.name, worker, style=InvocationStyle.SCHEDULE_KEY)
        count += 1
    logger.info("Registered %s incremental export worker(s)", count)
    return count
