# src/incremental_exports/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (stores/HTTP/blob/transfer),
- registers the incremental export workers listed in the workers file.
"""

from __future__ import annotations

import contextlib
import logging

from ..config import get_settings
from ..core.state import AppState
from ..export.blob_store import blob_store_from_settings
from ..export.pipeline import ExportPipeline
from ..export.transfer import HttpTransferService
from ..pagination.http_fetcher import HttpPageFetcher
from ..tasks.schedule_store import ScheduleStore
from ..tasks.task_store import TaskStore
from ..workers.incremental import load_worker_definitions, register_incremental_workers
from ..workers.registry import WorkerRegistry

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.schedules_db_path.parent.mkdir(parents=True, exist_ok=True)
    if settings.blob_backend == "local":
        settings.blob_root.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    schedules = ScheduleStore(settings.schedules_db_path)
    fetcher = HttpPageFetcher.from_settings(settings)
    transfer = HttpTransferService.from_settings(settings)
    pipeline = ExportPipeline(
        blob_store_from_settings(settings),
        transfer,
        schedules,
        settle_seconds=settings.export_settle_seconds,
        poll_interval_seconds=settings.transfer_poll_interval_seconds,
        max_poll_attempts=settings.transfer_max_poll_attempts,
    )

    workers = WorkerRegistry()
    workers_file = getattr(settings, "workers_file", None)
    if workers_file:
        register_incremental_workers(
            workers,
            load_worker_definitions(workers_file),
            schedules=schedules,
            fetcher=fetcher,
            pipeline=pipeline,
        )
    else:
        logger.warning("No workers file configured; due tasks will fail with unknown worker")

    return AppState(
        settings=settings,
        task_store=TaskStore(settings.tasks_db_path),
        schedules=schedules,
        workers=workers,
        fetcher=fetcher,
        transfer=transfer,
        pipeline=pipeline,
    )


async def close_state(state: AppState) -> None:
    """Close HTTP clients owned by the state. Stores need no explicit close."""
    for component in (state.fetcher, state.transfer):
        aclose = getattr(component, "aclose", None)
        if aclose is None:
            continue
        with contextlib.suppress(Exception):
            await aclose()
