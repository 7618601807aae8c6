# src/incremental_exports/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..export.pipeline import ExportPipeline
from ..tasks.schedule_store import ScheduleStore
from ..tasks.task_store import TaskStore
from ..workers.registry import WorkerRegistry
from .ports import PageFetcher, TransferService


@dataclass
class AppState:
    # Settings object shared by every component built from it.
    settings: Any

    task_store: TaskStore
    schedules: ScheduleStore
    workers: WorkerRegistry

    fetcher: PageFetcher
    transfer: TransferService
    pipeline: ExportPipeline
