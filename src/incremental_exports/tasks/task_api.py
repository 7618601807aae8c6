# src/incremental_exports/tasks/task_api.py

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Any

from ..core.ports import TaskRepo
from .task_models import DEFAULT_COLLECTION, TaskStatus

logger = logging.getLogger(__name__)


def resolve_perform_at(perform_at: datetime | int | float | None, *, now_ts: float | None = None) -> float:
    """
    datetime -> its epoch seconds (naive values are taken as UTC);
    number   -> that many minutes from now;
    None     -> now.
    """
    now = time.time() if now_ts is None else float(now_ts)
    if perform_at is None:
        return now
    if isinstance(perform_at, datetime):
        if perform_at.tzinfo is None:
            perform_at = perform_at.replace(tzinfo=UTC)
        return perform_at.timestamp()
    return now + float(perform_at) * 60.0


def create_scheduled_job(
    task_store: TaskRepo,
    worker_name: str,
    perform_at: datetime | int | float | None = None,
    run_data: Any = None,
    *,
    collection: str = DEFAULT_COLLECTION,
    status: TaskStatus = TaskStatus.SCHEDULED,
    task_id: str | None = None,
) -> str:
    """
    Schedule a recurring worker run.

    With task_id the existing task document is replaced, otherwise a new one
    is created. Returns the task id.
    """
    due = resolve_perform_at(perform_at)
    tid = task_store.add_task(
        worker_name=worker_name,
        perform_at=due,
        options={"run_data": run_data},
        status=status,
        collection=collection or DEFAULT_COLLECTION,
        task_id=task_id,
    )
    logger.info("Scheduled %s as task %s at %.0f (collection=%s)", worker_name, tid, due, collection)
    return tid
