# src/incremental_exports/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

FAMILY_SEPARATOR = "_"
DEFAULT_COLLECTION = "incremental"
DEFAULT_CYCLE_MINUTES = 1440


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - "working" is transient: the dispatch cycle that sets it resolves it back
      to "scheduled" before returning.
    - "hold4conflict" parks a task whose family already had a run this cycle.
    """

    SCHEDULED = "scheduled"
    WORKING = "working"
    HOLD_FOR_CONFLICT = "hold4conflict"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.SCHEDULED
        try:
            return cls(raw)
        except ValueError:
            return cls.SCHEDULED


def schedule_family(worker_name: str) -> str:
    """'zendesk_incrementalTickets' -> 'zendesk'."""
    return worker_name.split(FAMILY_SEPARATOR, 1)[0]


def schedule_key(worker_name: str) -> str:
    """'zendesk_incrementalTickets' -> 'zendesk/incrementalTickets'."""
    return worker_name.replace(FAMILY_SEPARATOR, "/", 1)


@dataclass(slots=True)
class Task:
    id: str
    collection: str
    worker_name: str
    perform_at: float
    status: TaskStatus
    options: dict[str, Any]
    created_at: float
    updated_at: float

    @property
    def family(self) -> str:
        return schedule_family(self.worker_name)

    @property
    def schedule_key(self) -> str:
        return schedule_key(self.worker_name)


@dataclass(slots=True)
class ScheduleEntry:
    schedule_key: str
    cycle_minutes: int | None
    start_time: str | None
    updated_at: float
