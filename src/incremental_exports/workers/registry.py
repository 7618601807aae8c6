# src/incremental_exports/workers/registry.py

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable

logger = logging.getLogger(__name__)

WorkerFn = Callable[[Any], Awaitable[Any]]


class UnknownWorkerError(KeyError):
    """No worker is registered under the requested name."""


class InvocationStyle(str, Enum):
    # worker receives the task's schedule key and resumes from the stored cursor
    SCHEDULE_KEY = "schedule_key"
    # worker receives the task's options payload
    OPTIONS = "options"


@dataclass(slots=True)
class WorkerResult:
    """
    Outcome value returned by workers.

    A result carrying `error` is a handled failure: the worker did not raise,
    but the dispatcher still reschedules it with the failure backoff.
    """

    result: Any = None
    end_cursor: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True, frozen=True)
class WorkerSpec:
    name: str
    fn: WorkerFn
    style: InvocationStyle = InvocationStyle.SCHEDULE_KEY


class WorkerRegistry:
    """Explicit name -> worker mapping used by the dispatcher."""

    def __init__(self) -> None:
        self._workers: dict[str, WorkerSpec] = {}

    def register(
        self,
        name: str,
        fn: WorkerFn,
        *,
        style: InvocationStyle = InvocationStyle.SCHEDULE_KEY,
    ) -> None:
        name = (name or "").strip()
        if not name:
            raise ValueError("worker name is required")
        if name in self._workers:
            logger.warning("Worker %s re-registered; replacing previous entry", name)
        self._workers[name] = WorkerSpec(name=name, fn=fn, style=style)

    def resolve(self, name: str) -> WorkerSpec:
        try:
            return self._workers[name]
        except KeyError:
            raise UnknownWorkerError(name) from None

    def names(self) -> list[str]:
        return sorted(self._workers)

    def __contains__(self, name: object) -> bool:
        return name in self._workers

    def __iter__(self) -> Iterator[WorkerSpec]:
        return iter(self._workers.values())

    def __len__(self) -> int:
        return len(self._workers)
