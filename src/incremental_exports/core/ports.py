# src/incremental_exports/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The dispatcher, pagination engine and export pipeline depend on Protocols
instead of concrete implementations, so storage, HTTP and cloud backends stay
swappable and tests can run on in-memory fakes.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Protocol

JSONRecord = dict[str, Any]


@dataclass(slots=True, frozen=True)
class FetchResponse:
    """A fetched page: HTTP status plus the decoded JSON body (None if not JSON)."""

    status_code: int
    payload: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class PageFetcher(Protocol):
    """How the pagination engine talks to a remote paged API."""

    def get_json(
            self,
            url: str,
            params: Mapping[str, Any] | None = None,
    ) -> Awaitable[FetchResponse]: ...


class BlobStore(Protocol):
    """Durable blob storage (local directory, S3 bucket, ...)."""

    def write(
            self,
            path: str,
            data: bytes,
            *,
            content_type: str = "application/octet-stream",
            custom_time: str | None = None,
    ) -> None: ...


class TransferService(Protocol):
    """Downstream bulk-transfer jobs: trigger a manual run and read its state."""

    def start_manual_run(self, config_id: str) -> Awaitable[str]: ...
    def get_run_state(self, run_name: str) -> Awaitable[str]: ...


class TaskRepo(Protocol):
    def list_due_tasks(
            self,
            *,
            collection: str,
            status: Any,
            now_ts: float,
            limit: int | None = None,
    ) -> list[Any]: ...
    def try_claim_task(self, task_id: str, *, expected: Iterable[Any], perform_at: float) -> bool: ...
    def update_task_fields(
            self,
            task_id: str,
            *,
            status: Any | None = None,
            perform_at: float | None = None,
            options: dict[str, Any] | None = None,
    ) -> None: ...
    def release_held_tasks(self, *, collection: str, family: str) -> int: ...
    def add_task(
            self,
            *,
            worker_name: str,
            perform_at: float,
            options: dict[str, Any] | None = None,
            status: Any = None,  # TaskStatus (kept as Any to avoid import coupling)
            collection: str = ...,
            task_id: str | None = None,
    ) -> str: ...


class ScheduleRepo(Protocol):
    def ensure_cycle_minutes(self, schedule_key: str, default: int = ...) -> int: ...
    def get_start_time(self, schedule_key: str) -> str: ...
    def update_start_time(self, schedule_key: str, cursor: str | int | float | None) -> str: ...
    def get_transfer_config_id(self, transfer_path: str) -> str | None: ...
