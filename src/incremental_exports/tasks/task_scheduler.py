# src/incremental_exports/tasks/task_scheduler.py

from __future__ import annotations

"""
Dispatcher.

A polling loop that, once per interval:
- fetches due tasks of one collection,
- lets the conflict guard decide run-now vs hold per guarded family,
- re-arms each running task for its next occurrence and invokes its worker,
- resolves the task back to "scheduled", or applies the failure backoff,
- before the next cycle, releases siblings held behind a successful run.

Worker business logic (paging, exports) lives in the workers, not here.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import ScheduleRepo, TaskRepo
from ..workers.registry import (
    InvocationStyle,
    UnknownWorkerError,
    WorkerRegistry,
    WorkerResult,
    WorkerSpec,
)
from .task_models import DEFAULT_COLLECTION, DEFAULT_CYCLE_MINUTES, Task, TaskStatus

logger = logging.getLogger(__name__)

FAILURE_BACKOFF_MINUTES = 60
DISPATCH_INTERVAL_SECONDS = 60.0
DEFAULT_GUARDED_FAMILIES = frozenset({"zendesk"})


class ConflictGuard:
    """
    Single-flight gate for guarded families, scoped to one dispatch cycle.

    The first task of a guarded family acquires the gate; every later task of
    that family in the same cycle is refused. Unguarded families always pass.
    Nothing is persisted: a new cycle starts with every gate open.
    """

    def __init__(self, guarded_families: Iterable[str] = DEFAULT_GUARDED_FAMILIES) -> None:
        self._held: dict[str, bool] = {f: False for f in guarded_families}

    def is_guarded(self, family: str) -> bool:
        return family in self._held

    def try_acquire(self, family: str) -> bool:
        if family not in self._held:
            return True
        if self._held[family]:
            return False
        self._held[family] = True
        return True


@dataclass(slots=True)
class DispatchContext:
    """Everything one cycle needs, passed explicitly instead of living in globals."""

    workers: WorkerRegistry
    guard: ConflictGuard
    collection: str
    eligible_status: TaskStatus
    default_cycle_minutes: int = DEFAULT_CYCLE_MINUTES
    backoff_seconds: float = FAILURE_BACKOFF_MINUTES * 60.0
    clock: Callable[[], float] = time.time


@dataclass(slots=True)
class DispatchReport:
    collection: str
    due: int = 0
    started: int = 0
    succeeded: int = 0
    failed: int = 0
    held: int = 0
    skipped: int = 0
    errors: dict[str, str] = field(default_factory=dict)
    # guarded families whose held siblings become eligible on the next cycle
    families_to_release: set[str] = field(default_factory=set)


def release_held_tasks(task_store: TaskRepo, *, collection: str, family: str) -> int:
    """Move every hold4conflict task of `family` back to scheduled."""
    try:
        released = task_store.release_held_tasks(collection=collection, family=family)
    except Exception:
        logger.exception("release_held_tasks failed collection=%s family=%s", collection, family)
        return 0
    if released:
        logger.info("Released %s held task(s) collection=%s family=%s", released, collection, family)
    return released


def release_families(task_store: TaskRepo, *, collection: str, families: Iterable[str]) -> int:
    return sum(release_held_tasks(task_store, collection=collection, family=f) for f in sorted(families))


async def invoke_worker(spec: WorkerSpec, task: Task) -> Any:
    arg: Any = task.schedule_key if spec.style is InvocationStyle.SCHEDULE_KEY else task.options
    return await spec.fn(arg)


async def _run_task(
        ctx: DispatchContext,
        task_store: TaskRepo,
        schedules: ScheduleRepo,
        task: Task,
        report: DispatchReport,
) -> None:
    key = task.schedule_key

    try:
        cycle_minutes = schedules.ensure_cycle_minutes(key, ctx.default_cycle_minutes)
    except Exception:
        logger.exception("ensure_cycle_minutes failed key=%s; using default", key)
        cycle_minutes = ctx.default_cycle_minutes

    next_perform_at = task.perform_at + cycle_minutes * 60.0

    # Re-arm for the next occurrence before running this one.
    try:
        claimed = task_store.try_claim_task(
            task.id, expected=[ctx.eligible_status], perform_at=next_perform_at
        )
    except Exception:
        logger.exception("try_claim_task failed task_id=%s", task.id)
        claimed = False

    if not claimed:
        logger.debug("Task %s not claimed; skipping", task.id)
        report.skipped += 1
        # The guard slot went unused: siblings held this cycle must not stay parked.
        if ctx.guard.is_guarded(task.family):
            report.families_to_release.add(task.family)
        return

    report.started += 1
    error: str | None = None

    try:
        spec = ctx.workers.resolve(task.worker_name)
        outcome = await invoke_worker(spec, task)
    except UnknownWorkerError:
        error = f"unknown worker {task.worker_name!r}"
        logger.error("Task %s: %s", task.id, error)
    except Exception as exc:
        error = str(exc) or exc.__class__.__name__
        logger.exception("Worker failed task_id=%s worker=%s", task.id, task.worker_name)
    else:
        if isinstance(outcome, WorkerResult) and not outcome.ok:
            error = outcome.error
            logger.error(
                "Worker reported error task_id=%s worker=%s: %s",
                task.id,
                task.worker_name,
                error,
            )

    try:
        if error is None:
            task_store.update_task_fields(task.id, status=TaskStatus.SCHEDULED)
            report.succeeded += 1
            if ctx.guard.is_guarded(task.family):
                report.families_to_release.add(task.family)
            logger.info("Task %s (%s) done; next run at %.0f", task.id, task.worker_name, next_perform_at)
        else:
            retry_at = ctx.clock() + ctx.backoff_seconds
            task_store.update_task_fields(task.id, status=ctx.eligible_status, perform_at=retry_at)
            report.failed += 1
            report.errors[task.id] = error or "error"
            logger.warning("Task %s (%s) rescheduled for retry at %.0f", task.id, task.worker_name, retry_at)
    except Exception:
        logger.exception("update_task_fields failed task_id=%s", task.id)


async def run_dispatch_cycle(
        task_store: TaskRepo,
        schedules: ScheduleRepo,
        workers: WorkerRegistry,
        *,
        collection: str = DEFAULT_COLLECTION,
        eligible_status: TaskStatus = TaskStatus.SCHEDULED,
        guarded_families: Iterable[str] = DEFAULT_GUARDED_FAMILIES,
        default_cycle_minutes: int = DEFAULT_CYCLE_MINUTES,
        backoff_minutes: float = FAILURE_BACKOFF_MINUTES,
        now_ts: float | None = None,
        clock: Callable[[], float] = time.time,
) -> DispatchReport:
    """
    Run one dispatch cycle over `collection`.

    - query tasks with status == eligible_status and perform_at <= now
    - guarded family already running this cycle -> hold4conflict, no invocation
    - otherwise: perform_at += cycle_minutes, status -> working, invoke worker
        * success -> scheduled
        * failure -> eligible_status with perform_at = now + backoff
    - invocations run concurrently; returns once all have settled
    - held tasks stay hold4conflict when the cycle returns; families whose
      guard holder succeeded (or never got claimed) are listed in
      report.families_to_release for the caller to release before the next cycle

    Never raises for task-level problems; see the returned report.
    """
    ctx = DispatchContext(
        workers=workers,
        guard=ConflictGuard(guarded_families),
        collection=collection,
        eligible_status=eligible_status,
        default_cycle_minutes=int(default_cycle_minutes),
        backoff_seconds=float(backoff_minutes) * 60.0,
        clock=clock,
    )
    report = DispatchReport(collection=collection)
    now = clock() if now_ts is None else float(now_ts)

    try:
        tasks = task_store.list_due_tasks(collection=collection, status=eligible_status, now_ts=now)
    except Exception:
        logger.exception("list_due_tasks failed collection=%s", collection)
        return report

    report.due = len(tasks)
    jobs = []

    for task in tasks:
        if not ctx.guard.try_acquire(task.family):
            try:
                task_store.update_task_fields(task.id, status=TaskStatus.HOLD_FOR_CONFLICT)
                report.held += 1
                logger.info("Task %s (%s) held for conflict", task.id, task.worker_name)
            except Exception:
                logger.exception("update_task_fields(hold) failed task_id=%s", task.id)
            continue

        jobs.append(_run_task(ctx, task_store, schedules, task, report))

    results = await asyncio.gather(*jobs, return_exceptions=True)
    for res in results:
        if isinstance(res, BaseException):
            logger.error("Dispatch job crashed: %r", res)

    return report


async def run_dispatcher(
        task_store: TaskRepo,
        schedules: ScheduleRepo,
        workers: WorkerRegistry,
        *,
        interval_seconds: float = DISPATCH_INTERVAL_SECONDS,
        collection: str = DEFAULT_COLLECTION,
        eligible_status: TaskStatus = TaskStatus.SCHEDULED,
        guarded_families: Iterable[str] = DEFAULT_GUARDED_FAMILIES,
        default_cycle_minutes: int = DEFAULT_CYCLE_MINUTES,
        backoff_minutes: float = FAILURE_BACKOFF_MINUTES,
) -> None:
    """
    Time trigger: run one cycle every interval_seconds.

    A cycle always finishes before the next one starts, so cycles in one
    process never overlap. Families whose guard holder succeeded are released
    right before the next cycle's query, so their held siblings run then.
    To stop the dispatcher, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    families = frozenset(guarded_families)
    pending_release: set[str] = set()

    while True:
        started = time.monotonic()

        released = release_families(task_store, collection=collection, families=pending_release)
        pending_release = set()

        try:
            report = await run_dispatch_cycle(
                task_store,
                schedules,
                workers,
                collection=collection,
                eligible_status=eligible_status,
                guarded_families=families,
                default_cycle_minutes=default_cycle_minutes,
                backoff_minutes=backoff_minutes,
            )
            pending_release = set(report.families_to_release)
            if report.due or released:
                logger.info(
                    "Cycle %s: released=%s due=%s started=%s ok=%s failed=%s held=%s",
                    collection,
                    released,
                    report.due,
                    report.started,
                    report.succeeded,
                    report.failed,
                    report.held,
                )
        except Exception:
            logger.exception("dispatch cycle failed collection=%s", collection)

        elapsed = time.monotonic() - started
        await asyncio.sleep(max(0.0, sleep_s - elapsed))
