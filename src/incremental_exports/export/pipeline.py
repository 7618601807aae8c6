# src/incremental_exports/export/pipeline.py

from __future__ import annotations

"""
Export pipeline.

Drained records -> NDJSON blob -> manual run of the downstream transfer job
that imports that blob -> bounded polling of the run.

Every outcome, including failures and timeouts, is returned as an
ExportOutcome; nothing raises past export_and_transfer.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..core.ports import BlobStore, JSONRecord, ScheduleRepo, TransferService
from .blob_store import join_blob_path
from .records import to_ndjson

logger = logging.getLogger(__name__)

# The downstream importer lists the bucket with eventual consistency: a blob
# written right before a transfer run may be missed. Wait this long after the
# write before triggering. An explicit readiness check should replace this if
# the storage backend ever offers one.
EXPORT_SETTLE_SECONDS = 60.0

TRANSFER_POLL_INTERVAL_SECONDS = 10.0
TRANSFER_MAX_POLL_ATTEMPTS = 30

NDJSON_CONTENT_TYPE = "application/x-ndjson"

_SUCCEEDED_STATES = frozenset({"SUCCEEDED"})
_FAILED_STATES = frozenset({"FAILED", "CANCELLED"})


class ExportStatus(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    WRITE_ERROR = "write_error"
    CONFIG_ERROR = "config_error"
    TRIGGER_ERROR = "trigger_error"
    MONITOR_ERROR = "monitor_error"


@dataclass(slots=True, frozen=True)
class ExportOutcome:
    status: ExportStatus
    message: str
    blob_path: str | None = None
    run_name: str | None = None

    @property
    def ok(self) -> bool:
        # A timed-out run may still finish; the blob is written either way.
        return self.status in (ExportStatus.SUCCEEDED, ExportStatus.TIMED_OUT)


class ExportPipeline:
    def __init__(
        self,
        blob_store: BlobStore,
        transfer_service: TransferService,
        schedules: ScheduleRepo,
        *,
        settle_seconds: float = EXPORT_SETTLE_SECONDS,
        poll_interval_seconds: float = TRANSFER_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = TRANSFER_MAX_POLL_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._blob_store = blob_store
        self._transfer = transfer_service
        self._schedules = schedules
        self._settle_seconds = max(0.0, float(settle_seconds))
        self._poll_interval = max(0.0, float(poll_interval_seconds))
        self._max_attempts = max(1, int(max_poll_attempts))
        self._sleep = sleep

    async def export_and_transfer(
        self,
        transfer_path: str,
        blob_name: str,
        folder_path: str | None,
        records: Sequence[JSONRecord],
        *,
        custom_time: str | None = None,
    ) -> ExportOutcome:
        """
        Write `records` to folder_path/blob_name as NDJSON and run the transfer
        job registered under transfer_path.

        custom_time is an optional RFC 3339 "as-of" stamp stored as blob
        metadata, independent of the write time.
        """
        if not transfer_path:
            return ExportOutcome(ExportStatus.CONFIG_ERROR, "missing transfer_path")

        try:
            blob_path = join_blob_path(folder_path, blob_name)
            data = to_ndjson(records)
            await asyncio.to_thread(
                self._blob_store.write,
                blob_path,
                data,
                content_type=NDJSON_CONTENT_TYPE,
                custom_time=custom_time,
            )
        except Exception as exc:
            logger.exception("Blob write failed transfer_path=%s blob=%s", transfer_path, blob_name)
            return ExportOutcome(ExportStatus.WRITE_ERROR, f"blob write failed: {exc}")

        logger.info("Waiting %.0fs for %s to become visible downstream", self._settle_seconds, blob_path)
        await self._sleep(self._settle_seconds)

        try:
            config_id = self._schedules.get_transfer_config_id(transfer_path)
        except Exception as exc:
            logger.exception("Transfer config lookup failed transfer_path=%s", transfer_path)
            return ExportOutcome(ExportStatus.CONFIG_ERROR, f"transfer config lookup failed: {exc}", blob_path)
        if not config_id:
            logger.error("No transfer config id for %s", transfer_path)
            return ExportOutcome(
                ExportStatus.CONFIG_ERROR, f"no transfer config id for {transfer_path}", blob_path
            )

        try:
            run_name = await self._transfer.start_manual_run(config_id)
        except Exception as exc:
            logger.exception("Transfer trigger failed config_id=%s", config_id)
            return ExportOutcome(ExportStatus.TRIGGER_ERROR, f"transfer trigger failed: {exc}", blob_path)

        return await self.monitor_run(run_name, blob_path=blob_path)

    async def monitor_run(self, run_name: str, *, blob_path: str | None = None) -> ExportOutcome:
        """Poll a transfer run until it is terminal or out of attempts."""
        for attempt in range(1, self._max_attempts + 1):
            try:
                state = (await self._transfer.get_run_state(run_name)).upper()
            except Exception as exc:
                logger.exception("Monitoring transfer run %s failed", run_name)
                return ExportOutcome(
                    ExportStatus.MONITOR_ERROR,
                    f"error monitoring transfer run {run_name}: {exc}",
                    blob_path,
                    run_name,
                )

            if state in _SUCCEEDED_STATES:
                logger.info("Transfer run %s succeeded", run_name)
                return ExportOutcome(
                    ExportStatus.SUCCEEDED, f"transfer run {run_name} succeeded", blob_path, run_name
                )
            if state in _FAILED_STATES:
                logger.error("Transfer run %s ended in state %s", run_name, state)
                return ExportOutcome(
                    ExportStatus.FAILED, f"transfer run {run_name} {state.lower()}", blob_path, run_name
                )

            logger.debug("Transfer run %s state=%s attempt=%s/%s", run_name, state, attempt, self._max_attempts)
            if attempt < self._max_attempts:
                await self._sleep(self._poll_interval)

        logger.warning("Transfer run %s did not reach a terminal state in time", run_name)
        return ExportOutcome(
            ExportStatus.TIMED_OUT,
            f"transfer run {run_name} did not reach a terminal state within the time limit",
            blob_path,
            run_name,
        )
