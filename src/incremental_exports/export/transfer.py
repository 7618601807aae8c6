# src/incremental_exports/export/transfer.py

from __future__ import annotations

import logging
from datetime import UTC, datetime

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TRANSFER_API_BASE_URL = "https://bigquerydatatransfer.googleapis.com/v1"


class TransferTriggerError(RuntimeError):
    """The transfer API accepted the request but did not start a run."""


class HttpTransferService:
    """
    TransferService over the Data Transfer REST API.

    - start_manual_run: POST {parent}/transferConfigs/{id}:startManualRuns
    - get_run_state:    GET  {run_name}

    HTTP errors propagate as httpx exceptions; the export pipeline turns them
    into outcome values.
    """

    def __init__(
        self,
        *,
        parent: str,
        base_url: str = DEFAULT_TRANSFER_API_BASE_URL,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._parent = parent.strip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=timeout_seconds,
        )

    @classmethod
    def from_settings(cls, settings) -> HttpTransferService:
        return cls(
            parent=getattr(settings, "transfer_parent", "") or "",
            base_url=getattr(settings, "transfer_api_base_url", "") or DEFAULT_TRANSFER_API_BASE_URL,
            token=getattr(settings, "transfer_api_token", None),
            timeout_seconds=float(getattr(settings, "http_timeout_seconds", 30.0)),
        )

    async def start_manual_run(self, config_id: str) -> str:
        url = f"{self._parent}/transferConfigs/{config_id}:startManualRuns"
        requested = datetime.now(tz=UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")
        resp = await self._client.post(url, json={"requestedRunTime": requested})
        resp.raise_for_status()

        runs = (resp.json() or {}).get("runs") or []
        if not runs or not runs[0].get("name"):
            raise TransferTriggerError(f"no run started for transfer config {config_id}: {resp.text}")
        run_name = str(runs[0]["name"])
        logger.info("Transfer run %s triggered", run_name)
        return run_name

    async def get_run_state(self, run_name: str) -> str:
        resp = await self._client.get(run_name.lstrip("/"))
        resp.raise_for_status()
        return str((resp.json() or {}).get("state") or "STATE_UNSPECIFIED")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
