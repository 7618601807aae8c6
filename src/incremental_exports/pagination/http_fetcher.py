# src/incremental_exports/pagination/http_fetcher.py

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from ..core.ports import FetchResponse

logger = logging.getLogger(__name__)


class HttpPageFetcher:
    """
    PageFetcher over httpx.

    Relative URLs resolve against base_url. Non-JSON bodies come back with
    payload=None so the engine can classify them; transport errors propagate.
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        headers: Mapping[str, str] | None = None,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=dict(headers or {}),
            timeout=httpx.Timeout(timeout_seconds, connect=min(10.0, timeout_seconds)),
            follow_redirects=True,
        )

    @classmethod
    def from_settings(cls, settings) -> HttpPageFetcher:
        headers = {"Accept": "application/json"}
        token = getattr(settings, "source_api_token", None)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return cls(
            base_url=getattr(settings, "source_base_url", "") or "",
            headers=headers,
            timeout_seconds=float(getattr(settings, "http_timeout_seconds", 30.0)),
        )

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> FetchResponse:
        # next_page links carry their own query string; don't pass empty params over it.
        resp = await self._client.get(url, params=dict(params) if params else None)
        content_type = resp.headers.get("content-type", "")
        payload: Any = None
        if "json" in content_type:
            payload = resp.json()
        else:
            logger.debug("Non-JSON response url=%s status=%s type=%s", url, resp.status_code, content_type)
        return FetchResponse(status_code=resp.status_code, payload=payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpPageFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
