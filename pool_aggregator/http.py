from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin wrapper over one shared ``httpx.AsyncClient``.

    Retry policy is left to the callers: subgraph queries retry, the large
    DefiLlama listing does not.
    """

    def __init__(self, timeout: float = 15.0, transport: httpx.AsyncBaseTransport | None = None):
        limits = httpx.Limits(max_connections=50, max_keepalive_connections=20)
        self._client = httpx.AsyncClient(timeout=timeout, limits=limits, transport=transport)

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        logger.debug(f"HTTP GET {url} params={params}")
        kwargs: Dict[str, Any] = {"params": params, "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = timeout
        resp = await self._client.get(url, **kwargs)
        resp.raise_for_status()
        return resp

    async def post(
        self,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        logger.debug(f"HTTP POST {url} json_keys={list(json.keys()) if json else None}")
        kwargs: Dict[str, Any] = {"json": json, "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = timeout
        resp = await self._client.post(url, **kwargs)
        resp.raise_for_status()
        return resp

    async def aclose(self) -> None:
        await self._client.aclose()
