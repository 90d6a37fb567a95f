from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import aiohttp

log = logging.getLogger("exchange.rest")


class FuturesRest:
    """Public (unsigned) futures REST calls used for startup diagnostics."""

    def __init__(self, base_url: str, timeout_sec: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def stop(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if self._session is None:
            await self.start()
        assert self._session is not None
        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
        async with self._session.get(url, params=params or {}, timeout=timeout) as r:
            data = await r.json(content_type=None)
            if r.status != 200:
                raise RuntimeError(f"GET {path} failed {r.status}: {data}")
            return data

    async def exchange_info(self) -> Any:
        return await self._get("/fapi/v1/exchangeInfo")
