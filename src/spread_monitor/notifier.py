from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Optional

import aiohttp

log = logging.getLogger("notifier")

MAX_TELEGRAM_CHARS = 4096


class TelegramNotifier:
    """Single-attempt Telegram sender. Failures are logged and reported as False, never raised."""

    def __init__(
        self,
        enabled: bool = True,
        parse_mode: str = "HTML",
        token: Optional[str] = None,
        chat_id: Optional[str] = None,
        timeout_sec: float = 10.0,
    ):
        self.enabled = enabled
        self.token = token if token is not None else os.getenv("TELEGRAM_BOT_TOKEN", "")
        self.chat_id = chat_id if chat_id is not None else os.getenv("TELEGRAM_CHAT_ID", "")
        self.parse_mode = parse_mode
        self.timeout_sec = timeout_sec
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        if not self.enabled:
            return
        if not self.token or not self.chat_id:
            log.warning("Telegram enabled but TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID missing.")
            self.enabled = False
            return
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def stop(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def send(self, text: str) -> bool:
        if not self.enabled:
            log.info("[alert] %s", text.replace("\n", " | "))
            return True
        if not self._session:
            await self.start()
            if not self.enabled:
                return False
        if len(text) > MAX_TELEGRAM_CHARS:
            suffix = "... [truncated]"
            text = text[: MAX_TELEGRAM_CHARS - len(suffix)] + suffix
        url = f"https://api.telegram.org/bot{self.token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "disable_web_page_preview": True,
            "parse_mode": self.parse_mode,
        }
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
            async with self._session.post(url, json=payload, timeout=timeout) as r:
                if r.status == 200:
                    return True
                body = await r.text()
                log.error("Telegram send failed: HTTP %s: %s", r.status, body[:500])
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("Telegram send exception: %s", e)
        return False


class AlertDispatcher:
    """Bounded fire-and-forget queue in front of a notification sink.

    `publish` never awaits, so frame processing is never held up by the sink. A single
    worker task delivers alerts in order; when the queue is full new alerts are dropped.
    """

    def __init__(self, sink: Callable[[str], Awaitable[Any]], maxsize: int = 1000):
        self._sink = sink
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._worker: Optional[asyncio.Task] = None
        self.sent = 0
        self.failed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name="alerts")

    def publish(self, text: str) -> bool:
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            self.dropped += 1
            log.warning("Alert queue full (%d), dropping alert", self._queue.maxsize)
            return False
        return True

    async def _run(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                ok = await self._sink(text)
                if ok is False:
                    self.failed += 1
                else:
                    self.sent += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self.failed += 1
                log.exception("Alert delivery failed")
            finally:
                self._queue.task_done()

    async def stop(self, drain_timeout: float = 0.0) -> None:
        if self._worker is None:
            return
        if drain_timeout > 0 and not self._queue.empty():
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                log.warning("Alert queue not drained on shutdown (%d pending)", self._queue.qsize())
        self._worker.cancel()
        await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None
