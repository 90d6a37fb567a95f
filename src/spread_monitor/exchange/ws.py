from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable, Optional, Set

import websockets

log = logging.getLogger("exchange.ws")

FrameHandler = Callable[[Any], None]


class StreamSupervisor:
    """Keeps one websocket subscription alive.

    Every connection gets a forced-reconnect task that closes it before the server's
    own disconnect deadline. Any close or error is followed by a fixed retry delay and
    a fresh connection; retries are unbounded. With `watchdog_silence_sec` set, a
    watchdog task that outlives individual connections closes a connection that has
    gone silent after receiving at least one message.

    Pings from the server are answered by the websockets library itself.
    """

    def __init__(
        self,
        name: str,
        url: str,
        on_frame: FrameHandler,
        forced_reconnect_sec: float,
        retry_delay_sec: float,
        watchdog_silence_sec: Optional[float] = None,
        watchdog_interval_sec: float = 10.0,
        ping_interval: Optional[float] = 20.0,
        ping_timeout: Optional[float] = 20.0,
        close_timeout: float = 10.0,
        connector: Optional[Callable[..., Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.url = url
        self.on_frame = on_frame
        self.forced_reconnect_sec = forced_reconnect_sec
        self.retry_delay_sec = retry_delay_sec
        self.watchdog_silence_sec = watchdog_silence_sec
        self.watchdog_interval_sec = watchdog_interval_sec
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.close_timeout = close_timeout
        self._connector = connector or websockets.connect
        self._clock = clock

        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._forced_task: Optional[asyncio.Task] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._closers: Set[asyncio.Task] = set()
        self._ws: Any = None

        self.state = "IDLE"
        self.last_message_at: Optional[float] = None
        self.connects = 0
        self.frames = 0
        self.decode_errors = 0
        self.forced_reconnects = 0
        self.watchdog_reconnects = 0

    @property
    def watchdog_enabled(self) -> bool:
        return self.watchdog_silence_sec is not None

    @property
    def connected(self) -> bool:
        return self._ws is not None and self.state == "OPEN"

    def start(self) -> None:
        self._stop.clear()
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"ws:{self.name}")
        if self.watchdog_enabled and self._watchdog_task is None:
            self._watchdog_task = asyncio.create_task(self._watchdog_loop(), name=f"ws:{self.name}:watchdog")

    async def stop(self) -> None:
        self._stop.set()
        self._cancel_forced()
        if self._watchdog_task:
            self._watchdog_task.cancel()
        ws = self._ws
        if ws is not None:
            await self._terminate(ws, "shutdown")
        if self._task:
            self._task.cancel()
        pending = [t for t in (self._watchdog_task, self._task) if t is not None] + list(self._closers)
        self._watchdog_task = None
        self._task = None
        await asyncio.gather(*pending, return_exceptions=True)
        self.state = "STOPPED"

    async def run(self) -> None:
        while not self._stop.is_set():
            try:
                await self._connect_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.warning("[%s] connection error: %s", self.name, e)
            if self._stop.is_set():
                break
            self.state = "RETRY_WAIT"
            log.info("[%s] reconnecting in %.1fs", self.name, self.retry_delay_sec)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.retry_delay_sec)
            except asyncio.TimeoutError:
                pass

    async def _connect_once(self) -> None:
        self._cancel_forced()
        self.state = "CONNECTING"
        # budget is never measured against a previous connection's activity
        self.last_message_at = None
        log.info("[%s] connecting to %s", self.name, self.url)
        async with self._connector(
            self.url,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
            close_timeout=self.close_timeout,
        ) as ws:
            self._ws = ws
            self.state = "OPEN"
            self.connects += 1
            log.info("[%s] connected", self.name)
            self._forced_task = asyncio.create_task(self._forced_reconnect(ws))
            try:
                async for raw in ws:
                    self.last_message_at = self._clock()
                    self._dispatch(raw)
            finally:
                self.state = "CLOSING"
                self._cancel_forced()
                self._ws = None
        log.info("[%s] closed (code=%s)", self.name, getattr(ws, "close_code", None))

    def _dispatch(self, raw: Any) -> None:
        self.frames += 1
        try:
            msg = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.decode_errors += 1
            log.warning("[%s] parse error: %s", self.name, e)
            return
        try:
            self.on_frame(msg)
        except Exception:
            log.exception("[%s] frame handling error", self.name)

    def _cancel_forced(self) -> None:
        t = self._forced_task
        self._forced_task = None
        if t is not None and not t.done():
            t.cancel()

    async def _forced_reconnect(self, ws: Any) -> None:
        await asyncio.sleep(self.forced_reconnect_sec)
        if ws is not self._ws:
            return
        # detach so the close path below does not cancel this task mid-close
        self._forced_task = None
        self.forced_reconnects += 1
        log.info("[%s] forced reconnect after %.0fs", self.name, self.forced_reconnect_sec)
        await self._terminate(ws, "forced reconnect")

    async def _terminate(self, ws: Any, reason: str) -> None:
        try:
            await asyncio.wait_for(ws.close(code=1000, reason=reason), timeout=self.close_timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            # peer never answered the close frame; drop the TCP connection
            log.warning("[%s] close timed out (%s), aborting transport", self.name, reason)
            transport = getattr(ws, "transport", None)
            if transport is not None:
                transport.abort()
        except Exception as e:
            log.warning("[%s] close failed (%s): %s", self.name, reason, e)

    def check_liveness(self, now: Optional[float] = None) -> bool:
        """Close the current connection if it has been silent longer than the budget.

        Returns True when a reconnect was forced.
        """
        if self.watchdog_silence_sec is None:
            return False
        ws = self._ws
        last = self.last_message_at
        if ws is None or last is None:
            return False
        now = self._clock() if now is None else now
        silent = now - last
        if silent <= self.watchdog_silence_sec:
            return False
        self.watchdog_reconnects += 1
        self.last_message_at = None
        log.warning(
            "[%s] no messages for %.1fs (budget %.0fs), forcing reconnect",
            self.name, silent, self.watchdog_silence_sec,
        )
        closer = asyncio.get_running_loop().create_task(self._terminate(ws, "watchdog"))
        self._closers.add(closer)
        closer.add_done_callback(self._closers.discard)
        return True

    async def _watchdog_loop(self) -> None:
        while not self._stop.is_set():
            await asyncio.sleep(self.watchdog_interval_sec)
            try:
                self.check_liveness()
            except Exception:
                log.exception("[%s] watchdog error", self.name)
