from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from .alerts import formatters
from .config import MonitorSettings
from .exchange.endpoints import endpoints
from .exchange.rest import FuturesRest
from .exchange.ws import StreamSupervisor
from .models import SignalEvent
from .notifier import AlertDispatcher, TelegramNotifier
from .pipeline import FeedPipeline
from .time_utils import now_ms
from .universe import fetch_symbol_count

log = logging.getLogger("engine")


class MonitorEngine:
    def __init__(
        self,
        settings: MonitorSettings,
        notifier: Optional[Any] = None,
        rest: Optional[Any] = None,
        connector: Optional[Callable[..., Any]] = None,
        clock: Callable[[], int] = now_ms,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.branding = settings.telegram.branding
        self._clock = clock
        self.ep = endpoints(settings.exchange.name)

        tg = settings.telegram
        self.notifier = notifier or TelegramNotifier(enabled=tg.enabled, parse_mode=tg.parse_mode)
        self.alerts = AlertDispatcher(self.notifier.send, maxsize=tg.queue_size)
        self.rest = rest or FuturesRest(self.ep["rest"], timeout_sec=settings.exchange.rest_timeout_sec)
        self.pipeline = FeedPipeline(settings, on_event=self._on_signal_event, clock=clock)

        st = settings.streams
        common = dict(
            forced_reconnect_sec=st.forced_reconnect_sec,
            retry_delay_sec=st.retry_delay_sec,
            ping_interval=st.ping_interval_sec,
            ping_timeout=st.ping_timeout_sec,
            close_timeout=st.close_timeout_sec,
            connector=connector,
            clock=monotonic,
        )
        self.fair_stream = StreamSupervisor("markPrice", self.ep["fair_ws"], self.pipeline.on_fair_frame, **common)
        # top-of-book can go quiet without the server closing the socket
        self.book_stream = StreamSupervisor(
            "bookTicker",
            self.ep["book_ws"],
            self.pipeline.on_book_frame,
            watchdog_silence_sec=st.watchdog_silence_sec,
            watchdog_interval_sec=st.watchdog_interval_sec,
            **common,
        )

        self.symbol_count: Optional[int] = None
        self._stats_task: Optional[asyncio.Task] = None
        self._start_time = time.time()

    @property
    def watchdog_reconnects(self) -> int:
        return self.fair_stream.watchdog_reconnects + self.book_stream.watchdog_reconnects

    async def start(self) -> None:
        self._start_time = time.time()
        s = self.settings
        log.info("=" * 60)
        log.info("%s (%s, %s)", self.branding, s.exchange.name, formatters.POLICY_LABELS.get(s.signal.policy, s.signal.policy))
        log.info("[CONFIG] Entry Threshold : %s%%", s.signal.entry_threshold_pct)
        log.info("[CONFIG] Exit  Threshold : %s%%", s.signal.exit_threshold_pct)
        log.info("[CONFIG] Signal Cooldown : %gs", s.signal.cooldown_sec)
        log.info("=" * 60)

        await self.notifier.start()
        self.alerts.start()

        self.symbol_count = await fetch_symbol_count(self.rest, s.exchange.quote_asset)
        try:
            await self.rest.stop()
        except Exception as e:
            log.warning("REST session close failed: %s", e)

        self.fair_stream.start()
        self.book_stream.start()
        self._stats_task = asyncio.create_task(self._stats_loop(), name="stats")

        self.alerts.publish(
            formatters.format_startup(
                branding=self.branding,
                exchange=s.exchange.name,
                symbol_count=self.symbol_count,
                policy=s.signal.policy,
                entry_threshold_pct=s.signal.entry_threshold_pct,
                exit_threshold_pct=s.signal.exit_threshold_pct,
                cooldown_sec=s.signal.cooldown_sec,
                quote_asset=s.exchange.quote_asset,
                direction=s.signal.direction,
            )
        )

    async def stop(self, reason: str = "") -> None:
        if self._stats_task:
            self._stats_task.cancel()
            await asyncio.gather(self._stats_task, return_exceptions=True)
            self._stats_task = None
        for stream in (self.fair_stream, self.book_stream):
            try:
                await stream.stop()
            except Exception:
                log.exception("[%s] stop failed", stream.name)
        tg = self.settings.telegram
        try:
            await self.alerts.stop(drain_timeout=tg.shutdown_timeout_sec)
        except Exception:
            log.exception("Alert dispatcher stop failed")
        try:
            await asyncio.wait_for(
                self.notifier.send(formatters.format_shutdown(self.branding, reason)),
                timeout=tg.shutdown_timeout_sec,
            )
        except Exception as e:
            log.warning("Final notification failed: %s", e)
        try:
            await self.notifier.stop()
        except Exception:
            log.exception("Notifier stop failed")
        log.info(
            "Stopped after %ds (%d symbols tracked)",
            int(time.time() - self._start_time), len(self.pipeline.cache.symbols()),
        )

    def _on_signal_event(self, ev: SignalEvent) -> None:
        self.alerts.publish(formatters.format_event(self.branding, ev))

    async def _stats_loop(self) -> None:
        interval = self.settings.stats.interval_sec
        tick = min(interval, 10.0)
        while True:
            await asyncio.sleep(tick)
            snap = self.pipeline.stats.maybe_report(self.pipeline.signals.active_signals(), self.watchdog_reconnects)
            if snap is not None and self.settings.stats.notify:
                self.alerts.publish(
                    formatters.format_stats(
                        branding=self.branding,
                        counts=snap.counts,
                        watchdog_reconnects=snap.watchdog_reconnects,
                        active=snap.active,
                        now_ms=snap.ts_ms,
                        window_sec=snap.window_sec,
                    )
                )
