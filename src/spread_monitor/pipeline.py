from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .cache import SymbolCache
from .config import MonitorSettings
from .exchange.frames import FrameError, parse_book_frame, parse_fair_frame
from .models import SignalEvent
from .stats import StatsReporter
from .strategy.spread_signal import SpreadSignalMachine
from .time_utils import now_ms
from .universe import symbol_filter

log = logging.getLogger("pipeline")

EventHandler = Callable[[SignalEvent], None]


class FeedPipeline:
    """Routes decoded frames from both feeds into the cache and re-evaluates touched symbols.

    Everything here is synchronous: a frame is fully applied before the next one is read,
    and emitted events are handed to `on_event`, which must not block.
    """

    def __init__(
        self,
        settings: MonitorSettings,
        on_event: Optional[EventHandler] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.settings = settings
        self.on_event = on_event
        self.cache = SymbolCache()
        self.signals = SpreadSignalMachine(settings.signal, clock=clock)
        self.stats = StatsReporter(settings.stats.interval_sec, clock=clock)
        self.accept_symbol = symbol_filter(settings.universe)
        self.dropped_frames = 0

    def on_fair_frame(self, msg: Any) -> None:
        try:
            updates = parse_fair_frame(msg)
        except FrameError as e:
            self.dropped_frames += 1
            log.warning("[markPrice] dropped frame: %s", e)
            return
        for u in updates:
            if not self.accept_symbol(u.symbol):
                continue
            if not self.cache.set_fair(u.symbol, u.fair_price):
                continue
            # absent or bad index price keeps the previous one
            self.cache.set_secondary_fair(u.symbol, u.secondary_fair_price)
            self.stats.record("fair")
            self.evaluate(u.symbol)

    def on_book_frame(self, msg: Any) -> None:
        try:
            updates = parse_book_frame(msg)
        except FrameError as e:
            self.dropped_frames += 1
            log.warning("[bookTicker] dropped frame: %s", e)
            return
        for u in updates:
            if not self.accept_symbol(u.symbol):
                continue
            bid_ok = self.cache.set_bid(u.symbol, u.bid)
            ask_ok = self.cache.set_ask(u.symbol, u.ask)
            if not (bid_ok or ask_ok):
                continue
            self.stats.record("book")
            self.evaluate(u.symbol)

    def evaluate(self, symbol: str) -> Optional[SignalEvent]:
        state = self.cache.get(symbol)
        if not self.signals.ready(state):
            return None
        ev = self.signals.evaluate(symbol, state)
        if ev is not None and self.on_event is not None:
            try:
                self.on_event(ev)
            except Exception:
                log.exception("Signal event handler failed for %s", symbol)
        return ev
