from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional

from .models import ActiveSignal
from .time_utils import now_ms

log = logging.getLogger("stats")


@dataclass
class StatsSnapshot:
    ts_ms: int
    window_sec: float
    counts: Dict[str, int]
    watchdog_reconnects: int
    active: Dict[str, ActiveSignal] = field(default_factory=dict)


class StatsReporter:
    """Throttled throughput / open-signal summary. Reads state, never changes it."""

    def __init__(self, interval_sec: float, feeds: Iterable[str] = ("fair", "book"), clock: Callable[[], int] = now_ms):
        self.interval_ms = int(interval_sec * 1000)
        self._clock = clock
        self.counts: Dict[str, int] = {f: 0 for f in feeds}
        self._last_report_ms = clock()

    def record(self, feed: str, n: int = 1) -> None:
        self.counts[feed] = self.counts.get(feed, 0) + n

    def maybe_report(
        self,
        active: Dict[str, ActiveSignal],
        watchdog_reconnects: int,
        now: Optional[int] = None,
    ) -> Optional[StatsSnapshot]:
        now = self._clock() if now is None else now
        if now - self._last_report_ms < self.interval_ms:
            return None
        snap = StatsSnapshot(
            ts_ms=now,
            window_sec=self.interval_ms / 1000,
            counts=dict(self.counts),
            watchdog_reconnects=watchdog_reconnects,
            active=dict(active),
        )
        per_feed = " | ".join(f"{k}={v}" for k, v in snap.counts.items())
        log.info(
            "[STATS] %s (last %.0fs) | watchdog_reconnects=%d | activeSignals=%d",
            per_feed, snap.window_sec, watchdog_reconnects, len(snap.active),
        )
        for sym, sig in sorted(snap.active.items()):
            age = round((now - sig.entry_time_ms) / 1000)
            log.info("  -> %s %s entry=%.3f%% | %ss ago", sym, sig.direction, sig.entry_spread, age)
        for k in self.counts:
            self.counts[k] = 0
        self._last_report_ms = now
        return snap
