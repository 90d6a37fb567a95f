from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from ..config import SignalParams
from ..models import ActiveSignal, SignalEvent, SpreadCandidate, SymbolState
from ..time_utils import now_ms
from .spread import has_comparison_inputs, read_bid_ask, read_index

log = logging.getLogger("signal")


class SpreadSignalMachine:
    """Per-symbol FLAT/ACTIVE hysteresis machine over the spread between price and fair value.

    FLAT -> ACTIVE when |spread| >= entry threshold, the symbol is out of cooldown and the
    direction is allowed. ACTIVE -> FLAT when |spread| <= exit threshold. While ACTIVE only
    the exit test runs, so a signal never flips direction without first exiting.
    Cooldown is measured from the last entry and survives exits.
    """

    def __init__(self, params: SignalParams, clock: Callable[[], int] = now_ms):
        params.validate()
        self.params = params
        self._clock = clock
        self._active: Dict[str, ActiveSignal] = {}
        self._last_signal_ms: Dict[str, int] = {}

    @property
    def cooldown_ms(self) -> int:
        return int(self.params.cooldown_sec * 1000)

    def ready(self, state: SymbolState) -> bool:
        return has_comparison_inputs(self.params.policy, state)

    def active_signals(self) -> Dict[str, ActiveSignal]:
        return dict(self._active)

    def is_active(self, symbol: str) -> bool:
        return symbol in self._active

    def last_signal_ms(self, symbol: str) -> Optional[int]:
        return self._last_signal_ms.get(symbol)

    def evaluate(self, symbol: str, state: SymbolState) -> Optional[SignalEvent]:
        if self.params.policy == "index":
            cand = read_index(state)
            if cand is None:
                return None
            return self._step(symbol, cand, state, self._clock())

        reading = read_bid_ask(state)
        if reading is None:
            return None
        now = self._clock()
        if reading.candidate is not None:
            return self._step(symbol, reading.candidate, state, now)

        # Deviation is back inside the no-signal band; only an open signal can react.
        sig = self._active.get(symbol)
        if sig is None:
            return None
        spread = reading.neutral_spread
        if abs(spread) > self.params.exit_threshold_pct:
            return None
        if sig.direction == "LONG":
            exec_px = state.ask if state.ask is not None else state.bid
        else:
            exec_px = state.bid if state.bid is not None else state.ask
        return self._exit(symbol, sig, spread, exec_px, state, now)

    def _step(self, symbol: str, cand: SpreadCandidate, state: SymbolState, now: int) -> Optional[SignalEvent]:
        sig = self._active.get(symbol)
        if sig is None:
            if abs(cand.spread) < self.params.entry_threshold_pct:
                return None
            if not self._cooled_down(symbol, now):
                log.debug("cooldown_block %s %s spread=%.3f%%", symbol, cand.direction, cand.spread)
                return None
            if not self._direction_allowed(cand.direction):
                log.debug("direction_block %s %s (%s)", symbol, cand.direction, self.params.direction)
                return None
            return self._enter(symbol, cand, state, now)
        if abs(cand.spread) <= self.params.exit_threshold_pct:
            return self._exit(symbol, sig, cand.spread, cand.exec_price, state, now)
        return None

    def _cooled_down(self, symbol: str, now: int) -> bool:
        last = self._last_signal_ms.get(symbol)
        return last is None or now - last >= self.cooldown_ms

    def _direction_allowed(self, direction: str) -> bool:
        mode = self.params.direction
        if mode == "long_only":
            return direction == "LONG"
        if mode == "short_only":
            return direction == "SHORT"
        return True

    def _enter(self, symbol: str, cand: SpreadCandidate, state: SymbolState, now: int) -> SignalEvent:
        self._active[symbol] = ActiveSignal(direction=cand.direction, entry_time_ms=now, entry_spread=cand.spread)
        self._last_signal_ms[symbol] = max(now, self._last_signal_ms.get(symbol, now))
        log.info(
            "[ENTRY] %s %s spread=%.3f%% exec=%s fair=%s",
            symbol, cand.direction, cand.spread, cand.exec_price, state.fair_price,
        )
        return SignalEvent(
            kind="ENTRY",
            symbol=symbol,
            direction=cand.direction,
            spread=cand.spread,
            fair_price=state.fair_price,
            ts_ms=now,
            policy=self.params.policy,
            exec_price=cand.exec_price,
            secondary_fair_price=state.secondary_fair_price,
        )

    def _exit(
        self,
        symbol: str,
        sig: ActiveSignal,
        spread: float,
        exec_price: Optional[float],
        state: SymbolState,
        now: int,
    ) -> SignalEvent:
        del self._active[symbol]
        log.info("[EXIT]  %s spread=%.3f%% entry=%.3f%%", symbol, spread, sig.entry_spread)
        return SignalEvent(
            kind="EXIT",
            symbol=symbol,
            direction=sig.direction,
            spread=spread,
            fair_price=state.fair_price,
            ts_ms=now,
            policy=self.params.policy,
            exec_price=exec_price,
            secondary_fair_price=state.secondary_fair_price,
            entry_spread=sig.entry_spread,
            elapsed_ms=now - sig.entry_time_ms,
        )
