from __future__ import annotations

import math
import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .models import SymbolState


def coerce_price(value: Any) -> Optional[float]:
    """Return a usable price, or None for anything that is not a finite number > 0.

    Exchanges deliver prices as decimal strings, so numeric strings are accepted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        px = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(px) or px <= 0:
        return None
    return px


class SymbolCache:
    """Latest fair / secondary fair / bid / ask per symbol.

    Fields are only ever overwritten by valid prices and never cleared, so a stale
    value survives reconnects. Snapshots are immutable and read under the lock.
    """

    def __init__(self) -> None:
        self._states: Dict[str, SymbolState] = {}
        self._lock = threading.Lock()

    def _set(self, symbol: str, field: str, value: Any) -> bool:
        px = coerce_price(value)
        if not symbol or px is None:
            return False
        with self._lock:
            cur = self._states.get(symbol) or SymbolState()
            self._states[symbol] = replace(cur, **{field: px})
        return True

    def set_fair(self, symbol: str, value: Any) -> bool:
        return self._set(symbol, "fair_price", value)

    def set_secondary_fair(self, symbol: str, value: Any) -> bool:
        return self._set(symbol, "secondary_fair_price", value)

    def set_bid(self, symbol: str, value: Any) -> bool:
        return self._set(symbol, "bid", value)

    def set_ask(self, symbol: str, value: Any) -> bool:
        return self._set(symbol, "ask", value)

    def get(self, symbol: str) -> SymbolState:
        with self._lock:
            return self._states.get(symbol) or SymbolState()

    def symbols(self) -> List[str]:
        with self._lock:
            return list(self._states)
