from __future__ import annotations

from typing import Any, Callable, Dict, Optional
import logging

from .config import UniverseParams
from .exchange.rest import FuturesRest

log = logging.getLogger("universe")


def count_tradable(info: Dict[str, Any], quote_asset: str = "USDT") -> int:
    quote_asset = quote_asset.upper()
    count = 0
    for s in info.get("symbols", []) or []:
        if s.get("status") != "TRADING":
            continue
        if (s.get("quoteAsset") or "").upper() != quote_asset:
            continue
        count += 1
    return count


async def fetch_symbol_count(rest: FuturesRest, quote_asset: str = "USDT") -> Optional[int]:
    """Number of TRADING symbols quoted in `quote_asset`, or None if the query fails."""
    try:
        info = await rest.exchange_info()
        count = count_tradable(info, quote_asset)
    except Exception as e:
        log.warning("Could not fetch exchangeInfo: %s", e)
        return None
    log.info("Exchange OK: %d active %s symbols", count, quote_asset)
    return count


def symbol_filter(params: UniverseParams) -> Callable[[str], bool]:
    allow = set(params.symbols)
    deny = set(params.exclude)
    if allow:
        log.info("Universe: explicit symbols (%d)", len(allow))
    if deny:
        log.info("Universe: excluding %d symbols", len(deny))

    def accept(symbol: str) -> bool:
        if allow and symbol not in allow:
            return False
        return symbol not in deny

    return accept
