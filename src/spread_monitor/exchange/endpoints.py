from __future__ import annotations

FAIR_PRICE_STREAM = "!markPrice@arr@1s"
BOOK_TICKER_STREAM = "!bookTicker"

_HOSTS = {
    "asterdex": {
        "rest": "https://fapi.asterdex.com",
        "ws": "wss://fstream.asterdex.com",
    },
    "binance": {
        "rest": "https://fapi.binance.com",
        "ws": "wss://fstream.binance.com",
    },
}

EXCHANGES = tuple(sorted(_HOSTS))


def endpoints(exchange: str) -> dict:
    name = exchange.lower()
    if name not in _HOSTS:
        raise ValueError(f"Unsupported exchange: {exchange} (known: {', '.join(sorted(_HOSTS))})")
    hosts = _HOSTS[name]
    return {
        "rest": hosts["rest"],
        # Raw single-stream paths (/ws/<stream>), one socket per feed
        "fair_ws": f"{hosts['ws']}/ws/{FAIR_PRICE_STREAM}",
        "book_ws": f"{hosts['ws']}/ws/{BOOK_TICKER_STREAM}",
    }
