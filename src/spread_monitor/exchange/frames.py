from __future__ import annotations

from typing import Any, List

from ..models import BookUpdate, FairUpdate


class FrameError(ValueError):
    """Frame has a shape no decoder understands; the frame is skipped."""


def _unwrap(msg: Any) -> Any:
    # Combined stream format: {"stream":"!bookTicker","data":{...}}
    if isinstance(msg, dict) and "stream" in msg and "data" in msg:
        return msg["data"]
    return msg


def parse_fair_frame(msg: Any) -> List[FairUpdate]:
    """Decode a `!markPrice@arr` frame.

    Items without a symbol are skipped. Prices are passed through raw; the cache
    decides whether they are usable. A missing index price ("i") stays None so the
    cached secondary value is kept.
    """
    payload = _unwrap(msg)
    if not isinstance(payload, list):
        raise FrameError(f"mark price frame is not an array: {type(payload).__name__}")
    out: List[FairUpdate] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        sym = item.get("s")
        if not sym:
            continue
        out.append(FairUpdate(symbol=str(sym), fair_price=item.get("p"), secondary_fair_price=item.get("i")))
    return out


def parse_book_frame(msg: Any) -> List[BookUpdate]:
    """Decode a `!bookTicker` frame (single object or array of objects)."""
    payload = _unwrap(msg)
    if isinstance(payload, dict):
        items = [payload]
    elif isinstance(payload, list):
        items = payload
    else:
        raise FrameError(f"book ticker frame has unexpected type: {type(payload).__name__}")
    out: List[BookUpdate] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        # event type is optional on some venues; when present it must match
        ev = item.get("e")
        if ev is not None and ev != "bookTicker":
            continue
        sym = item.get("s")
        if not sym:
            continue
        out.append(BookUpdate(symbol=str(sym), bid=item.get("b"), ask=item.get("a")))
    return out
