from __future__ import annotations

import datetime as dt
import time
from typing import Tuple


def now_ms() -> int:
    return int(time.time() * 1000)


def split_elapsed(elapsed_ms: int) -> Tuple[int, int]:
    """Split a duration into whole seconds and the millisecond remainder."""
    elapsed_ms = max(int(elapsed_ms), 0)
    return elapsed_ms // 1000, elapsed_ms % 1000


def utc_clock(ts_ms: int) -> str:
    """Time of day with millisecond precision, e.g. '14:03:07.512 UTC'."""
    t = dt.datetime.fromtimestamp(ts_ms / 1000, tz=dt.timezone.utc)
    return t.strftime("%H:%M:%S.") + f"{t.microsecond // 1000:03d} UTC"
