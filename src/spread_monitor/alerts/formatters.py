from __future__ import annotations

import html
from typing import Any, Dict, List, Optional

from ..models import ActiveSignal, SignalEvent
from ..notifier import MAX_TELEGRAM_CHARS
from ..time_utils import split_elapsed, utc_clock

ICON_ALERT = "\U0001F6A8"  # 🚨
ICON_LONG = "\U0001F7E2"  # 🟢
ICON_SHORT = "\U0001F534"  # 🔴
ICON_DONE = "✅"  # ✅
ICON_BOT = "\U0001F916"  # 🤖
ICON_STOP = "\U0001F6D1"  # 🛑

POLICY_LABELS = {
    "bid_ask": "bid/ask vs mark price",
    "index": "mark price vs index price",
}


def escape(val: Any) -> str:
    return html.escape(str(val)) if val is not None else ""


def _px(val: Optional[float]) -> str:
    return "n/a" if val is None else f"{val:.10g}"


def format_startup(
    branding: str,
    exchange: str,
    symbol_count: Optional[int],
    policy: str,
    entry_threshold_pct: float,
    exit_threshold_pct: float,
    cooldown_sec: float,
    quote_asset: str = "USDT",
    direction: str = "both",
) -> str:
    count = "?" if symbol_count is None else str(symbol_count)
    lines = [
        f"{ICON_BOT} <b>{escape(branding.upper())} STARTED</b>",
        "",
        f"Exchange: {escape(exchange)}",
        f"Monitoring: ~{count} {escape(quote_asset)} symbols",
        f"Method: {escape(POLICY_LABELS.get(policy, policy))}",
        f"Entry threshold: {entry_threshold_pct}%",
        f"Exit threshold: {exit_threshold_pct}%",
        f"Cooldown: {cooldown_sec:g}s",
    ]
    if direction != "both":
        lines.append(f"Direction: {escape(direction)}")
    return "\n".join(lines)


def format_shutdown(branding: str, reason: str = "") -> str:
    text = f"{ICON_STOP} <b>{escape(branding.upper())} STOPPED</b>"
    if reason:
        text += f"\n\nReason: {escape(reason)}"
    return text


def format_entry(branding: str, ev: SignalEvent) -> str:
    icon = ICON_LONG if ev.direction == "LONG" else ICON_SHORT
    lines = [
        f"{ICON_ALERT} <b>{escape(branding)} - {abs(ev.spread):.2f}%</b>",
        "",
        f"\U0001F449<b>{escape(ev.symbol)}</b>\U0001F448",
        "",
        f"{icon} <b>{ev.direction}</b>",
    ]
    if ev.policy == "index":
        lines.append(f"⚖️ Mark: {_px(ev.fair_price)}")
        lines.append(f"\U0001F4CA Index: {_px(ev.secondary_fair_price)}")
    else:
        label = "ASK (buy at)" if ev.direction == "LONG" else "BID (sell at)"
        lines.append(f"\U0001F4B1 {label}: {_px(ev.exec_price)}")
        lines.append(f"⚖️ Fair: {_px(ev.fair_price)}")
    lines.append(f"⏰ Detected: {utc_clock(ev.ts_ms)}")
    return "\n".join(lines)


def format_exit(ev: SignalEvent) -> str:
    secs, ms = split_elapsed(ev.elapsed_ms or 0)
    lines = [
        f"{ICON_DONE} <b>{escape(ev.symbol)} - prices converged!</b>",
        "",
        f"⏱️ After: {secs} s {ms} ms",
    ]
    if ev.policy == "index":
        lines.append(f"⚖️ Mark: {_px(ev.fair_price)}")
        lines.append(f"\U0001F4CA Index: {_px(ev.secondary_fair_price)}")
    else:
        lines.append(f"\U0001F4B0 Price: {_px(ev.exec_price)}")
        lines.append(f"⚖️ Fair: {_px(ev.fair_price)}")
    lines.append(f"\U0001F4CA Deviation: {abs(ev.spread):.2f}%")
    if ev.entry_spread is not None:
        lines.append(f"\U0001F4C9 Was: {abs(ev.entry_spread):.2f}%")
    return "\n".join(lines)


def format_event(branding: str, ev: SignalEvent) -> str:
    if ev.kind == "ENTRY":
        return format_entry(branding, ev)
    return format_exit(ev)


def format_stats(
    branding: str,
    counts: Dict[str, int],
    watchdog_reconnects: int,
    active: Dict[str, ActiveSignal],
    now_ms: int,
    window_sec: float,
) -> str:
    per_feed = " | ".join(f"{escape(k)}={v}" for k, v in counts.items())
    lines: List[str] = [
        f"<b>{escape(branding)} STATS</b>",
        f"<pre>updates/{window_sec:g}s: {per_feed}",
        f"watchdog reconnects: {watchdog_reconnects} | active signals: {len(active)}",
    ]
    # whole lines only, so the <pre> block is always closed within the message limit
    budget = MAX_TELEGRAM_CHARS - len("</pre>") - 32
    used = sum(len(line) + 1 for line in lines)
    ordered = sorted(active.items())
    for i, (sym, sig) in enumerate(ordered):
        age = round((now_ms - sig.entry_time_ms) / 1000)
        line = f"  {escape(sym)} {sig.direction} entry={sig.entry_spread:.3f}% | {age}s ago"
        if used + len(line) + 1 > budget:
            lines.append(f"  ... {len(ordered) - i} more")
            break
        lines.append(line)
        used += len(line) + 1
    lines[-1] += "</pre>"
    return "\n".join(lines)
