from spread_monitor.alerts import formatters
from spread_monitor.models import ActiveSignal, SignalEvent
from spread_monitor.time_utils import split_elapsed, utc_clock

TS = 1_700_000_000_123  # 2023-11-14 22:13:20.123 UTC


def _entry(**kw):
    base = dict(
        kind="ENTRY", symbol="BTCUSDT", direction="LONG", spread=-0.7012, fair_price=100.0,
        ts_ms=TS, policy="bid_ask", exec_price=99.3,
    )
    base.update(kw)
    return SignalEvent(**base)


def test_entry_alert_bid_ask():
    msg = formatters.format_entry("Asterdex", _entry())
    assert "<b>Asterdex - 0.70%</b>" in msg
    assert "<b>BTCUSDT</b>" in msg
    assert "<b>LONG</b>" in msg
    assert "ASK (buy at): 99.3" in msg
    assert "Fair: 100" in msg
    assert "22:13:20.123 UTC" in msg


def test_entry_alert_short_uses_bid_label_and_escapes():
    msg = formatters.format_entry("A&B", _entry(symbol="X<Y", direction="SHORT", spread=0.81, exec_price=100.81))
    assert "A&amp;B" in msg
    assert "X&lt;Y" in msg
    assert "BID (sell at): 100.81" in msg


def test_entry_alert_index_policy_shows_both_references():
    msg = formatters.format_entry("M", _entry(policy="index", fair_price=99.0, secondary_fair_price=100.0, exec_price=99.0))
    assert "Mark: 99" in msg
    assert "Index: 100" in msg
    assert "ASK" not in msg


def test_exit_alert():
    ev = _entry(kind="EXIT", spread=-0.1, exec_price=99.9, entry_spread=-0.7012, elapsed_ms=12_345)
    msg = formatters.format_event("Asterdex", ev)
    assert "BTCUSDT - prices converged!" in msg
    assert "After: 12 s 345 ms" in msg
    assert "Price: 99.9" in msg
    assert "Deviation: 0.10%" in msg
    assert "Was: 0.70%" in msg


def test_startup_unknown_symbol_count():
    msg = formatters.format_startup("Spread Bot", "asterdex", None, "bid_ask", 0.5, 0.2, 60)
    assert "SPREAD BOT STARTED" in msg
    assert "~? USDT symbols" in msg
    assert "bid/ask vs mark price" in msg
    assert "Cooldown: 60s" in msg
    assert "Direction" not in msg
    msg = formatters.format_startup("S", "binance", 321, "index", 0.5, 0.2, 60, direction="long_only")
    assert "~321 USDT" in msg
    assert "Direction: long_only" in msg


def test_stats_summary_lists_active_signals():
    active = {"ETHUSDT": ActiveSignal(direction="SHORT", entry_time_ms=TS - 65_000, entry_spread=0.612)}
    msg = formatters.format_stats("S", {"fair": 10, "book": 20}, 2, active, TS, 120)
    assert "fair=10 | book=20" in msg
    assert "watchdog reconnects: 2 | active signals: 1" in msg
    assert "ETHUSDT SHORT entry=0.612% | 65s ago" in msg
    assert msg.count("<pre>") == msg.count("</pre>") == 1


def test_stats_summary_stays_within_limit_and_closes_pre():
    active = {
        f"SYM{i:04d}USDT": ActiveSignal(direction="LONG", entry_time_ms=TS - 1_000, entry_spread=-0.75)
        for i in range(500)
    }
    msg = formatters.format_stats("S", {"fair": 1, "book": 1}, 0, active, TS, 120)
    assert len(msg) <= formatters.MAX_TELEGRAM_CHARS
    assert msg.endswith(" more</pre>")
    assert msg.count("<pre>") == msg.count("</pre>") == 1
    assert "SYM0000USDT LONG" in msg
    assert "SYM0499USDT" not in msg


def test_time_helpers():
    assert split_elapsed(1_005) == (1, 5)
    assert split_elapsed(-3) == (0, 0)
    assert utc_clock(0) == "00:00:00.000 UTC"
