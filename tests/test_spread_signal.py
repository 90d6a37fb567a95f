import pytest

from spread_monitor.config import ConfigError, SignalParams
from spread_monitor.models import SymbolState
from spread_monitor.strategy.spread_signal import SpreadSignalMachine


class Clock:
    def __init__(self, ms: int = 1_000_000) -> None:
        self.ms = ms

    def __call__(self) -> int:
        return self.ms


def _mk(policy="bid_ask", entry=0.5, exit_=0.2, cooldown=60.0, direction="both"):
    clock = Clock()
    params = SignalParams(
        policy=policy,
        entry_threshold_pct=entry,
        exit_threshold_pct=exit_,
        cooldown_sec=cooldown,
        direction=direction,
    )
    return SpreadSignalMachine(params, clock=clock), clock


def test_long_entry_when_ask_below_fair():
    m, _ = _mk()
    ev = m.evaluate("BTCUSDT", SymbolState(fair_price=100.0, ask=99.3))
    assert ev is not None
    assert ev.kind == "ENTRY"
    assert ev.direction == "LONG"
    assert ev.exec_price == 99.3
    assert ev.fair_price == 100.0
    assert ev.spread == pytest.approx(-0.70)
    sig = m.active_signals()["BTCUSDT"]
    assert sig.direction == "LONG"
    assert sig.entry_spread == pytest.approx(-0.70)


def test_exit_when_spread_converges():
    m, clock = _mk()
    m.evaluate("BTCUSDT", SymbolState(fair_price=100.0, ask=99.3))
    clock.ms += 4_250
    ev = m.evaluate("BTCUSDT", SymbolState(fair_price=100.0, ask=99.9))
    assert ev is not None
    assert ev.kind == "EXIT"
    assert ev.spread == pytest.approx(-0.10)
    assert ev.entry_spread == pytest.approx(-0.70)
    assert ev.elapsed_ms == 4_250
    assert ev.exec_price == 99.9
    assert not m.is_active("BTCUSDT")


def test_cooldown_blocks_reentry_after_exit():
    m, clock = _mk(cooldown=60.0)
    m.evaluate("BTCUSDT", SymbolState(fair_price=100.0, ask=99.3))
    entry_ms = clock.ms
    clock.ms += 1_000
    m.evaluate("BTCUSDT", SymbolState(fair_price=100.0, ask=99.9))
    clock.ms += 1_000
    assert m.evaluate("BTCUSDT", SymbolState(fair_price=100.0, ask=99.4)) is None
    assert not m.is_active("BTCUSDT")
    # cooldown runs from the entry, not the exit
    clock.ms = entry_ms + 60_000
    ev = m.evaluate("BTCUSDT", SymbolState(fair_price=100.0, ask=99.4))
    assert ev is not None and ev.kind == "ENTRY"
    assert m.last_signal_ms("BTCUSDT") == entry_ms + 60_000


def test_no_alert_below_entry_threshold():
    m, _ = _mk()
    for ask in (99.9, 99.6, 99.51, 100.0, 100.4):
        assert m.evaluate("ETHUSDT", SymbolState(fair_price=100.0, ask=ask, bid=99.0)) is None
    assert m.active_signals() == {}


def test_hold_between_exit_and_entry_thresholds():
    m, _ = _mk()
    m.evaluate("ETHUSDT", SymbolState(fair_price=100.0, ask=99.0))
    for ask in (99.7, 99.75, 99.79, 99.4, 98.0):
        assert m.evaluate("ETHUSDT", SymbolState(fair_price=100.0, ask=ask)) is None
    assert m.is_active("ETHUSDT")


def test_replaying_same_state_is_a_noop():
    m, clock = _mk(cooldown=0.0)
    state = SymbolState(fair_price=100.0, ask=99.3)
    assert m.evaluate("XUSDT", state) is not None
    assert m.evaluate("XUSDT", state) is None
    done = SymbolState(fair_price=100.0, ask=99.95)
    assert m.evaluate("XUSDT", done).kind == "EXIT"
    assert m.evaluate("XUSDT", done) is None


def test_short_entry_when_bid_above_fair():
    m, _ = _mk()
    ev = m.evaluate("SOLUSDT", SymbolState(fair_price=50.0, bid=50.4, ask=50.5))
    assert ev.kind == "ENTRY"
    assert ev.direction == "SHORT"
    assert ev.exec_price == 50.4
    assert ev.spread == pytest.approx(0.8)


def test_stronger_side_wins_and_long_wins_ties():
    m, _ = _mk()
    # crossed book: both sides qualify
    ev = m.evaluate("A", SymbolState(fair_price=100.0, ask=99.0, bid=101.5))
    assert ev.direction == "SHORT"
    m2, _ = _mk()
    ev = m2.evaluate("A", SymbolState(fair_price=100.0, ask=99.0, bid=101.0))
    assert ev.direction == "LONG"


def test_direction_cannot_flip_while_active():
    m, _ = _mk(cooldown=0.0)
    m.evaluate("A", SymbolState(fair_price=100.0, ask=99.0))
    assert m.evaluate("A", SymbolState(fair_price=100.0, ask=101.5, bid=101.2)) is None
    assert m.active_signals()["A"].direction == "LONG"


def test_neutral_spread_exit_uses_raw_ask_deviation():
    m, _ = _mk()
    m.evaluate("A", SymbolState(fair_price=100.0, bid=100.8, ask=100.9))
    assert m.active_signals()["A"].direction == "SHORT"
    # nothing qualifies: ask above fair, bid below fair; ask deviation +0.1 decides
    ev = m.evaluate("A", SymbolState(fair_price=100.0, bid=99.5, ask=100.1))
    assert ev.kind == "EXIT"
    assert ev.spread == pytest.approx(0.1)
    assert ev.exec_price == 99.5  # SHORT exits at bid


def test_neutral_spread_outside_exit_band_holds():
    m, _ = _mk()
    m.evaluate("A", SymbolState(fair_price=100.0, bid=100.8, ask=100.9))
    # ask still 0.3% above fair even though bid no longer qualifies
    assert m.evaluate("A", SymbolState(fair_price=100.0, bid=99.0, ask=100.3)) is None
    assert m.is_active("A")


def test_neutral_spread_falls_back_to_bid():
    m, _ = _mk()
    m.evaluate("A", SymbolState(fair_price=100.0, bid=100.8))
    ev = m.evaluate("A", SymbolState(fair_price=100.0, bid=99.9))
    assert ev.kind == "EXIT"
    assert ev.spread == pytest.approx(-0.1)
    assert ev.exec_price == 99.9


def test_missing_inputs_skip_evaluation():
    m, _ = _mk()
    assert m.evaluate("A", SymbolState(ask=90.0)) is None
    assert m.evaluate("A", SymbolState(fair_price=100.0)) is None
    assert m.evaluate("A", SymbolState(fair_price=0.0, ask=90.0)) is None


def test_direction_gate_blocks_entries_only():
    m, _ = _mk(direction="short_only")
    assert m.evaluate("A", SymbolState(fair_price=100.0, ask=99.0)) is None
    assert m.evaluate("A", SymbolState(fair_price=100.0, bid=101.0)).direction == "SHORT"


def test_index_policy_entry_and_exit():
    m, clock = _mk(policy="index")
    ev = m.evaluate("A", SymbolState(fair_price=99.0, secondary_fair_price=100.0))
    assert ev.kind == "ENTRY"
    assert ev.direction == "LONG"
    assert ev.spread == pytest.approx(-1.0)
    assert ev.secondary_fair_price == 100.0
    clock.ms += 10
    ev = m.evaluate("A", SymbolState(fair_price=100.1, secondary_fair_price=100.0))
    assert ev.kind == "EXIT"
    assert ev.spread == pytest.approx(0.1)


def test_index_policy_short_when_fair_at_or_above_index():
    m, _ = _mk(policy="index")
    ev = m.evaluate("A", SymbolState(fair_price=101.0, secondary_fair_price=100.0))
    assert ev.direction == "SHORT"
    assert m.evaluate("B", SymbolState(fair_price=101.0)) is None


def test_reversed_thresholds_rejected():
    with pytest.raises(ConfigError):
        _mk(entry=0.2, exit_=0.5)
    with pytest.raises(ConfigError):
        _mk(entry=0.3, exit_=0.3)
