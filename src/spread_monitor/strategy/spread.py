from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..models import SpreadCandidate, SymbolState


def pct_deviation(price: float, reference: float) -> float:
    return (price - reference) / reference * 100.0


@dataclass(frozen=True)
class BidAskReading:
    """Policy A view of one symbol: raw deviations plus the winning qualified candidate."""
    ask_spread: Optional[float]
    bid_spread: Optional[float]
    candidate: Optional[SpreadCandidate]

    @property
    def neutral_spread(self) -> float:
        # Raw deviation used for the exit test when nothing qualifies; ask first.
        if self.ask_spread is not None:
            return self.ask_spread
        if self.bid_spread is not None:
            return self.bid_spread
        return 0.0


def read_bid_ask(state: SymbolState) -> Optional[BidAskReading]:
    """Policy A: ask below fair qualifies LONG, bid above fair qualifies SHORT.

    Returns None when the symbol cannot be evaluated (no fair price or no book).
    """
    fair = state.fair_price
    if not fair:
        return None
    if state.bid is None and state.ask is None:
        return None

    ask_spread = pct_deviation(state.ask, fair) if state.ask is not None else None
    bid_spread = pct_deviation(state.bid, fair) if state.bid is not None else None
    long_spread = ask_spread if ask_spread is not None and ask_spread < 0 else None
    short_spread = bid_spread if bid_spread is not None and bid_spread > 0 else None

    candidate: Optional[SpreadCandidate] = None
    if long_spread is not None and (short_spread is None or abs(long_spread) >= abs(short_spread)):
        candidate = SpreadCandidate(direction="LONG", spread=long_spread, exec_price=state.ask)
    elif short_spread is not None:
        candidate = SpreadCandidate(direction="SHORT", spread=short_spread, exec_price=state.bid)
    return BidAskReading(ask_spread=ask_spread, bid_spread=bid_spread, candidate=candidate)


def read_index(state: SymbolState) -> Optional[SpreadCandidate]:
    """Policy B: fair vs secondary reference, always exactly one candidate."""
    fair = state.fair_price
    ref = state.secondary_fair_price
    if not fair or not ref:
        return None
    spread = pct_deviation(fair, ref)
    direction = "LONG" if fair < ref else "SHORT"
    return SpreadCandidate(direction=direction, spread=spread, exec_price=fair)


def has_comparison_inputs(policy: str, state: SymbolState) -> bool:
    """True once both sides of the policy's comparison have been observed."""
    if state.fair_price is None:
        return False
    if policy == "index":
        return state.secondary_fair_price is not None
    return state.bid is not None or state.ask is not None
