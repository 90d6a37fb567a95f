from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Literal

Side = Literal["LONG", "SHORT"]
Feed = Literal["fair", "book"]

@dataclass(frozen=True)
class SymbolState:
    fair_price: Optional[float] = None
    secondary_fair_price: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None

@dataclass(frozen=True)
class FairUpdate:
    symbol: str
    fair_price: object
    secondary_fair_price: object = None

@dataclass(frozen=True)
class BookUpdate:
    symbol: str
    bid: object
    ask: object

@dataclass
class ActiveSignal:
    direction: Side
    entry_time_ms: int
    entry_spread: float

@dataclass(frozen=True)
class SpreadCandidate:
    direction: Side
    spread: float
    exec_price: Optional[float]

@dataclass(frozen=True)
class SignalEvent:
    kind: Literal["ENTRY", "EXIT"]
    symbol: str
    direction: Side
    spread: float
    fair_price: float
    ts_ms: int
    policy: str
    exec_price: Optional[float] = None
    secondary_fair_price: Optional[float] = None
    entry_spread: Optional[float] = None
    elapsed_ms: Optional[int] = None
