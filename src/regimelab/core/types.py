from __future__ import annotations

from enum import Enum, IntEnum


class SignalAction(Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"
    REDUCE = "reduce"


class MarketRegime(IntEnum):
    """Canonical interpretation of HMM hidden states."""
    BULLISH = 0
    RANGING = 1
    BEARISH = 2


class Shape(Enum):
    """Local shape of three consecutive filter values."""
    TROUGH = "low"
    PEAK = "high"
    RISING = "rising"
    FALLING = "falling"
    UNKNOWN = "unknown"


class TradeSignal(Enum):
    FLAT = "flat"
    BUY = "buy"
    HOLD = "hold"
    SELL = "sell"


class TradeType(Enum):
    BUY = "buy"
    SELL = "sell"
    FORCED_SELL = "forced_sell"
    REBALANCE = "rebalance"


class AllocationMethod(str, Enum):
    SHARPE = "sharpe"
    RISK_PARITY = "risk_parity"
    CORRELATION = "correlation"
    KELLY = "kelly"
    COMBINED = "combined"


class Concentration(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
