from regimelab.core.contracts import (
    HMMPrediction,
    PositionAllocation,
    PriceBar,
    PriceSeries,
    StrategySignal,
)
from regimelab.core.types import MarketRegime, Shape, SignalAction, TradeSignal

__all__ = [
    "HMMPrediction",
    "MarketRegime",
    "PositionAllocation",
    "PriceBar",
    "PriceSeries",
    "Shape",
    "SignalAction",
    "StrategySignal",
    "TradeSignal",
]
