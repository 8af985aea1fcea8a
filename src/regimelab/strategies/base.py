"""Strategy interface shared by every signal generator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional

from regimelab.core.contracts import HMMPrediction, PriceSeries, StrategySignal
from regimelab.features.indicators import IndicatorSet, compute_indicators


@dataclass
class InstrumentData:
    """Prices and indicators visible to a strategy at one evaluation step."""

    prices: List[float]
    indicators: IndicatorSet = field(default_factory=IndicatorSet)
    symbol: str = ""

    @classmethod
    def from_prices(cls, prices: List[float], symbol: str = "") -> InstrumentData:
        return cls(prices=list(prices), indicators=compute_indicators(prices), symbol=symbol)

    @classmethod
    def from_series(cls, series: PriceSeries) -> InstrumentData:
        return cls.from_prices(series.closes().tolist(), symbol=series.symbol)


@dataclass
class StrategyResult:
    """Signal produced by one strategy, tagged with its source."""

    strategy_name: str
    signal: StrategySignal
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"strategy_name": self.strategy_name, **self.signal.to_dict()}
        if self.error is not None:
            data["error"] = self.error
        return data


class Strategy(ABC):
    """A signal generator over instrument data and the current regime inference.

    Subclasses declare ``key`` (registry name), ``name`` (display name) and
    ``DEFAULTS``; overrides passed at construction must use known keys.
    """

    key: ClassVar[str] = ""
    name: ClassVar[str] = ""
    DEFAULTS: ClassVar[Dict[str, float]] = {}

    def __init__(self, params: Optional[Dict[str, float]] = None):
        params = dict(params or {})
        unknown = set(params) - set(self.DEFAULTS)
        if unknown:
            raise ValueError(f"{self.key}: unknown parameters {sorted(unknown)}")
        self.params: Dict[str, float] = {**self.DEFAULTS, **params}

    @abstractmethod
    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        pass

    def reset(self) -> None:
        """Clear any per-run state; stateless strategies have none."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.params})"
