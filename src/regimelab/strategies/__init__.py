"""Strategy bank: ten signal generators, their registry and batch helpers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, Union

import numpy as np

from regimelab.config.settings import StrategyParams
from regimelab.core.contracts import HMMPrediction, StrategySignal
from regimelab.strategies.base import InstrumentData, Strategy, StrategyResult
from regimelab.strategies.mean_reversion import MeanReversionStrategy
from regimelab.strategies.momentum import LongShortStrategy, MomentumStrategy, TrendFollowingStrategy
from regimelab.strategies.regime_switching import (
    MarketTimingStrategy,
    PortfolioOptimizationStrategy,
    ProbabilityThresholdStrategy,
    StateSwitchStrategy,
)
from regimelab.strategies.volatility import RiskParityStrategy, VolatilityStrategy

logger = logging.getLogger(__name__)

# Canonical evaluation order
STRATEGY_REGISTRY: Dict[str, Type[Strategy]] = {
    cls.key: cls
    for cls in (
        StateSwitchStrategy,
        ProbabilityThresholdStrategy,
        LongShortStrategy,
        VolatilityStrategy,
        MeanReversionStrategy,
        MomentumStrategy,
        TrendFollowingStrategy,
        RiskParityStrategy,
        MarketTimingStrategy,
        PortfolioOptimizationStrategy,
    )
}


def init_strategies(
    params: Optional[Union[StrategyParams, Mapping[str, Mapping[str, float]]]] = None,
) -> List[Strategy]:
    """Instantiate every registered strategy with its parameter overrides."""
    if isinstance(params, StrategyParams):
        params = params.as_mapping()
    params = params or {}

    unknown = set(params) - set(STRATEGY_REGISTRY)
    if unknown:
        raise ValueError(f"Unknown strategies: {sorted(unknown)}")
    return [cls(params.get(key)) for key, cls in STRATEGY_REGISTRY.items()]


def apply_all_strategies(
    data: InstrumentData,
    prediction: HMMPrediction,
    strategies: Sequence[Strategy],
) -> List[StrategyResult]:
    """Evaluate every strategy; a failing strategy yields a neutral hold with the error recorded."""
    results = []
    for strategy in strategies:
        try:
            signal = strategy.generate_signal(data, prediction)
            results.append(StrategyResult(strategy.name, signal))
        except Exception as e:
            logger.error(f"Strategy {strategy.name} failed: {e}")
            results.append(
                StrategyResult(strategy.name, StrategySignal.neutral(confidence=0.0), error=str(e))
            )
    return results


def _pearson(a: np.ndarray, b: np.ndarray) -> float:
    """Pearson correlation with population moments; 0 when either side is constant."""
    da, db = a - a.mean(), b - b.mean()
    std_a = np.sqrt(np.mean(da * da))
    std_b = np.sqrt(np.mean(db * db))
    if std_a == 0 or std_b == 0:
        return 0.0
    return float(np.mean(da * db) / (std_a * std_b))


def calculate_strategy_correlation(results: Sequence[Any]) -> np.ndarray:
    """Correlation matrix of strategy position series.

    Each entry of ``results`` is either a sequence of positions or an object
    exposing one as ``.signals``. Pairs of unequal or zero length correlate
    as 0; the diagonal is 1.
    """
    series = [np.asarray(getattr(r, "signals", r), dtype=float) for r in results]
    n = len(series)
    matrix = np.eye(n)
    for i in range(n):
        for j in range(i + 1, n):
            a, b = series[i], series[j]
            if len(a) == 0 or len(b) == 0 or len(a) != len(b):
                continue
            matrix[i, j] = matrix[j, i] = _pearson(a, b)
    return matrix


__all__ = [
    "InstrumentData",
    "LongShortStrategy",
    "MarketTimingStrategy",
    "MeanReversionStrategy",
    "MomentumStrategy",
    "PortfolioOptimizationStrategy",
    "ProbabilityThresholdStrategy",
    "RiskParityStrategy",
    "STRATEGY_REGISTRY",
    "StateSwitchStrategy",
    "Strategy",
    "StrategyResult",
    "TrendFollowingStrategy",
    "VolatilityStrategy",
    "apply_all_strategies",
    "calculate_strategy_correlation",
    "init_strategies",
]
