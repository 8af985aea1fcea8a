"""Feature extraction and quantile discretization for HMM observations."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from regimelab.features.indicators import IndicatorSet


def extract_features(indicators: IndicatorSet) -> List[float]:
    """Concatenate returns, volatility and RSI/100 into one flat vector."""
    return (
        list(indicators.returns)
        + list(indicators.volatility)
        + [r / 100.0 for r in indicators.rsi]
    )


def quantile_thresholds(values: Sequence[float], num_states: int) -> np.ndarray:
    ordered = np.sort(np.asarray(values, dtype=float))
    n = len(ordered)
    idx = [(n * i) // num_states for i in range(1, num_states)]
    return ordered[idx] if idx else np.empty(0)


def discretize(values: Sequence[float], num_states: int = 10) -> List[int]:
    """Map each value to the number of quantile thresholds it is >= to.

    Labels lie in ``[0, num_states)``. Identical input always yields
    identical labels.
    """
    if num_states < 1:
        raise ValueError(f"num_states must be >= 1, got {num_states}")
    if len(values) == 0:
        return []
    thresholds = quantile_thresholds(values, num_states)
    labels = np.searchsorted(thresholds, np.asarray(values, dtype=float), side="right")
    return labels.astype(int).tolist()
