"""Performance metrics over daily return series.

Undefined-but-favourable ratios (no losses, no drawdown, no downside
deviation) are reported as ``math.inf`` rather than raising.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

TRADING_DAYS = 252
RISK_FREE_RATE = 0.03
MIN_DEVIATION = 1e-12  # below this a deviation is rounding noise on a constant series


def round_half_away(value: float, digits: int = 2) -> float:
    """Round like fixed-point string formatting: half away from zero on the exact binary value."""
    if not math.isfinite(value):
        return value
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass
class Drawdown:
    max_drawdown: float = 0.0
    peak_index: int = 0
    trough_index: int = 0


@dataclass
class PerformanceMetrics:
    """Performance metrics container"""

    cumulative_return: float = 0.0
    annualized_return: float = 0.0
    max_drawdown: float = 0.0
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    win_rate: float = 0.0
    profit_loss_ratio: float = 0.0
    calmar_ratio: float = 0.0
    information_ratio: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


def _array(returns: Sequence[float]) -> np.ndarray:
    return np.asarray(returns, dtype=float).reshape(-1)


def cumulative_return(returns: Sequence[float]) -> float:
    r = _array(returns)
    if len(r) == 0:
        return 0.0
    return float(np.prod(1 + r) - 1)


def annualized_return(returns: Sequence[float], trading_days: int = TRADING_DAYS) -> float:
    r = _array(returns)
    if len(r) == 0:
        return 0.0
    years = len(r) / trading_days
    growth = max(0.0, 1 + cumulative_return(r))
    return growth ** (1 / years) - 1


def annualized_volatility(returns: Sequence[float], trading_days: int = TRADING_DAYS) -> float:
    """Sample standard deviation scaled by sqrt(trading_days)."""
    r = _array(returns)
    if len(r) < 2:
        return 0.0
    return float(np.std(r, ddof=1) * math.sqrt(trading_days))


def sharpe_ratio(
    returns: Sequence[float],
    risk_free_rate: float = RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS,
) -> float:
    r = _array(returns)
    if len(r) == 0:
        return 0.0
    vol = annualized_volatility(r, trading_days)
    if vol < MIN_DEVIATION:
        return 0.0
    return (annualized_return(r, trading_days) - risk_free_rate) / vol


def sortino_ratio(
    returns: Sequence[float],
    risk_free_rate: float = RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS,
) -> float:
    """Excess annualized return over the annualized deviation of negative returns."""
    r = _array(returns)
    if len(r) == 0:
        return 0.0
    negative = r[r < 0]
    if len(negative) == 0:
        return math.inf

    center = min(0.0, float(negative.mean()))
    downside = math.sqrt(float(np.mean((negative - center) ** 2))) * math.sqrt(trading_days)
    if downside < MIN_DEVIATION:
        return math.inf
    return (annualized_return(r, trading_days) - risk_free_rate) / downside


def equity_curve(returns: Sequence[float], initial_capital: float = 1.0) -> List[float]:
    """Compounded capital path starting at ``initial_capital``; empty for no returns."""
    r = _array(returns)
    if len(r) == 0:
        return []
    return np.concatenate([[initial_capital], initial_capital * np.cumprod(1 + r)]).tolist()


def max_drawdown(curve: Sequence[float]) -> Drawdown:
    """Largest peak-to-trough decline relative to the running peak."""
    values = list(curve)
    if not values:
        return Drawdown()

    result = Drawdown()
    peak = values[0]
    peak_index = 0
    for i in range(1, len(values)):
        if values[i] > peak:
            peak, peak_index = values[i], i
        drawdown = (peak - values[i]) / peak if peak > 0 else 0.0
        if drawdown > result.max_drawdown:
            result = Drawdown(drawdown, peak_index, i)
    return result


def win_rate(returns: Sequence[float]) -> float:
    r = _array(returns)
    if len(r) == 0:
        return 0.0
    return float(np.count_nonzero(r > 0) / len(r))


def profit_loss_ratio(returns: Sequence[float]) -> float:
    r = _array(returns)
    if len(r) == 0:
        return 0.0
    gains, losses = r[r > 0], r[r < 0]
    if len(losses) == 0:
        return math.inf
    avg_gain = float(gains.mean()) if len(gains) else 0.0
    avg_loss = abs(float(losses.mean()))
    if avg_loss == 0:
        return math.inf
    return avg_gain / avg_loss


def calmar_ratio(returns: Sequence[float], trading_days: int = TRADING_DAYS) -> float:
    r = _array(returns)
    if len(r) == 0:
        return 0.0
    drawdown = max_drawdown(equity_curve(r)).max_drawdown
    if drawdown == 0:
        return math.inf
    return annualized_return(r, trading_days) / drawdown


def information_ratio(
    returns: Sequence[float],
    benchmark: Sequence[float],
    trading_days: int = TRADING_DAYS,
) -> float:
    """Annualized mean excess return over the population tracking error."""
    r, b = _array(returns), _array(benchmark)
    if len(r) == 0 or len(r) != len(b):
        return 0.0
    excess = r - b
    tracking_error = float(np.std(excess)) * math.sqrt(trading_days)
    if tracking_error < MIN_DEVIATION:
        return 0.0
    return float(excess.mean()) * trading_days / tracking_error


def monthly_returns(returns: Sequence[float], dates: Sequence) -> Dict[str, float]:
    """Sum of daily returns per calendar month, keyed ``YYYY-MM`` in date order."""
    r = _array(returns)
    if len(r) == 0 or len(dates) != len(r):
        return {}
    series = pd.Series(r, index=pd.to_datetime(list(dates)))
    grouped = series.groupby(series.index.strftime("%Y-%m"), sort=False).sum()
    return {str(k): float(v) for k, v in grouped.items()}


def calculate_all_metrics(
    returns: Sequence[float],
    benchmark: Optional[Sequence[float]] = None,
    risk_free_rate: float = RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS,
) -> PerformanceMetrics:
    r = _array(returns)
    metrics = PerformanceMetrics(
        cumulative_return=cumulative_return(r),
        annualized_return=annualized_return(r, trading_days),
        max_drawdown=max_drawdown(equity_curve(r)).max_drawdown,
        volatility=annualized_volatility(r, trading_days),
        sharpe_ratio=sharpe_ratio(r, risk_free_rate, trading_days),
        sortino_ratio=sortino_ratio(r, risk_free_rate, trading_days),
        win_rate=win_rate(r),
        profit_loss_ratio=profit_loss_ratio(r),
        calmar_ratio=calmar_ratio(r, trading_days),
    )
    if benchmark is not None and len(benchmark) == len(r):
        metrics.information_ratio = information_ratio(r, benchmark, trading_days)
    return metrics
