"""Strategy weighting and cross-instrument position allocation.

Strategy-level weights (Sharpe, risk parity, correlation-penalised, Kelly or
a blend) are returned aligned with the input results; failed results get
weight 0. Instrument-level allocation ranks instruments by their average
strategy Sharpe and enforces per-instrument bounds while preserving the
configured total equity exposure.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from regimelab.backtesting.engine import StrategyBacktestResult
from regimelab.config.settings import AllocationConfig
from regimelab.core.contracts import PositionAllocation, PriceSeries
from regimelab.core.types import AllocationMethod, Concentration

logger = logging.getLogger(__name__)

MatrixLike = Optional[Union[np.ndarray, Sequence[Sequence[float]]]]


@dataclass
class PortfolioMetrics:
    total_weight: float = 0.0
    weighted_sharpe: float = 0.0
    max_weight: float = 0.0
    min_weight: float = 0.0
    avg_weight: float = 0.0
    herfindahl: float = 0.0
    concentration: Concentration = Concentration.LOW
    num_positions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["concentration"] = self.concentration.value
        return data


@dataclass
class FinalPositions:
    positions: List[PositionAllocation]
    portfolio_metrics: PortfolioMetrics
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def effective_weight(self) -> float:
        return float(sum(p.weight for p in self.positions))


def _valid_mask(results: Sequence[StrategyBacktestResult]) -> np.ndarray:
    return np.array([r.ok for r in results], dtype=bool)


def _spread(values: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """Normalise ``values`` over valid entries, splitting equally when they sum to zero."""
    weights = np.zeros(len(valid))
    if not valid.any():
        return weights
    total = values[valid].sum()
    if total > 0:
        weights[valid] = values[valid] / total
    else:
        weights[valid] = 1.0 / valid.sum()
    return weights


def allocate_by_sharpe(results: Sequence[StrategyBacktestResult]) -> np.ndarray:
    """Weights proportional to non-negative Sharpe ratios."""
    valid = _valid_mask(results)
    sharpe = np.array([max(0.0, r.metrics.sharpe_ratio) if r.ok else 0.0 for r in results])
    return _spread(sharpe, valid)


def allocate_by_risk_parity(
    results: Sequence[StrategyBacktestResult],
    correlation: MatrixLike = None,
) -> np.ndarray:
    """Inverse-risk weights using |max drawdown| as the risk proxy (0.01 when it is zero).

    The correlation matrix is accepted for interface symmetry; the drawdown
    proxy is used whether or not one is supplied.
    """
    valid = _valid_mask(results)
    inverse = np.array([
        1.0 / (abs(r.metrics.max_drawdown) or 0.01) if r.ok else 0.0
        for r in results
    ])
    return _spread(inverse, valid)


def allocate_with_correlation_adjustment(
    results: Sequence[StrategyBacktestResult],
    correlation: MatrixLike = None,
    max_correlation: float = 0.8,
) -> np.ndarray:
    """Sharpe weights penalised by ``(1 - |corr|)`` for every pair above ``max_correlation``."""
    weights = allocate_by_sharpe(results)
    if correlation is None or len(correlation) == 0:
        return weights

    corr = np.abs(np.asarray(correlation, dtype=float))
    penalty = np.ones(len(weights))
    for i in range(len(weights)):
        for j in range(corr.shape[1]):
            if i != j and corr[i, j] > max_correlation:
                penalty[i] *= 1 - corr[i, j]
    adjusted = weights * penalty
    return _spread(adjusted, _valid_mask(results))


def allocate_by_kelly(
    results: Sequence[StrategyBacktestResult],
    kelly_fraction: float = 0.5,
) -> np.ndarray:
    """Fractional Kelly: ``f * (win_rate - loss_rate / profit_loss_ratio)`` floored at 0."""
    valid = _valid_mask(results)
    kelly = np.zeros(len(results))
    for i, r in enumerate(results):
        if not r.ok:
            continue
        win = r.metrics.win_rate or 0.0
        ratio = r.metrics.profit_loss_ratio or 1.0
        kelly[i] = max(0.0, kelly_fraction * (win - (1 - win) / ratio))
    return _spread(kelly, valid)


def allocate_positions(
    results: Sequence[StrategyBacktestResult],
    correlation: MatrixLike = None,
    config: Optional[AllocationConfig] = None,
    method: Optional[Union[str, AllocationMethod]] = None,
) -> np.ndarray:
    """Strategy weights by the configured method.

    Raises:
        ValueError: if ``method`` is not a known allocation method
    """
    config = config or AllocationConfig()
    method = AllocationMethod(method) if method is not None else AllocationMethod(config.method)

    if method is AllocationMethod.SHARPE:
        return allocate_by_sharpe(results)
    if method is AllocationMethod.RISK_PARITY:
        return allocate_by_risk_parity(results, correlation)
    if method is AllocationMethod.CORRELATION:
        return allocate_with_correlation_adjustment(results, correlation, config.max_correlation)
    if method is AllocationMethod.KELLY:
        return allocate_by_kelly(results, config.kelly_fraction)

    blend = config.weights
    combined = (
        allocate_by_sharpe(results) * blend.get("sharpe", 0.0)
        + allocate_by_risk_parity(results, correlation) * blend.get("risk_parity", 0.0)
        + allocate_with_correlation_adjustment(results, correlation, config.max_correlation)
        * blend.get("correlation", 0.0)
        + allocate_by_kelly(results, config.kelly_fraction) * blend.get("kelly", 0.0)
    )
    total = combined.sum()
    return combined / total if total > 0 else combined


def effective_total(total: float, count: int, lo: float, hi: float) -> float:
    """The reachable exposure for ``count`` weights bounded by ``[lo, hi]``."""
    return min(max(total, count * lo), count * hi)


def cap_and_normalize(weights: Sequence[float], total: float, lo: float, hi: float) -> np.ndarray:
    """Scale weights to sum to the effective total with every weight inside ``[lo, hi]``.

    Weights pushed past a bound are pinned there and the remainder is
    redistributed proportionally among the rest until nothing moves.
    """
    w = np.clip(np.asarray(weights, dtype=float), lo, hi)
    n = len(w)
    if n == 0:
        return w

    target = effective_total(total, n, lo, hi)
    pinned = np.zeros(n, dtype=bool)
    for _ in range(n + 1):
        free = np.flatnonzero(~pinned)
        if len(free) == 0:
            break
        remaining = target - w[pinned].sum()
        base = w[free]
        base_total = base.sum()
        if base_total > 0:
            scaled = base * remaining / base_total
        else:
            scaled = np.full(len(free), remaining / len(free))
        over = (scaled > hi) | (scaled < lo)
        w[free] = np.clip(scaled, lo, hi)
        if not over.any():
            break
        pinned[free[over]] = True
    return w


def allocate_portfolio_positions(
    instruments: Sequence[PriceSeries],
    all_results: Sequence[Sequence[StrategyBacktestResult]],
    config: Optional[AllocationConfig] = None,
) -> List[PositionAllocation]:
    """Allocate equity exposure across instruments by average strategy Sharpe.

    Args:
        instruments: One entry per instrument (identifier and display fields)
        all_results: Strategy backtest results per instrument, same order
        config: Exposure bounds

    Returns:
        One PositionAllocation per instrument
    """
    config = config or AllocationConfig()
    sharpe = []
    for i in range(len(instruments)):
        valid = [r for r in (all_results[i] if i < len(all_results) else []) if r.ok]
        avg = float(np.mean([r.metrics.sharpe_ratio for r in valid])) if valid else 0.0
        sharpe.append(max(0.0, avg) if math.isfinite(avg) else 0.0)

    raw = np.array(sharpe)
    if raw.sum() > 0:
        raw = raw / raw.sum()
    weights = cap_and_normalize(
        raw * config.total_equity_weight,
        config.total_equity_weight,
        config.min_stock_weight,
        config.max_single_stock_weight,
    )

    positions = [
        PositionAllocation(
            instrument_id=inst.instrument_id,
            weight=float(w),
            sharpe_ratio=s,
            symbol=inst.symbol,
            sector=getattr(inst, "sector", ""),
            fund=getattr(inst, "fund", ""),
        )
        for inst, w, s in zip(instruments, weights, sharpe)
    ]
    logger.info(f"Allocated {weights.sum():.4f} across {len(positions)} instruments")
    return positions


def calculate_portfolio_metrics(positions: Sequence[PositionAllocation]) -> PortfolioMetrics:
    if not positions:
        return PortfolioMetrics()

    weights = np.array([p.weight for p in positions])
    herfindahl = float((weights ** 2).sum())
    if herfindahl > 0.1:
        concentration = Concentration.HIGH
    elif herfindahl > 0.05:
        concentration = Concentration.MEDIUM
    else:
        concentration = Concentration.LOW

    return PortfolioMetrics(
        total_weight=float(weights.sum()),
        weighted_sharpe=float(sum(p.weight * p.sharpe_ratio for p in positions)),
        max_weight=float(weights.max()),
        min_weight=float(weights.min()),
        avg_weight=float(weights.mean()),
        herfindahl=herfindahl,
        concentration=concentration,
        num_positions=len(positions),
    )


def generate_final_positions(
    positions: Sequence[PositionAllocation],
    config: Optional[AllocationConfig] = None,
) -> FinalPositions:
    """Drop positions below the absolute floor and renormalise the rest to the effective total."""
    config = config or AllocationConfig()
    kept = [p for p in positions if p.weight >= config.final_weight_floor]
    dropped = len(positions) - len(kept)
    if dropped:
        logger.info(f"Dropped {dropped} positions below {config.final_weight_floor:.2%}")

    weights = cap_and_normalize(
        [p.weight for p in kept],
        config.total_equity_weight,
        0.0,
        config.max_single_stock_weight,
    )
    final = [
        PositionAllocation(
            instrument_id=p.instrument_id,
            weight=float(w),
            sharpe_ratio=p.sharpe_ratio,
            symbol=p.symbol,
            sector=p.sector,
            fund=p.fund,
            metadata=dict(p.metadata),
        )
        for p, w in zip(kept, weights)
    ]
    return FinalPositions(positions=final, portfolio_metrics=calculate_portfolio_metrics(final))
