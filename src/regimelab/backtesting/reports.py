"""Markdown reports for strategy backtests and position tables."""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, TYPE_CHECKING

from regimelab.backtesting.engine import StrategyBacktestResult
from regimelab.backtesting.metrics import round_half_away
from regimelab.core.contracts import PositionAllocation

if TYPE_CHECKING:
    from regimelab.portfolio.allocation import PortfolioMetrics


def _fixed(value: float, digits: int = 2) -> str:
    """Fixed-point text with half-away rounding; infinities print as ``Infinity``."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        value = 0.0
    return f"{round_half_away(value, digits):.{digits}f}"


def _pct(value: float, digits: int = 2) -> str:
    return f"{_fixed(value * 100, digits)}%"


def _drawdown(value: float) -> str:
    return "0.00%" if value == 0 else _pct(-value)


def generate_backtest_report(
    results: Sequence[StrategyBacktestResult],
    title: str = "Strategy Backtest Report",
) -> str:
    """Performance table of successful strategy backtests plus the best one by Sharpe."""
    valid = [r for r in results if r.ok]
    lines: List[str] = [
        f"# {title}",
        "",
        "## Strategy Performance",
        "",
        "| Strategy | Annualized Return | Sharpe Ratio | Max Drawdown | Win Rate | Calmar Ratio |",
        "|----------|-------------------|--------------|--------------|----------|--------------|",
    ]
    for r in valid:
        m = r.metrics
        lines.append(
            f"| {r.strategy_name} | {_pct(m.annualized_return)} | {_fixed(m.sharpe_ratio)} | "
            f"{_drawdown(m.max_drawdown)} | {_pct(m.win_rate)} | {_fixed(m.calmar_ratio)} |"
        )

    if valid:
        best = valid[0]
        for r in valid[1:]:
            if r.metrics.sharpe_ratio > best.metrics.sharpe_ratio:
                best = r
        lines += [
            "",
            "## Best Strategy (by Sharpe Ratio)",
            "",
            f"**{best.strategy_name}**",
            "",
            f"- Sharpe Ratio: {_fixed(best.metrics.sharpe_ratio, 4)}",
            f"- Annualized Return: {_pct(best.metrics.annualized_return)}",
            f"- Max Drawdown: {_drawdown(best.metrics.max_drawdown)}",
        ]

    failed = len(results) - len(valid)
    if failed:
        lines += ["", f"_{failed} strategies failed and are not shown._"]
    return "\n".join(lines) + "\n"


def generate_position_report(
    positions: Sequence[PositionAllocation],
    portfolio_metrics: Optional["PortfolioMetrics"] = None,
) -> str:
    """Portfolio overview and the position table sorted by weight, largest first."""
    if portfolio_metrics is None:
        from regimelab.portfolio.allocation import calculate_portfolio_metrics
        portfolio_metrics = calculate_portfolio_metrics(positions)

    m = portfolio_metrics
    lines: List[str] = [
        "# Portfolio Position Report",
        "",
        "## Portfolio Overview",
        "",
        f"- Total Weight: {_pct(m.total_weight)}",
        f"- Weighted Sharpe Ratio: {_fixed(m.weighted_sharpe, 4)}",
        f"- Max Weight: {_pct(m.max_weight)}",
        f"- Min Weight: {_pct(m.min_weight)}",
        f"- Average Weight: {_pct(m.avg_weight)}",
        f"- Concentration: {m.concentration.value}",
        "",
        "## Positions",
        "",
        "| Sector | Instrument | Fund | Weight | Sharpe Ratio |",
        "|--------|------------|------|--------|--------------|",
    ]
    for p in sorted(positions, key=lambda p: p.weight, reverse=True):
        name = f"{p.symbol} ({p.instrument_id})" if p.symbol else str(p.instrument_id)
        lines.append(
            f"| {p.sector or '-'} | {name} | {p.fund or '-'} | "
            f"{_pct(p.weight)} | {_fixed(p.sharpe_ratio, 4)} |"
        )
    return "\n".join(lines) + "\n"
