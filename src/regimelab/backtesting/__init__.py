from regimelab.backtesting.engine import (
    BacktestResult,
    LedgerRow,
    StrategyBacktestResult,
    StrategyComparison,
    Trade,
    Winner,
    backtest_filter_crossover,
    backtest_hold_strategy,
    backtest_multiple_strategies,
    backtest_signal_strategy,
    backtest_strategy,
    compare_strategies,
    merge_backtest_results,
)
from regimelab.backtesting.metrics import PerformanceMetrics, calculate_all_metrics, monthly_returns
from regimelab.backtesting.reports import generate_backtest_report, generate_position_report

__all__ = [
    "BacktestResult",
    "LedgerRow",
    "PerformanceMetrics",
    "StrategyBacktestResult",
    "StrategyComparison",
    "Trade",
    "Winner",
    "backtest_filter_crossover",
    "backtest_hold_strategy",
    "backtest_multiple_strategies",
    "backtest_signal_strategy",
    "backtest_strategy",
    "calculate_all_metrics",
    "compare_strategies",
    "generate_backtest_report",
    "generate_position_report",
    "merge_backtest_results",
    "monthly_returns",
]
