"""Backtesting Engine

Simulations of capital evolution under generated signals:
- Signal-driven whole-position trading with next-bar execution
- Buy-and-hold baseline
- Filter turning-point crossover trading
- Fractional-position replay of a strategy over a growing data window

Every simulation reports its ledger or equity curve together with the
performance metrics of the resulting return series.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from regimelab.backtesting.metrics import (
    PerformanceMetrics,
    TRADING_DAYS,
    RISK_FREE_RATE,
    calculate_all_metrics,
    round_half_away,
)
from regimelab.core.contracts import HMMPrediction
from regimelab.core.types import TradeType
from regimelab.features.indicators import compute_indicators
from regimelab.strategies.base import InstrumentData, Strategy

logger = logging.getLogger(__name__)

INITIAL_CAPITAL = 1_000_000.0


@dataclass
class LedgerRow:
    """One bar of a share-based simulation."""
    date: Any
    price: float
    signal: str
    action: str   # "buy", "sell" or "none"
    cash: float
    position: int  # shares held after this bar's execution
    asset: float


@dataclass
class Trade:
    date: Any
    trade_type: TradeType
    price: float
    quantity: float
    cash_after: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["trade_type"] = self.trade_type.value
        return data


@dataclass
class BacktestResult:
    rows: List[LedgerRow] = field(default_factory=list)
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    initial_capital: float = INITIAL_CAPITAL
    final_capital: float = INITIAL_CAPITAL
    total_return: float = 0.0  # percent, 2 decimals

    @property
    def num_trades(self) -> int:
        return len(self.trades)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(r) for r in self.rows])


@dataclass
class StrategyBacktestResult:
    """Fractional-position replay of one strategy over one instrument."""
    strategy_name: str
    equity_curve: List[float] = field(default_factory=list)
    portfolio_returns: List[float] = field(default_factory=list)
    signals: List[float] = field(default_factory=list)  # position per bar
    trades: List[Trade] = field(default_factory=list)
    metrics: Optional[PerformanceMetrics] = None
    final_capital: float = 1.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.metrics is not None


class Winner(Enum):
    STRATEGY = "strategy"
    HOLD = "hold"
    TIE = "tie"


@dataclass
class StrategyComparison:
    winner: Winner
    strategy_final_capital: float
    hold_final_capital: float
    difference: float
    difference_pct: float

    @property
    def summary(self) -> str:
        if self.winner is Winner.TIE:
            return f"Strategy and buy-and-hold tie at {self.hold_final_capital:,.2f}"
        label = "Strategy" if self.winner is Winner.STRATEGY else "Buy-and-hold"
        return f"{label} wins by {abs(self.difference):,.2f} ({self.difference_pct:.2f}%)"


@dataclass
class MergedRow:
    date: Any
    price: float
    signal: str
    signal_asset: float
    hold_asset: float
    signal_action: str
    hold_action: str


def _signal_key(value: Any) -> str:
    """Normalise enum or string signals to lower-case names."""
    value = getattr(value, "value", value)
    return str(value).lower() if value is not None else ""


def _sorted_points(data: Sequence[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    return sorted(data, key=lambda d: pd.Timestamp(d["date"]))


def _returns_from_curve(curve: Sequence[float]) -> List[float]:
    return [
        (cur - prev) / prev if prev else 0.0
        for prev, cur in zip(curve, curve[1:])
    ]


def _finish(
    rows: List[LedgerRow],
    trades: List[Trade],
    initial_capital: float,
    final_capital: float,
    risk_free_rate: float,
    trading_days: int,
) -> BacktestResult:
    curve = [r.asset for r in rows]
    metrics = calculate_all_metrics(_returns_from_curve(curve), None, risk_free_rate, trading_days)
    return BacktestResult(
        rows=rows,
        trades=trades,
        equity_curve=curve,
        metrics=metrics,
        initial_capital=initial_capital,
        final_capital=round_half_away(final_capital, 2),
        total_return=round_half_away((final_capital - initial_capital) / initial_capital * 100, 2),
    )


def backtest_signal_strategy(
    data: Sequence[Mapping[str, Any]],
    initial_capital: float = INITIAL_CAPITAL,
    risk_free_rate: float = RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS,
) -> BacktestResult:
    """Trade whole positions on ``buy``/``sell`` signals, executing at the next bar's price.

    Args:
        data: Points with ``date``, ``price`` and ``signal``
        initial_capital: Starting cash

    Returns:
        BacktestResult with one ledger row per bar
    """
    if not data:
        return BacktestResult(initial_capital=initial_capital, final_capital=initial_capital)

    points = _sorted_points(data)
    rows: List[LedgerRow] = []
    trades: List[Trade] = []
    cash = float(initial_capital)
    shares = 0
    holding = False
    pending: Optional[str] = None

    for i, point in enumerate(points):
        price = float(point["price"])
        signal = _signal_key(point.get("signal"))
        action = "none"

        if pending == "buy" and not holding:
            shares = math.floor(cash / price)
            cash -= shares * price
            holding = True
            action = "buy"
            trades.append(Trade(point["date"], TradeType.BUY, price, shares, cash))
        elif pending == "sell" and holding:
            cash += shares * price
            trades.append(Trade(point["date"], TradeType.SELL, price, shares, cash))
            shares = 0
            holding = False
            action = "sell"
        pending = None

        asset = cash + shares * price if holding else cash

        # the last bar has no next bar to execute on
        if i < len(points) - 1:
            if signal == "buy" and not holding:
                pending = "buy"
            elif signal == "sell" and holding:
                pending = "sell"

        rows.append(LedgerRow(point["date"], price, signal, action, cash, shares, asset))

    last_price = float(points[-1]["price"])
    final_capital = cash + shares * last_price if holding else cash
    logger.info(f"Signal backtest: {len(trades)} trades, final capital {final_capital:,.2f}")
    return _finish(rows, trades, initial_capital, final_capital, risk_free_rate, trading_days)


def backtest_hold_strategy(
    data: Sequence[Mapping[str, Any]],
    initial_capital: float = INITIAL_CAPITAL,
    risk_free_rate: float = RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS,
) -> BacktestResult:
    """Buy with all capital on the first bar and liquidate on the last."""
    if not data:
        return BacktestResult(initial_capital=initial_capital, final_capital=initial_capital)

    points = _sorted_points(data)
    rows: List[LedgerRow] = []
    trades: List[Trade] = []
    cash = float(initial_capital)
    shares = 0
    holding = False

    for i, point in enumerate(points):
        price = float(point["price"])
        action = "none"

        if i == 0:
            shares = math.floor(cash / price)
            cash -= shares * price
            holding = True
            action = "buy"
            trades.append(Trade(point["date"], TradeType.BUY, price, shares, cash))

        asset = cash + shares * price if holding else cash

        if i == len(points) - 1 and holding:
            cash += shares * price
            trades.append(Trade(point["date"], TradeType.SELL, price, shares, cash))
            asset = cash
            shares = 0
            holding = False
            action = "sell"

        rows.append(LedgerRow(point["date"], price, _signal_key(point.get("signal")) or "-",
                              action, cash, shares, asset))

    final_capital = rows[-1].asset
    return _finish(rows, trades, initial_capital, final_capital, risk_free_rate, trading_days)


def merge_backtest_results(signal: BacktestResult, hold: BacktestResult) -> List[MergedRow]:
    """Side-by-side ledger of the signal-driven and buy-and-hold runs."""
    merged = []
    for i in range(max(len(signal.rows), len(hold.rows))):
        s = signal.rows[i] if i < len(signal.rows) else None
        h = hold.rows[i] if i < len(hold.rows) else None
        ref = s or h
        merged.append(MergedRow(
            date=ref.date,
            price=ref.price,
            signal=s.signal if s else "-",
            signal_asset=s.asset if s else 0.0,
            hold_asset=h.asset if h else 0.0,
            signal_action=s.action if s else "-",
            hold_action=h.action if h else "-",
        ))
    return merged


def backtest_filter_crossover(
    prices: Sequence[float],
    filtered: Sequence[float],
    initial_capital: float = INITIAL_CAPITAL,
    dates: Optional[Sequence[Any]] = None,
    risk_free_rate: float = RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS,
) -> BacktestResult:
    """Trade turning points of a filtered series at the same bar's price.

    A local trough of the filter (``a > b < c``) buys the whole position, a
    local peak (``a < b > c``) sells it. Repeated signals in the same
    direction are ignored and any open position is liquidated on the last bar.
    """
    n = min(len(prices), len(filtered))
    dates = list(dates) if dates is not None else list(range(n))
    rows: List[LedgerRow] = []
    trades: List[Trade] = []
    cash = float(initial_capital)
    shares = 0
    holding = False

    for i in range(n):
        price = float(prices[i])
        action = "none"
        signal = ""
        if i >= 2:
            a, b, c = filtered[i - 2], filtered[i - 1], filtered[i]
            if a > b and c > b:
                signal = "buy"
            elif a < b and c < b:
                signal = "sell"

        if signal == "buy" and not holding:
            shares = math.floor(cash / price)
            cash -= shares * price
            holding = True
            action = "buy"
            trades.append(Trade(dates[i], TradeType.BUY, price, shares, cash))
        elif signal == "sell" and holding:
            cash += shares * price
            trades.append(Trade(dates[i], TradeType.SELL, price, shares, cash))
            shares = 0
            holding = False
            action = "sell"

        if i == n - 1 and holding:
            cash += shares * price
            trades.append(Trade(dates[i], TradeType.FORCED_SELL, price, shares, cash))
            shares = 0
            holding = False
            action = "forced_sell"

        rows.append(LedgerRow(dates[i], price, signal, action, cash, shares, cash + shares * price))

    return _finish(rows, trades, initial_capital, cash, risk_free_rate, trading_days)


def compare_strategies(strategy: BacktestResult, hold: BacktestResult) -> StrategyComparison:
    s, h = strategy.final_capital, hold.final_capital
    difference = s - h
    if s > h:
        winner = Winner.STRATEGY
    elif s < h:
        winner = Winner.HOLD
    else:
        winner = Winner.TIE
    return StrategyComparison(
        winner=winner,
        strategy_final_capital=s,
        hold_final_capital=h,
        difference=round_half_away(difference, 2),
        difference_pct=round_half_away(difference / h * 100, 2) if h else 0.0,
    )


def backtest_strategy(
    data: InstrumentData,
    strategy: Strategy,
    prediction: HMMPrediction,
    initial_capital: float = 1.0,
    risk_free_rate: float = RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS,
) -> StrategyBacktestResult:
    """Replay a strategy bar by bar as a fractional position in one instrument.

    At bar ``t`` the strategy sees prices and indicators up to ``t`` only.
    The position it returns is held over the next bar, so the return of bar
    ``t`` is earned by the position decided at ``t - 1``.
    """
    prices = list(data.prices)
    indicators = data.indicators if data.indicators.prices else compute_indicators(prices)
    returns = indicators.returns
    strategy.reset()

    signals: List[float] = []
    portfolio_returns: List[float] = []
    curve = [float(initial_capital)]
    trades: List[Trade] = []
    position = 0.5

    for i in range(len(prices)):
        if i > 0:
            daily = returns[i - 1] if i - 1 < len(returns) else 0.0
            portfolio_return = position * daily
            portfolio_returns.append(portfolio_return)
            curve.append(curve[-1] * (1 + portfolio_return))

        window = InstrumentData(prices[:i + 1], indicators.prefix(i + 1), data.symbol)
        signal = strategy.generate_signal(window, prediction)
        if i > 0 and signal.position != position:
            trades.append(Trade(i, TradeType.REBALANCE, prices[i], signal.position - position, curve[-1]))
        position = signal.position
        signals.append(position)

    metrics = calculate_all_metrics(portfolio_returns, None, risk_free_rate, trading_days)
    return StrategyBacktestResult(
        strategy_name=strategy.name,
        equity_curve=curve,
        portfolio_returns=portfolio_returns,
        signals=signals,
        trades=trades,
        metrics=metrics,
        final_capital=curve[-1],
    )


def backtest_multiple_strategies(
    data: InstrumentData,
    strategies: Sequence[Strategy],
    prediction: HMMPrediction,
    initial_capital: float = 1.0,
    risk_free_rate: float = RISK_FREE_RATE,
    trading_days: int = TRADING_DAYS,
) -> List[StrategyBacktestResult]:
    """Backtest every strategy; failures are recorded on the result and never abort the batch."""
    results = []
    for strategy in strategies:
        try:
            results.append(backtest_strategy(
                data, strategy, prediction, initial_capital, risk_free_rate, trading_days
            ))
        except Exception as e:
            logger.error(f"Backtest of strategy {strategy.name} failed: {e}")
            results.append(StrategyBacktestResult(strategy_name=strategy.name, error=str(e)))
    return results
