"""End-to-end pipeline over a universe of instruments.

For every instrument: truncate history, compute indicators, discretize the
feature vector, train the regime model, decode it, evaluate and backtest the
strategy bank, and run the filter shape-signal backtest against buy-and-hold.
The per-instrument results then feed the cross-instrument allocation.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from regimelab.backtesting import (
    BacktestResult,
    StrategyBacktestResult,
    StrategyComparison,
    backtest_hold_strategy,
    backtest_multiple_strategies,
    backtest_signal_strategy,
    compare_strategies,
    generate_backtest_report,
    generate_position_report,
)
from regimelab.config.settings import Settings
from regimelab.core.contracts import HMMPrediction, PriceSeries
from regimelab.features.discretize import discretize, extract_features
from regimelab.features.indicators import truncate_series
from regimelab.features.shape import signal_series
from regimelab.portfolio.allocation import (
    FinalPositions,
    allocate_portfolio_positions,
    allocate_positions,
    generate_final_positions,
)
from regimelab.regime.training import (
    InstrumentObservations,
    TrainedModel,
    predict_with_hmm,
    train_multiple_hmms,
)
from regimelab.strategies import (
    InstrumentData,
    StrategyResult,
    apply_all_strategies,
    calculate_strategy_correlation,
    init_strategies,
)

logger = logging.getLogger(__name__)


@dataclass
class InstrumentReport:
    """Everything the pipeline derived for one instrument."""

    series: PriceSeries
    trained: TrainedModel
    prediction: HMMPrediction
    signals: List[StrategyResult]
    backtests: List[StrategyBacktestResult]
    correlation: np.ndarray
    strategy_weights: np.ndarray
    shape_backtest: BacktestResult
    hold_backtest: BacktestResult
    comparison: StrategyComparison
    report: str = ""

    def best_strategy(self) -> Optional[StrategyBacktestResult]:
        valid = [r for r in self.backtests if r.ok]
        if not valid:
            return None
        best = valid[0]
        for r in valid[1:]:
            if r.metrics.sharpe_ratio > best.metrics.sharpe_ratio:
                best = r
        return best

    def to_dict(self) -> Dict[str, Any]:
        best = self.best_strategy()
        return {
            "instrument_id": self.series.instrument_id,
            "symbol": self.series.symbol,
            "bars": len(self.series),
            "log_likelihood": self.trained.log_likelihood,
            "fallback_model": self.trained.is_fallback,
            "current_state": self.prediction.current_state,
            "next_state": self.prediction.next_state,
            "signals": [s.to_dict() for s in self.signals],
            "strategy_weights": {
                r.strategy_name: float(w) for r, w in zip(self.backtests, self.strategy_weights)
            },
            "best_strategy": best.strategy_name if best else None,
            "shape_vs_hold": {
                "winner": self.comparison.winner.value,
                "shape_final_capital": self.comparison.strategy_final_capital,
                "hold_final_capital": self.comparison.hold_final_capital,
                "difference_pct": self.comparison.difference_pct,
            },
        }


@dataclass
class PipelineResult:
    instruments: List[InstrumentReport] = field(default_factory=list)
    final: Optional[FinalPositions] = None
    position_report: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instruments": [r.to_dict() for r in self.instruments],
            "positions": [p.to_dict() for p in self.final.positions] if self.final else [],
            "portfolio_metrics": self.final.portfolio_metrics.to_dict() if self.final else {},
        }


class Orchestrator:
    """Runs the regime/strategy/allocation pipeline with one set of settings."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    def observations(self, data: InstrumentData) -> List[int]:
        features = extract_features(data.indicators)
        return discretize(features, self.settings.hmm.num_observations)

    def evaluate(
        self,
        series: PriceSeries,
        data: InstrumentData,
        observations: Sequence[int],
        trained: TrainedModel,
    ) -> InstrumentReport:
        """Decode the regime and run every strategy and backtest for one instrument."""
        cfg = self.settings
        prediction = predict_with_hmm(trained.model, observations, cfg.hmm.scaled)

        strategies = init_strategies(cfg.strategies)
        signals = apply_all_strategies(data, prediction, strategies)
        backtests = backtest_multiple_strategies(
            data,
            strategies,
            prediction,
            risk_free_rate=cfg.backtest.risk_free_rate,
            trading_days=cfg.backtest.trading_days,
        )
        correlation = calculate_strategy_correlation(backtests)
        weights = allocate_positions(backtests, correlation, cfg.allocation)

        points = [
            {"date": s.date, "price": s.price, "signal": s.signal.value}
            for s in signal_series(series, cfg.filter)
        ]
        shape_bt = backtest_signal_strategy(
            points, cfg.backtest.initial_capital, cfg.backtest.risk_free_rate, cfg.backtest.trading_days
        )
        hold_bt = backtest_hold_strategy(
            points, cfg.backtest.initial_capital, cfg.backtest.risk_free_rate, cfg.backtest.trading_days
        )
        comparison = compare_strategies(shape_bt, hold_bt)
        logger.info(f"{series.symbol}: regime {prediction.current_state} -> {prediction.next_state}, "
                    f"{comparison.summary}")

        return InstrumentReport(
            series=series,
            trained=trained,
            prediction=prediction,
            signals=signals,
            backtests=backtests,
            correlation=correlation,
            strategy_weights=weights,
            shape_backtest=shape_bt,
            hold_backtest=hold_bt,
            comparison=comparison,
            report=generate_backtest_report(backtests, title=f"Strategy Backtest Report: {series.symbol}"),
        )

    def run(self, universe: Sequence[PriceSeries], max_workers: Optional[int] = None) -> PipelineResult:
        """Run the full pipeline.

        Args:
            universe: Price history per instrument
            max_workers: Thread pool size for per-instrument work; sequential when unset

        Returns:
            PipelineResult with per-instrument reports and the final positions
        """
        cfg = self.settings
        max_workers = max_workers or cfg.hmm.max_workers

        prepared = {}
        for raw in universe:
            series = truncate_series(raw, cfg.backtest.history_length)
            if len(series) < 2:
                logger.warning(f"{series.symbol}: only {len(series)} bars, skipping")
                continue
            data = InstrumentData.from_series(series)
            prepared[series.instrument_id] = (series, data, self.observations(data))

        trained = train_multiple_hmms(
            [
                InstrumentObservations(s.instrument_id, s.symbol, obs, s.sector)
                for s, _, obs in prepared.values()
            ],
            cfg.hmm,
            max_workers,
        )

        jobs = [(*prepared[t.instrument_id], t) for t in trained]
        if max_workers and max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                reports = list(pool.map(lambda job: self.evaluate(*job), jobs))
        else:
            reports = [self.evaluate(*job) for job in jobs]

        positions = allocate_portfolio_positions(
            [r.series for r in reports],
            [r.backtests for r in reports],
            cfg.allocation,
        )
        final = generate_final_positions(positions, cfg.allocation)
        logger.info(f"Pipeline complete: {len(reports)} instruments, "
                    f"{len(final.positions)} positions, exposure {final.effective_weight:.2%}")
        return PipelineResult(
            instruments=reports,
            final=final,
            position_report=generate_position_report(final.positions, final.portfolio_metrics),
        )
