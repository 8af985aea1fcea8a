"""Tests for strategy weighting and portfolio allocation"""

import math

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from regimelab.backtesting.engine import StrategyBacktestResult
from regimelab.backtesting.metrics import PerformanceMetrics
from regimelab.config.settings import AllocationConfig
from regimelab.core.contracts import PositionAllocation
from regimelab.core.types import AllocationMethod, Concentration
from regimelab.portfolio.allocation import (
    allocate_by_kelly,
    allocate_by_risk_parity,
    allocate_by_sharpe,
    allocate_portfolio_positions,
    allocate_positions,
    allocate_with_correlation_adjustment,
    calculate_portfolio_metrics,
    cap_and_normalize,
    effective_total,
    generate_final_positions,
)


def result(name="S", sharpe=1.0, drawdown=0.1, win=0.5, plr=1.0):
    return StrategyBacktestResult(
        strategy_name=name,
        metrics=PerformanceMetrics(
            sharpe_ratio=sharpe, max_drawdown=drawdown, win_rate=win, profit_loss_ratio=plr
        ),
    )


FAILED = StrategyBacktestResult(strategy_name="Failed", error="boom")


class TestStrategyWeights:

    @pytest.mark.unit
    def test_sharpe(self):
        weights = allocate_by_sharpe([result(sharpe=1), result(sharpe=3), result(sharpe=-1), FAILED])
        assert weights == pytest.approx([0.25, 0.75, 0.0, 0.0])

    @pytest.mark.unit
    def test_sharpe_equal_fallback_over_valid(self):
        weights = allocate_by_sharpe([result(sharpe=-1), result(sharpe=-2), FAILED])
        assert weights == pytest.approx([0.5, 0.5, 0.0])

    @pytest.mark.unit
    def test_everything_failed(self):
        assert allocate_by_sharpe([FAILED, FAILED]).tolist() == [0.0, 0.0]

    @pytest.mark.unit
    def test_risk_parity_inverse_drawdown(self):
        weights = allocate_by_risk_parity([result(drawdown=0.1), result(drawdown=0.2), result(drawdown=0.0)])
        assert weights == pytest.approx(np.array([10, 5, 100]) / 115)

    @pytest.mark.unit
    def test_correlation_penalty(self):
        results = [result(), result(), result()]
        corr = [[1.0, 0.9, 0.1], [0.9, 1.0, 0.1], [0.1, 0.1, 1.0]]
        weights = allocate_with_correlation_adjustment(results, corr, max_correlation=0.8)
        assert weights == pytest.approx([0.1 / 1.2, 0.1 / 1.2, 1 / 1.2])
        assert allocate_with_correlation_adjustment(results, None) == pytest.approx([1 / 3] * 3)

    @pytest.mark.unit
    def test_kelly(self):
        weights = allocate_by_kelly([result(win=0.6, plr=2.0), result(win=0.3, plr=1.0)])
        assert weights == pytest.approx([1.0, 0.0])

        # zero ratio counts as 1, infinite ratio leaves only the win rate
        weights = allocate_by_kelly([result(win=0.6, plr=0.0), result(win=0.6, plr=math.inf)])
        assert weights == pytest.approx(np.array([0.1, 0.3]) / 0.4)

    @pytest.mark.unit
    def test_combined_default(self):
        results = [result(sharpe=2, drawdown=0.1, win=0.6, plr=2), result(sharpe=1, drawdown=0.3), FAILED]
        weights = allocate_positions(results, np.eye(3))
        assert weights.sum() == pytest.approx(1.0)
        assert weights[2] == 0.0
        assert weights[0] > weights[1]

    @pytest.mark.unit
    def test_method_dispatch(self):
        results = [result(sharpe=1), result(sharpe=3)]
        by_sharpe = allocate_positions(results, config=AllocationConfig(method=AllocationMethod.SHARPE))
        assert by_sharpe == pytest.approx([0.25, 0.75])
        assert allocate_positions(results, method="kelly") == pytest.approx(allocate_by_kelly(results))
        with pytest.raises(ValueError):
            allocate_positions(results, method="magic")
        with pytest.raises(ValueError):
            AllocationConfig(method="magic")


class TestCapAndNormalize:

    @pytest.mark.unit
    def test_effective_total(self):
        assert effective_total(0.8, 10, 0.01, 0.15) == 0.8
        assert effective_total(0.8, 3, 0.01, 0.15) == pytest.approx(0.45)
        assert effective_total(0.05, 10, 0.01, 0.15) == pytest.approx(0.1)

    @pytest.mark.unit
    def test_redistributes_after_capping(self):
        weights = cap_and_normalize([0.42] + [0.042] * 9, 0.8, 0.01, 0.15)
        assert weights[0] == pytest.approx(0.15)
        assert weights[1:] == pytest.approx([0.65 / 9] * 9)
        assert weights.sum() == pytest.approx(0.8)

    @pytest.mark.unit
    @settings(max_examples=200, deadline=None)
    @given(
        raw=st.lists(st.floats(min_value=0, max_value=10), min_size=1, max_size=30),
        total=st.floats(min_value=0.05, max_value=1.0),
        hi=st.floats(min_value=0.02, max_value=1.0),
        lo_fraction=st.floats(min_value=0, max_value=1.0),
    )
    def test_sum_and_bounds(self, raw, total, hi, lo_fraction):
        lo = hi * lo_fraction
        weights = cap_and_normalize(raw, total, lo, hi)

        assert weights.sum() == pytest.approx(effective_total(total, len(raw), lo, hi), abs=1e-6)
        assert (weights <= hi + 1e-9).all()
        assert (weights >= lo - 1e-9).all()


class TestPortfolioAllocation:

    @pytest.mark.unit
    def test_sums_to_total_under_cap(self, series_factory):
        instruments = [series_factory([100, 101], instrument_id=i, symbol=f"S{i}") for i in range(10)]
        sharpes = [10] + [1] * 9
        all_results = [[result(sharpe=s), result(sharpe=s)] for s in sharpes]

        positions = allocate_portfolio_positions(instruments, all_results, AllocationConfig())

        weights = [p.weight for p in positions]
        assert sum(weights) == pytest.approx(0.8, abs=1e-6)
        assert max(weights) <= 0.15 + 1e-12
        assert positions[0].weight == pytest.approx(0.15)
        assert positions[0].sharpe_ratio == 10
        assert positions[0].sector == "Tech"

    @pytest.mark.unit
    def test_failed_and_negative_instruments_get_the_floor(self, series_factory):
        instruments = [series_factory([100, 101], instrument_id=i, symbol=f"S{i}") for i in range(12)]
        all_results = [[result(sharpe=1.0)] for _ in range(10)] + [[FAILED], [result(sharpe=-2.0)]]

        positions = allocate_portfolio_positions(instruments, all_results)

        assert positions[10].sharpe_ratio == 0.0
        assert positions[10].weight == pytest.approx(0.01)
        assert positions[11].weight == pytest.approx(0.01)
        assert sum(p.weight for p in positions) == pytest.approx(0.8)

    @pytest.mark.unit
    def test_few_instruments_hit_the_cap(self, series_factory):
        instruments = [series_factory([100, 101], instrument_id=i, symbol=f"S{i}") for i in range(3)]
        positions = allocate_portfolio_positions(instruments, [[result(sharpe=s)] for s in (1, 2, 3)])
        assert [p.weight for p in positions] == pytest.approx([0.15] * 3)

    @pytest.mark.unit
    @settings(max_examples=50, deadline=None)
    @given(sharpes=st.lists(st.floats(min_value=-3, max_value=5), min_size=1, max_size=25))
    def test_renormalization_property(self, sharpes):
        from regimelab.core.contracts import PriceBar, PriceSeries
        from datetime import datetime

        instruments = [
            PriceSeries(i, f"S{i}", [PriceBar(datetime(2024, 1, 1), 1, 1, 1, 1)]) for i in range(len(sharpes))
        ]
        config = AllocationConfig()
        positions = allocate_portfolio_positions(instruments, [[result(sharpe=s)] for s in sharpes], config)
        weights = np.array([p.weight for p in positions])

        expected = effective_total(0.8, len(sharpes), config.min_stock_weight, config.max_single_stock_weight)
        assert weights.sum() == pytest.approx(expected, abs=1e-6)
        assert (weights <= config.max_single_stock_weight + 1e-9).all()


class TestPortfolioMetrics:

    @staticmethod
    def positions(weights, sharpe=1.0):
        return [PositionAllocation(i, w, sharpe, symbol=f"S{i}") for i, w in enumerate(weights)]

    @pytest.mark.unit
    def test_metrics(self):
        positions = [PositionAllocation(1, 0.5, 1.0), PositionAllocation(2, 0.3, 2.0)]
        m = calculate_portfolio_metrics(positions)
        assert m.total_weight == pytest.approx(0.8)
        assert m.weighted_sharpe == pytest.approx(1.1)
        assert m.max_weight == 0.5
        assert m.min_weight == 0.3
        assert m.herfindahl == pytest.approx(0.34)
        assert m.concentration is Concentration.HIGH
        assert m.to_dict()["concentration"] == "high"

    @pytest.mark.unit
    def test_concentration_levels(self):
        assert calculate_portfolio_metrics(self.positions([0.08] * 10)).concentration is Concentration.MEDIUM
        assert calculate_portfolio_metrics(self.positions([0.04] * 20)).concentration is Concentration.LOW
        assert calculate_portfolio_metrics([]).num_positions == 0


class TestFinalPositions:

    @pytest.mark.unit
    def test_drops_tiny_positions_and_renormalizes(self):
        positions = TestPortfolioMetrics.positions([0.079] * 10 + [0.001])
        final = generate_final_positions(positions, AllocationConfig())

        assert len(final.positions) == 10
        assert [p.weight for p in final.positions] == pytest.approx([0.08] * 10)
        assert final.effective_weight == pytest.approx(0.8)
        assert final.portfolio_metrics.num_positions == 10

    @pytest.mark.unit
    def test_effective_total_respects_cap(self):
        positions = TestPortfolioMetrics.positions([0.15, 0.15, 0.004, 0.1])
        final = generate_final_positions(positions)
        assert [p.weight for p in final.positions] == pytest.approx([0.15] * 3)
