"""Tests for the strategy bank"""

import logging

import numpy as np
import pytest

from regimelab.config.settings import StrategyParams
from regimelab.core.types import SignalAction
from regimelab.strategies import (
    STRATEGY_REGISTRY,
    InstrumentData,
    LongShortStrategy,
    MarketTimingStrategy,
    MeanReversionStrategy,
    MomentumStrategy,
    PortfolioOptimizationStrategy,
    ProbabilityThresholdStrategy,
    RiskParityStrategy,
    StateSwitchStrategy,
    Strategy,
    TrendFollowingStrategy,
    VolatilityStrategy,
    apply_all_strategies,
    calculate_strategy_correlation,
    init_strategies,
)


def data_from(prices):
    return InstrumentData.from_prices([float(p) for p in prices], symbol="TEST")


RISING = data_from(100 * 1.02 ** np.arange(40))
FALLING = data_from(100 * 0.98 ** np.arange(40))
FLAT = data_from([100.0] * 40)
CHOPPY = data_from([100.0, 105.0] * 20)


def check(signal, action, position, confidence=None):
    assert signal.action is action
    assert signal.position == pytest.approx(position)
    if confidence is not None:
        assert signal.confidence == pytest.approx(confidence)


class TestRegimeStrategies:

    @pytest.mark.unit
    def test_state_switch(self, prediction_factory):
        s = StateSwitchStrategy()
        check(s.generate_signal(FLAT, prediction_factory(current=0, prev=2)), SignalAction.BUY, 1.0, 0.8)
        check(s.generate_signal(FLAT, prediction_factory(current=2, prev=0)), SignalAction.SELL, 0.0, 0.8)
        check(s.generate_signal(FLAT, prediction_factory(current=1, prev=1)), SignalAction.REDUCE, 0.3, 0.6)
        check(s.generate_signal(FLAT, prediction_factory(current=0, prev=0)), SignalAction.HOLD, 0.5, 0.5)

    @pytest.mark.unit
    def test_probability_threshold(self, bullish_prediction, bearish_prediction, prediction_factory):
        s = ProbabilityThresholdStrategy()
        check(s.generate_signal(FLAT, bullish_prediction), SignalAction.BUY, 0.9, 0.8)
        check(s.generate_signal(FLAT, bearish_prediction), SignalAction.SELL, 0.0, 0.8)
        check(s.generate_signal(FLAT, prediction_factory(probs=[0.5, 0.3, 0.2])), SignalAction.HOLD, 0.4, 0.5)
        check(s.generate_signal(FLAT, prediction_factory(probs=[])), SignalAction.HOLD, 0.4, 0.0)

    @pytest.mark.unit
    def test_market_timing(self, prediction_factory):
        s = MarketTimingStrategy()
        bull = [0.8, 0.1, 0.1]
        bear = [0.1, 0.1, 0.8]
        check(s.generate_signal(FLAT, prediction_factory(0, 0, 0, bull)), SignalAction.BUY, 1.0, 0.8)
        check(s.generate_signal(FLAT, prediction_factory(2, 2, 2, bear)), SignalAction.SELL, 0.0, 0.8)
        check(s.generate_signal(FLAT, prediction_factory(2, 2, 0, bear)), SignalAction.BUY, 0.6, 0.6)
        check(s.generate_signal(FLAT, prediction_factory(0, 0, 2, bull)), SignalAction.REDUCE, 0.3, 0.6)
        check(s.generate_signal(FLAT, prediction_factory(1, 1, 1)), SignalAction.HOLD, 0.5, 0.4)

    @pytest.mark.unit
    def test_portfolio_optimization_tracks_state_trend(self, prediction_factory):
        s = PortfolioOptimizationStrategy()
        for state in (2, 1):
            check(s.generate_signal(FALLING, prediction_factory(current=state)), SignalAction.HOLD, 0.5)
        # regime improving while RSI is oversold
        check(s.generate_signal(FALLING, prediction_factory(current=0)), SignalAction.BUY, 0.8, 0.7)
        assert s.state_trend() == "up"

        s.reset()
        assert len(s.history) == 0
        for state in (0, 1, 2):
            signal = s.generate_signal(RISING, prediction_factory(current=state))
        check(signal, SignalAction.SELL, 0.2, 0.7)

    @pytest.mark.unit
    def test_portfolio_optimization_history_is_bounded(self, prediction_factory):
        s = PortfolioOptimizationStrategy({"history_length": 3})
        for state in (0, 1, 2, 2, 1):
            s.generate_signal(FLAT, prediction_factory(current=state))
        assert list(s.history) == [2, 2, 1]


class TestPriceStrategies:

    @pytest.mark.unit
    def test_long_short(self, bullish_prediction, bearish_prediction):
        s = LongShortStrategy()
        check(s.generate_signal(RISING, bullish_prediction), SignalAction.BUY, 1.0, 0.7)
        check(s.generate_signal(FALLING, bearish_prediction), SignalAction.SELL, 0.0, 0.7)
        check(s.generate_signal(RISING, bearish_prediction), SignalAction.HOLD, 0.2, 0.5)
        check(s.generate_signal(data_from(range(100, 110)), bullish_prediction), SignalAction.HOLD, 0.5, 0.3)

    @pytest.mark.unit
    def test_momentum(self, bullish_prediction):
        s = MomentumStrategy()
        check(s.generate_signal(RISING, bullish_prediction), SignalAction.BUY, 0.9, 0.7)
        check(s.generate_signal(FALLING, bullish_prediction), SignalAction.SELL, 0.1, 0.7)
        check(s.generate_signal(FLAT, bullish_prediction), SignalAction.HOLD, 0.5, 0.5)

    @pytest.mark.unit
    def test_trend_following(self, bullish_prediction, bearish_prediction):
        s = TrendFollowingStrategy()
        check(s.generate_signal(RISING, bullish_prediction), SignalAction.BUY, 1.0, 0.8)
        check(s.generate_signal(FALLING, bearish_prediction), SignalAction.SELL, 0.0, 0.8)
        check(s.generate_signal(RISING, bearish_prediction), SignalAction.HOLD, 0.5, 0.5)
        check(s.generate_signal(data_from(range(10)), bullish_prediction), SignalAction.HOLD, 0.5, 0.3)

    @pytest.mark.unit
    def test_mean_reversion(self, bullish_prediction):
        s = MeanReversionStrategy()
        check(s.generate_signal(data_from([100.0] * 24 + [90.0]), bullish_prediction), SignalAction.BUY, 0.8, 0.6)
        check(s.generate_signal(data_from([100.0] * 24 + [110.0]), bullish_prediction), SignalAction.SELL, 0.2, 0.6)
        check(s.generate_signal(FLAT, bullish_prediction), SignalAction.HOLD, 0.5, 0.5)

    @pytest.mark.unit
    def test_volatility(self, bullish_prediction, bearish_prediction):
        s = VolatilityStrategy()
        check(s.generate_signal(FLAT, bullish_prediction), SignalAction.BUY, 0.8, 0.7)
        check(s.generate_signal(FLAT, bearish_prediction), SignalAction.HOLD, 0.5, 0.5)
        check(s.generate_signal(CHOPPY, bullish_prediction), SignalAction.REDUCE, 0.2, 0.6)

    @pytest.mark.unit
    def test_risk_parity(self, bullish_prediction, bearish_prediction):
        s = RiskParityStrategy()
        check(s.generate_signal(CHOPPY, bullish_prediction), SignalAction.BUY, 1.0, 0.6)
        check(s.generate_signal(CHOPPY, bearish_prediction), SignalAction.HOLD, 0.5, 0.6)
        check(s.generate_signal(data_from([100, 101]), bullish_prediction), SignalAction.HOLD, 0.5, 0.5)


class FailingStrategy(Strategy):
    key = "failing"
    name = "Failing"

    def generate_signal(self, data, prediction):
        raise RuntimeError("malformed indicators")


class TestStrategyBank:

    @pytest.mark.unit
    def test_registry_order(self):
        names = [s.key for s in init_strategies()]
        assert names == list(STRATEGY_REGISTRY)
        assert len(names) == 10
        assert names[0] == "state_switch"
        assert names[-1] == "portfolio_optimization"

    @pytest.mark.unit
    def test_parameter_overrides(self):
        strategies = init_strategies(StrategyParams(momentum={"threshold": 0.5}))
        momentum = next(s for s in strategies if s.key == "momentum")
        assert momentum.params == {"momentum_window": 10, "threshold": 0.5}

    @pytest.mark.unit
    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError):
            init_strategies({"nonexistent": {}})
        with pytest.raises(ValueError):
            MomentumStrategy({"window": 3})

    @pytest.mark.unit
    def test_failures_are_recorded(self, bullish_prediction, caplog):
        strategies = [MomentumStrategy(), FailingStrategy(), MeanReversionStrategy()]
        with caplog.at_level(logging.ERROR):
            results = apply_all_strategies(RISING, bullish_prediction, strategies)

        assert [r.strategy_name for r in results] == ["Momentum", "Failing", "Mean Reversion"]
        failed = results[1]
        assert failed.error == "malformed indicators"
        check(failed.signal, SignalAction.HOLD, 0.5, 0.0)
        assert results[0].error is None
        assert "malformed indicators" in caplog.text
        assert failed.to_dict()["error"] == "malformed indicators"


class TestStrategyCorrelation:

    @pytest.mark.unit
    def test_matrix(self):
        matrix = calculate_strategy_correlation([
            [0.1, 0.5, 0.9, 0.3],
            [0.2, 0.6, 1.0, 0.4],
            [0.9, 0.5, 0.1, 0.7],
            [0.5, 0.5, 0.5, 0.5],
            [0.1, 0.2],
        ])
        assert np.diag(matrix) == pytest.approx(np.ones(5))
        assert matrix[0, 1] == pytest.approx(1.0)
        assert matrix[0, 2] == pytest.approx(-1.0)
        assert matrix[0, 3] == 0.0
        assert matrix[0, 4] == 0.0
        assert np.allclose(matrix, matrix.T)

    @pytest.mark.unit
    def test_accepts_backtest_results(self):
        class Result:
            def __init__(self, signals):
                self.signals = signals

        matrix = calculate_strategy_correlation([Result([0, 1, 0]), Result([1, 0, 1])])
        assert matrix[0, 1] == pytest.approx(-1.0)
