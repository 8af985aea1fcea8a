"""Trend and momentum strategies conditioned on the current regime."""

from __future__ import annotations

from regimelab.core.contracts import HMMPrediction, StrategySignal
from regimelab.core.types import MarketRegime, SignalAction
from regimelab.strategies.base import InstrumentData, Strategy


class LongShortStrategy(Strategy):
    """Goes long in a bullish regime with a positive lookback return, flat in a falling bear."""

    key = "long_short"
    name = "Long Short"
    DEFAULTS = {"lookback": 20}

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        prices = data.prices
        lookback = int(self.params["lookback"])
        if lookback < 1 or len(prices) < lookback:
            return StrategySignal(SignalAction.HOLD, 0.5, 0.3)

        start = prices[-lookback]
        recent_return = (prices[-1] - start) / start
        state = prediction.current_state

        if state == MarketRegime.BULLISH and recent_return > 0:
            return StrategySignal(SignalAction.BUY, 1.0, 0.7)
        if state == MarketRegime.BEARISH and recent_return < 0:
            return StrategySignal(SignalAction.SELL, 0.0, 0.7)
        return StrategySignal(SignalAction.HOLD, 0.2, 0.5)


class MomentumStrategy(Strategy):
    """Cumulative return over the last ``momentum_window`` bars against a per-bar threshold."""

    key = "momentum"
    name = "Momentum"
    DEFAULTS = {"momentum_window": 10, "threshold": 0.01}

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        window = int(self.params["momentum_window"])
        returns = data.indicators.returns
        if window < 1 or len(data.prices) < window or len(returns) < window:
            return StrategySignal(SignalAction.HOLD, 0.5, 0.3)

        cumulative = sum(returns[-window:])
        bound = self.params["threshold"] * window

        if cumulative > bound:
            return StrategySignal(SignalAction.BUY, 0.9, 0.7)
        if cumulative < -bound:
            return StrategySignal(SignalAction.SELL, 0.1, 0.7)
        return StrategySignal(SignalAction.HOLD, 0.5, 0.5)


class TrendFollowingStrategy(Strategy):
    """Price above both SMA20 and EMA20 in a bullish regime buys; below both in a bearish one sells."""

    key = "trend_following"
    name = "Trend Following"
    DEFAULTS = {"min_history": 20}

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        sma, ema = data.indicators.sma, data.indicators.ema
        if len(data.prices) < int(self.params["min_history"]) or not sma or not ema:
            return StrategySignal(SignalAction.HOLD, 0.5, 0.3)

        price = data.prices[-1]
        state = prediction.current_state

        if price > sma[-1] and price > ema[-1] and state == MarketRegime.BULLISH:
            return StrategySignal(SignalAction.BUY, 1.0, 0.8)
        if price < sma[-1] and price < ema[-1] and state == MarketRegime.BEARISH:
            return StrategySignal(SignalAction.SELL, 0.0, 0.8)
        return StrategySignal(SignalAction.HOLD, 0.5, 0.5)
