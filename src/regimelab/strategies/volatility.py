"""Volatility-targeting strategies."""

from __future__ import annotations

import numpy as np

from regimelab.core.contracts import HMMPrediction, StrategySignal
from regimelab.core.types import MarketRegime, SignalAction
from regimelab.strategies.base import InstrumentData, Strategy


class VolatilityStrategy(Strategy):
    """Cuts exposure in high volatility, buys quiet bullish markets."""

    key = "volatility"
    name = "Volatility"
    DEFAULTS = {"high_vol_threshold": 0.03, "low_vol_threshold": 0.01}

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        volatility = data.indicators.volatility
        if not volatility:
            return StrategySignal(SignalAction.HOLD, 0.5, 0.5)

        current = volatility[-1]
        if current > self.params["high_vol_threshold"]:
            return StrategySignal(SignalAction.REDUCE, 0.2, 0.6)
        if current < self.params["low_vol_threshold"] and prediction.current_state == MarketRegime.BULLISH:
            return StrategySignal(SignalAction.BUY, 0.8, 0.7)
        return StrategySignal(SignalAction.HOLD, 0.5, 0.5)


class RiskParityStrategy(Strategy):
    """Sizes inversely to current volatility relative to its average, halved outside bullish regimes."""

    key = "risk_parity"
    name = "Risk Parity"
    DEFAULTS = {"base_position": 0.5, "risk_multiplier": 2}

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        base = self.params["base_position"]
        volatility = data.indicators.volatility
        if not volatility:
            return StrategySignal(SignalAction.HOLD, base, 0.5)

        current = volatility[-1]
        average = float(np.mean(volatility))
        position = base * (average / (current + 1e-10)) * self.params["risk_multiplier"]
        position = min(1.0, max(0.0, position))
        if prediction.current_state != MarketRegime.BULLISH:
            position *= 0.5

        if position > 0.5:
            action = SignalAction.BUY
        elif position < 0.3:
            action = SignalAction.SELL
        else:
            action = SignalAction.HOLD
        return StrategySignal(action, position, 0.6)
