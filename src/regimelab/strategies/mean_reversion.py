"""Mean reversion against the 20-bar simple moving average."""

from __future__ import annotations

from regimelab.core.contracts import HMMPrediction, StrategySignal
from regimelab.core.types import SignalAction
from regimelab.strategies.base import InstrumentData, Strategy


class MeanReversionStrategy(Strategy):
    """Buys when price sits below SMA20 by more than the threshold, sells when above.

    The regime inference is ignored.
    """

    key = "mean_reversion"
    name = "Mean Reversion"
    DEFAULTS = {"deviation_threshold": 0.02}

    def deviation(self, data: InstrumentData) -> float:
        sma = data.indicators.sma[-1]
        return (data.prices[-1] - sma) / sma

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        if not data.prices or not data.indicators.sma:
            return StrategySignal(SignalAction.HOLD, 0.5, 0.3)

        deviation = self.deviation(data)
        threshold = self.params["deviation_threshold"]

        if deviation < -threshold:
            return StrategySignal(SignalAction.BUY, 0.8, 0.6)
        if deviation > threshold:
            return StrategySignal(SignalAction.SELL, 0.2, 0.6)
        return StrategySignal(SignalAction.HOLD, 0.5, 0.5)
