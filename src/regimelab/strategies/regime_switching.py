"""Strategies driven mainly by the HMM regime inference."""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Optional

from regimelab.core.contracts import HMMPrediction, StrategySignal
from regimelab.core.types import MarketRegime, SignalAction
from regimelab.strategies.base import InstrumentData, Strategy

BULLISH = int(MarketRegime.BULLISH)
RANGING = int(MarketRegime.RANGING)
BEARISH = int(MarketRegime.BEARISH)


class StateSwitchStrategy(Strategy):
    """Trades regime transitions: bearish to bullish buys, bullish to bearish sells."""

    key = "state_switch"
    name = "State Switch"
    DEFAULTS = {"bullish_state": BULLISH, "bearish_state": BEARISH}

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        bullish = int(self.params["bullish_state"])
        bearish = int(self.params["bearish_state"])
        prev, current = prediction.prev_state, prediction.current_state

        if prev == bearish and current == bullish:
            return StrategySignal(SignalAction.BUY, 1.0, 0.8)
        if prev == bullish and current == bearish:
            return StrategySignal(SignalAction.SELL, 0.0, 0.8)
        if current == RANGING:
            return StrategySignal(SignalAction.REDUCE, 0.3, 0.6)
        return StrategySignal(SignalAction.HOLD, 0.5, 0.5)


class ProbabilityThresholdStrategy(Strategy):
    """Acts when the most likely regime's marginal probability clears a threshold."""

    key = "probability_threshold"
    name = "Probability Threshold"
    DEFAULTS = {"threshold": 0.6}

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        probs = prediction.state_probs
        if not probs:
            return StrategySignal.neutral(confidence=0.0, position=0.4)

        max_prob = max(probs)
        max_state = probs.index(max_prob)
        threshold = self.params["threshold"]

        if max_state == BULLISH and max_prob > threshold:
            return StrategySignal(SignalAction.BUY, 0.9, max_prob)
        if max_state == BEARISH and max_prob > threshold:
            return StrategySignal(SignalAction.SELL, 0.0, max_prob)
        return StrategySignal(SignalAction.HOLD, 0.4, max_prob)


class MarketTimingStrategy(Strategy):
    """Combines the current regime with the predicted next regime."""

    key = "market_timing"
    name = "Market Timing"
    DEFAULTS = {"bullish_threshold": 0.7, "bearish_threshold": 0.7}

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        current, nxt = prediction.current_state, prediction.next_state
        bullish_prob = prediction.prob(BULLISH)
        bearish_prob = prediction.prob(BEARISH)

        if current == BULLISH and nxt == BULLISH and bullish_prob > self.params["bullish_threshold"]:
            return StrategySignal(SignalAction.BUY, 1.0, bullish_prob)
        if current == BEARISH and nxt == BEARISH and bearish_prob > self.params["bearish_threshold"]:
            return StrategySignal(SignalAction.SELL, 0.0, bearish_prob)
        if current == BEARISH and nxt == BULLISH:
            return StrategySignal(SignalAction.BUY, 0.6, 0.6)
        if current == BULLISH and nxt == BEARISH:
            return StrategySignal(SignalAction.REDUCE, 0.3, 0.6)
        return StrategySignal(SignalAction.HOLD, 0.5, 0.4)


class PortfolioOptimizationStrategy(Strategy):
    """Regime trend over a short state history combined with RSI extremes.

    Keeps the last ``history_length`` regime states. Moves toward a lower
    state index count as "up" (toward bullish), moves toward a higher index
    as "down".
    """

    key = "portfolio_optimization"
    name = "Portfolio Optimization"
    DEFAULTS = {"history_length": 5}

    def __init__(self, params: Optional[Dict[str, float]] = None):
        super().__init__(params)
        self.history: Deque[int] = deque(maxlen=max(1, int(self.params["history_length"])))

    def reset(self) -> None:
        self.history.clear()

    def state_trend(self) -> str:
        if len(self.history) < 3:
            return "neutral"
        states = list(self.history)
        up = sum(1 for a, b in zip(states, states[1:]) if b < a)
        down = sum(1 for a, b in zip(states, states[1:]) if b > a)
        if up > down:
            return "up"
        if down > up:
            return "down"
        return "neutral"

    def generate_signal(self, data: InstrumentData, prediction: HMMPrediction) -> StrategySignal:
        self.history.append(prediction.current_state)
        trend = self.state_trend()
        rsi = data.indicators.rsi
        last_rsi = rsi[-1] if rsi else None

        if last_rsi is not None and last_rsi < 30 and trend == "up":
            return StrategySignal(SignalAction.BUY, 0.8, 0.7)
        if last_rsi is not None and last_rsi > 70 and trend == "down":
            return StrategySignal(SignalAction.SELL, 0.2, 0.7)
        if trend == "up" and prediction.prob(BULLISH) > 0.6:
            return StrategySignal(SignalAction.BUY, 0.9, 0.6)
        if trend == "down" and prediction.prob(BEARISH) > 0.6:
            return StrategySignal(SignalAction.SELL, 0.0, 0.6)
        return StrategySignal(SignalAction.HOLD, 0.5, 0.5)
