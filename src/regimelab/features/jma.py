"""Jurik-style adaptive moving average.

A streaming, lag-reduced smoother built from nine cascaded one-pole stages.
The time constant adapts to recent volatility, the odd stages add a
phase-lead term, and a final inflection-suppression pass damps small
reversals while following large moves quickly.

Two equivalent interfaces are provided:

- ``jma_step(state, price)`` is a pure step function returning
  ``(value, new_state)``; the input state is never modified.
- ``AdaptiveFilter`` owns a single ``FilterState`` and mutates it in place
  on every ``push``.

A filter state belongs to exactly one (instrument, parameter set) stream.
"""

from __future__ import annotations

import copy
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

logger = logging.getLogger(__name__)

EPSILON = 1e-10
NUM_STAGES = 9
MAX_WARMUP = 50


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _finite_or(value: float, default: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


def normalize_params(length: float, phase: float, power: float) -> Tuple[int, float, float]:
    """Clamp filter parameters into their valid ranges; never raises."""
    length = max(2, int(math.floor(_finite_or(length, 10) + 0.5)))
    phase = _clamp(_finite_or(phase, 0.0), -100.0, 100.0)
    power = _clamp(_finite_or(power, 2.0), 1.0, 10.0)
    return length, phase, power


@dataclass
class FilterState:
    """Mutable state of one adaptive filter stream."""

    length: int
    phase: float
    power: float
    initialized: bool = False
    ma: List[float] = field(default_factory=lambda: [0.0] * NUM_STAGES)
    volty: deque = field(default_factory=deque)
    warmup_count: int = 0
    warmup_needed: int = 0
    prev_price: float = 0.0
    prev_output: float = 0.0

    @classmethod
    def create(cls, length: float = 10, phase: float = 0, power: float = 2) -> FilterState:
        length, phase, power = normalize_params(length, phase, power)
        return cls(
            length=length,
            phase=phase,
            power=power,
            volty=deque(maxlen=length),
            warmup_needed=min(2 * length, MAX_WARMUP),
        )

    @property
    def avg_volty(self) -> float:
        if not self.volty:
            return 0.0
        return sum(self.volty) / len(self.volty)


def _advance(state: FilterState, price: float) -> float:
    """Apply one price to ``state`` in place and return the filter output."""
    if not math.isfinite(price):
        return state.prev_output if state.initialized else 0.0

    if not state.initialized:
        state.ma = [price] * NUM_STAGES
        state.volty.clear()
        state.warmup_count = 0
        state.prev_price = price
        state.prev_output = price
        state.initialized = True
        return price

    abs_change = abs(price - state.prev_price)
    state.prev_price = price
    state.volty.append(abs_change)
    avg_volty = state.avg_volty

    volty_ratio = abs_change / avg_volty if avg_volty > EPSILON else 1.0
    volty_ratio = _clamp(volty_ratio, 0.1, 10.0)

    adaptive_factor = _clamp(state.power * (1 + math.log(volty_ratio + 1) * 0.5), 0.8, 1.8)
    effective_length = max(4.0, state.length * adaptive_factor)
    alpha = 0.45 * (effective_length - 1) / (0.45 * (effective_length - 1) + 2)
    phase_coeff = _clamp(1 + state.phase / 100.0, 0.8, 1.5)

    ma = state.ma
    ma[0] = (1 - alpha) * ma[0] + alpha * price
    ma[1] = (1 - alpha) * ma[1] + alpha * ma[0]
    # lead stages 3/5/7/9 are fed by the previous pair's output plus its spread
    for lead in (2, 4, 6, 8):
        source = ma[lead - 2]
        delta = ma[lead - 2] - ma[lead - 1]
        ma[lead] = (1 - alpha) * ma[lead] + alpha * (source + delta * phase_coeff)
        if lead + 1 < NUM_STAGES:
            ma[lead + 1] = (1 - alpha) * ma[lead + 1] + alpha * ma[lead]

    candidate = ma[8]
    state.warmup_count += 1
    if state.warmup_count < state.warmup_needed:
        weight = (state.warmup_count / state.warmup_needed) ** 3
        candidate = price * (1 - weight) + candidate * weight

    delta = candidate - state.prev_output
    gain = 0.25 if abs(delta) < avg_volty * 1.5 else 0.9
    output = state.prev_output + delta * gain

    state.prev_output = output
    return output


def jma_step(state: FilterState, price: float) -> Tuple[float, FilterState]:
    """Pure filter step: returns the output and a new state, leaving ``state`` untouched."""
    new_state = copy.deepcopy(state)
    value = _advance(new_state, float(price))
    return value, new_state


class AdaptiveFilter:
    """Owning handle around a single ``FilterState``."""

    def __init__(self, length: float = 10, phase: float = 0, power: float = 2):
        self._state = FilterState.create(length, phase, power)

    @property
    def state(self) -> FilterState:
        return self._state

    @property
    def length(self) -> int:
        return self._state.length

    @property
    def phase(self) -> float:
        return self._state.phase

    @property
    def power(self) -> float:
        return self._state.power

    def push(self, price: float) -> float:
        try:
            price = float(price)
        except (TypeError, ValueError):
            price = math.nan
        return _advance(self._state, price)

    def reset(self) -> None:
        self._state = FilterState.create(self._state.length, self._state.phase, self._state.power)

    def compute_series(self, prices: Iterable[float]) -> List[float]:
        self.reset()
        return [self.push(p) for p in prices]


def compute_series(
    prices: Iterable[float],
    length: float = 10,
    phase: float = 0,
    power: float = 2,
) -> List[float]:
    """Batch convenience: filter a whole price series from a fresh state."""
    return AdaptiveFilter(length, phase, power).compute_series(prices)
