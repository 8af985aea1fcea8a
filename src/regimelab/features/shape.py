"""Turning-point classification on filtered series and the derived signal machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date as Date, datetime, timedelta
from typing import List, Optional, Sequence

from regimelab.config.settings import FilterConfig
from regimelab.core.contracts import PriceSeries
from regimelab.core.types import Shape, TradeSignal
from regimelab.features.jma import compute_series

logger = logging.getLogger(__name__)


@dataclass
class ShapeSignal:
    date: datetime
    price: float
    filtered: float
    shape: Shape
    signal: TradeSignal

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "price": self.price,
            "filtered": self.filtered,
            "shape": self.shape.value,
            "signal": self.signal.value,
        }


def classify_shape(prev_prev: float, prev: float, current: float) -> Shape:
    if prev_prev > prev and current > prev:
        return Shape.TROUGH
    if prev_prev < prev and current < prev:
        return Shape.PEAK
    if prev_prev < prev < current:
        return Shape.RISING
    if prev_prev > prev > current:
        return Shape.FALLING
    return Shape.UNKNOWN


def classify_shapes(values: Sequence[float]) -> List[Shape]:
    """Shape at every index; the first two entries have no history and are UNKNOWN."""
    shapes = [Shape.UNKNOWN] * min(2, len(values))
    for i in range(2, len(values)):
        shapes.append(classify_shape(values[i - 2], values[i - 1], values[i]))
    return shapes


def _as_date(value) -> Date:
    return value.date() if isinstance(value, datetime) else value


def next_trading_day(day: datetime) -> datetime:
    """Friday rolls to Monday; every other day moves forward one day."""
    return day + timedelta(days=3 if day.weekday() == 4 else 1)


def shape_signals(
    dates: Sequence[datetime],
    shapes: Sequence[Shape],
    min_hold_days: int = 7,
) -> List[TradeSignal]:
    """Run the FLAT/BUY/HOLD/SELL machine over a shape sequence.

    A trough arms a BUY; the following bar records the entry date and moves
    to HOLD. A peak or falling shape exits to SELL only once the next
    trading day lies at least ``min_hold_days`` calendar days after entry.
    From SELL, a trough re-enters and a falling shape goes FLAT.
    """
    state = TradeSignal.FLAT
    buy_date: Optional[datetime] = None
    signals: List[TradeSignal] = []

    for date, shape in zip(dates, shapes):
        if state is TradeSignal.FLAT:
            if shape is Shape.TROUGH:
                state = TradeSignal.BUY
        elif state is TradeSignal.BUY:
            buy_date = date
            state = TradeSignal.HOLD
        elif state is TradeSignal.HOLD:
            if shape in (Shape.PEAK, Shape.FALLING):
                sell_date = next_trading_day(date)
                held = (_as_date(sell_date) - _as_date(buy_date)).days
                if held >= min_hold_days:
                    state = TradeSignal.SELL
        elif state is TradeSignal.SELL:
            if shape is Shape.TROUGH:
                state = TradeSignal.BUY
            elif shape is Shape.FALLING:
                state = TradeSignal.FLAT
        signals.append(state)

    return signals


def signal_series(
    series: PriceSeries,
    filter_config: Optional[FilterConfig] = None,
    min_hold_days: int = 7,
) -> List[ShapeSignal]:
    """Filter a series, classify turning points and derive trade signals per bar."""
    cfg = filter_config or FilterConfig()
    prices = series.closes().tolist()
    dates = series.dates()
    filtered = compute_series(prices, cfg.length, cfg.phase, cfg.power)
    shapes = classify_shapes(filtered)
    signals = shape_signals(dates, shapes, min_hold_days)
    logger.debug(f"{series.symbol}: {signals.count(TradeSignal.BUY)} buy / "
                 f"{signals.count(TradeSignal.SELL)} sell signals")
    return [
        ShapeSignal(date=d, price=p, filtered=f, shape=s, signal=sig)
        for d, p, f, s, sig in zip(dates, prices, filtered, shapes, signals)
    ]
