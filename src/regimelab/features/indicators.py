"""Technical indicators over daily close series.

Window functions return only fully-formed values: a window of size ``w``
over ``n`` samples yields ``n - w + 1`` values, and fewer than ``w``
samples yield an empty list. Outputs are therefore tail-aligned with the
input rather than NaN-padded.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from regimelab.core.contracts import PriceSeries

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray]


@dataclass
class MACDResult:
    macd: List[float] = field(default_factory=list)
    signal: List[float] = field(default_factory=list)
    histogram: List[float] = field(default_factory=list)


@dataclass
class BollingerBands:
    upper: List[float] = field(default_factory=list)
    middle: List[float] = field(default_factory=list)
    lower: List[float] = field(default_factory=list)


@dataclass
class IndicatorSet:
    """All indicators for one instrument, each tail-aligned with the closes."""

    prices: List[float] = field(default_factory=list)
    returns: List[float] = field(default_factory=list)
    log_returns: List[float] = field(default_factory=list)
    sma: List[float] = field(default_factory=list)
    ema: List[float] = field(default_factory=list)
    volatility: List[float] = field(default_factory=list)
    rsi: List[float] = field(default_factory=list)
    macd: MACDResult = field(default_factory=MACDResult)
    bollinger: BollingerBands = field(default_factory=BollingerBands)

    def prefix(self, num_prices: int) -> IndicatorSet:
        """Indicators as they stood after the first ``num_prices`` closes.

        Every indicator here is causal, so trimming the tail is equivalent to
        recomputing on the shorter series.
        """
        drop = max(0, len(self.prices) - num_prices)

        def cut(values: List[float]) -> List[float]:
            return values[:max(0, len(values) - drop)]

        return IndicatorSet(
            prices=cut(self.prices),
            returns=cut(self.returns),
            log_returns=cut(self.log_returns),
            sma=cut(self.sma),
            ema=cut(self.ema),
            volatility=cut(self.volatility),
            rsi=cut(self.rsi),
            macd=MACDResult(cut(self.macd.macd), cut(self.macd.signal), cut(self.macd.histogram)),
            bollinger=BollingerBands(
                cut(self.bollinger.upper), cut(self.bollinger.middle), cut(self.bollinger.lower)
            ),
        )


class TechnicalIndicators:
    """Collection of fixed-window indicators."""

    @staticmethod
    def returns(prices: ArrayLike) -> List[float]:
        p = np.asarray(prices, dtype=float)
        if len(p) < 2:
            return []
        prev = p[:-1]
        with np.errstate(divide="ignore", invalid="ignore"):
            r = np.where(prev != 0, (p[1:] - prev) / prev, 0.0)
        return r.tolist()

    @staticmethod
    def log_returns(prices: ArrayLike) -> List[float]:
        p = np.asarray(prices, dtype=float)
        if len(p) < 2:
            return []
        with np.errstate(divide="ignore", invalid="ignore"):
            r = np.where((p[:-1] > 0) & (p[1:] > 0), np.log(p[1:] / p[:-1]), 0.0)
        return r.tolist()

    @staticmethod
    def sma(values: ArrayLike, window: int) -> List[float]:
        """Simple moving average.

        Args:
            values: Input series
            window: Window size

        Returns:
            ``len(values) - window + 1`` averages, or an empty list
        """
        v = np.asarray(values, dtype=float)
        if window < 1 or len(v) < window:
            return []
        return sliding_window_view(v, window).mean(axis=1).tolist()

    @staticmethod
    def ema(values: ArrayLike, window: int) -> List[float]:
        """Exponential moving average seeded with the SMA of the first window."""
        v = np.asarray(values, dtype=float)
        if window < 1 or len(v) < window:
            return []
        k = 2.0 / (window + 1)
        current = float(v[:window].mean())
        out = [current]
        for x in v[window:]:
            current = float(x) * k + current * (1 - k)
            out.append(current)
        return out

    @staticmethod
    def volatility(values: ArrayLike, window: int = 20) -> List[float]:
        """Rolling population standard deviation."""
        v = np.asarray(values, dtype=float)
        if window < 1 or len(v) < window:
            return []
        return sliding_window_view(v, window).std(axis=1).tolist()

    @staticmethod
    def rsi(prices: ArrayLike, period: int = 14) -> List[float]:
        """Relative Strength Index with Wilder smoothing.

        The first value averages the first ``period`` price changes; each
        later value carries the averages forward as
        ``(avg * (period - 1) + current) / period``.

        Returns:
            ``len(prices) - period`` values in [0, 100], or an empty list
        """
        p = np.asarray(prices, dtype=float)
        if period < 1 or len(p) < period + 1:
            return []

        deltas = np.diff(p)
        gains = np.where(deltas > 0, deltas, 0.0)
        losses = np.where(deltas < 0, -deltas, 0.0)

        avg_gain = float(gains[:period].mean())
        avg_loss = float(losses[:period].mean())

        def _value(g: float, l: float) -> float:
            if l == 0:
                return 100.0
            return 100.0 - 100.0 / (1.0 + g / l)

        out = [_value(avg_gain, avg_loss)]
        for g, l in zip(gains[period:], losses[period:]):
            avg_gain = (avg_gain * (period - 1) + g) / period
            avg_loss = (avg_loss * (period - 1) + l) / period
            out.append(_value(avg_gain, avg_loss))
        return out

    @staticmethod
    def macd(prices: ArrayLike, fast: int = 12, slow: int = 26, signal: int = 9) -> MACDResult:
        p = np.asarray(prices, dtype=float)
        if len(p) < slow:
            return MACDResult()

        fast_ema = TechnicalIndicators.ema(p, fast)
        slow_ema = TechnicalIndicators.ema(p, slow)
        n = min(len(fast_ema), len(slow_ema))
        macd_line = (np.array(fast_ema[-n:]) - np.array(slow_ema[-n:])).tolist()

        signal_line = TechnicalIndicators.ema(macd_line, signal)
        m = len(signal_line)
        histogram = (np.array(macd_line[len(macd_line) - m:]) - np.array(signal_line)).tolist() if m else []
        return MACDResult(macd=macd_line, signal=signal_line, histogram=histogram)

    @staticmethod
    def bollinger(prices: ArrayLike, window: int = 20, num_std: float = 2.0) -> BollingerBands:
        middle = TechnicalIndicators.sma(prices, window)
        if not middle:
            return BollingerBands()
        std = np.array(TechnicalIndicators.volatility(prices, window))
        mid = np.array(middle)
        return BollingerBands(
            upper=(mid + num_std * std).tolist(),
            middle=middle,
            lower=(mid - num_std * std).tolist(),
        )

    @staticmethod
    def atr14(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike) -> float:
        """Average true range over the last 14 bars; 0 with insufficient data."""
        period = 14
        h = np.asarray(highs, dtype=float)
        l = np.asarray(lows, dtype=float)
        c = np.asarray(closes, dtype=float)
        if len(h) < period + 1:
            return 0.0
        prev_close = c[:-1]
        tr = np.maximum.reduce([
            h[1:] - l[1:],
            np.abs(h[1:] - prev_close),
            np.abs(l[1:] - prev_close),
        ])
        return float(tr[-period:].sum() / period)


def compute_indicators(
    data: Union[PriceSeries, ArrayLike],
    window: int = 20,
    rsi_period: int = 14,
) -> IndicatorSet:
    """Compute the standard indicator set for a price series."""
    closes = data.closes() if isinstance(data, PriceSeries) else np.asarray(data, dtype=float)
    ti = TechnicalIndicators
    returns = ti.returns(closes)
    return IndicatorSet(
        prices=closes.tolist(),
        returns=returns,
        log_returns=ti.log_returns(closes),
        sma=ti.sma(closes, window),
        ema=ti.ema(closes, window),
        volatility=ti.volatility(returns, window),
        rsi=ti.rsi(closes, rsi_period),
        macd=ti.macd(closes),
        bollinger=ti.bollinger(closes, window),
    )


def zscore_normalize(values: ArrayLike) -> List[float]:
    v = np.asarray(values, dtype=float)
    if len(v) == 0:
        return []
    std = v.std()
    if std == 0:
        return [0.0] * len(v)
    return ((v - v.mean()) / std).tolist()


def minmax_normalize(
    values: ArrayLike,
    lo: Optional[float] = None,
    hi: Optional[float] = None,
) -> List[float]:
    v = np.asarray(values, dtype=float)
    if len(v) == 0:
        return []
    lo = float(v.min()) if lo is None else lo
    hi = float(v.max()) if hi is None else hi
    if hi == lo:
        return [0.5] * len(v)
    return ((v - lo) / (hi - lo)).tolist()


def smooth_data(values: ArrayLike, window: int = 5) -> List[float]:
    """Linearly weighted moving average; weight ``j + 1`` applies to the sample ``j`` bars back."""
    v = np.asarray(values, dtype=float)
    if window < 1 or len(v) < window:
        return []
    # sliding windows are oldest-first, so weights run window..1
    weights = np.arange(window, 0, -1, dtype=float)
    return (sliding_window_view(v, window) @ weights / weights.sum()).tolist()


def normalize_prices(prices: ArrayLike, base: float = 1000.0) -> List[float]:
    """Rebase a price series so that it starts at ``base``."""
    p = np.asarray(prices, dtype=float)
    if len(p) == 0 or p[0] == 0:
        return p.tolist()
    return (p * (base / p[0])).tolist()


def rank_and_score(
    values: ArrayLike,
    max_score: float,
    interval: float,
    higher_is_better: bool = True,
) -> List[float]:
    """Score by rank: the best gets ``max_score``, each next rank ``interval`` less, floored at 0."""
    v = np.asarray(values, dtype=float)
    order = np.argsort(-v if higher_is_better else v, kind="stable")
    scores = np.zeros(len(v))
    for rank, idx in enumerate(order):
        scores[idx] = max(0.0, max_score - rank * interval)
    return scores.tolist()


def sanitize_price(price: float, prev_price: float) -> float:
    """Fall back to the previous price on non-numeric or non-finite input."""
    try:
        value = float(price)
    except (TypeError, ValueError):
        return prev_price
    return value if math.isfinite(value) else prev_price


def truncate_series(series: PriceSeries, length: int = 970) -> PriceSeries:
    """Keep only the most recent ``length`` bars."""
    if len(series) <= length:
        return series
    logger.debug(f"Truncating {series.symbol} from {len(series)} to {length} bars")
    return series.tail(length)
