from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from regimelab.core.types import SignalAction


@dataclass(frozen=True)
class PriceBar:
    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass
class PriceSeries:
    """Daily bars for one instrument, ascending by date."""

    instrument_id: int
    symbol: str
    bars: list[PriceBar]
    sector: str = ""
    fund: str = ""

    def __post_init__(self):
        for prev, cur in zip(self.bars, self.bars[1:]):
            if cur.date <= prev.date:
                raise ValueError(
                    f"{self.symbol}: dates must be strictly increasing "
                    f"({prev.date:%Y-%m-%d} followed by {cur.date:%Y-%m-%d})"
                )

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        instrument_id: int,
        symbol: str,
        sector: str = "",
        fund: str = "",
    ) -> PriceSeries:
        """Build a series from fetched ``{date, open, high, low, close, volume}`` records."""
        bars = [
            PriceBar(
                date=pd.Timestamp(r["date"]).to_pydatetime(),
                open=float(r.get("open", r["close"])),
                high=float(r.get("high", r["close"])),
                low=float(r.get("low", r["close"])),
                close=float(r["close"]),
                volume=float(r.get("volume", 0.0)),
            )
            for r in records
        ]
        bars.sort(key=lambda b: b.date)
        return cls(instrument_id=instrument_id, symbol=symbol, bars=bars, sector=sector, fund=fund)

    def __len__(self) -> int:
        return len(self.bars)

    def dates(self) -> list[datetime]:
        return [b.date for b in self.bars]

    def closes(self) -> np.ndarray:
        return np.array([b.close for b in self.bars], dtype=float)

    def highs(self) -> np.ndarray:
        return np.array([b.high for b in self.bars], dtype=float)

    def lows(self) -> np.ndarray:
        return np.array([b.low for b in self.bars], dtype=float)

    def tail(self, length: int) -> PriceSeries:
        return PriceSeries(
            instrument_id=self.instrument_id,
            symbol=self.symbol,
            bars=self.bars[-length:] if length > 0 else [],
            sector=self.sector,
            fund=self.fund,
        )

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame([asdict(b) for b in self.bars])
        if frame.empty:
            return frame
        return frame.set_index("date")


@dataclass
class StrategySignal:
    action: SignalAction
    position: float
    confidence: float

    def __post_init__(self):
        self.position = float(min(1.0, max(0.0, self.position)))
        self.confidence = float(min(1.0, max(0.0, self.confidence)))

    @classmethod
    def neutral(cls, confidence: float = 0.0, position: float = 0.5) -> StrategySignal:
        return cls(SignalAction.HOLD, position, confidence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "position": self.position,
            "confidence": self.confidence,
        }


@dataclass
class HMMPrediction:
    """Decoded regime path plus one-step-ahead forecasts."""

    states: list[int]
    state_probs: list[float]
    current_state: int
    prev_state: int
    next_state: int
    next_observation: int

    def prob(self, state: int) -> float:
        if 0 <= state < len(self.state_probs):
            return self.state_probs[state]
        return 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PositionAllocation:
    instrument_id: int
    weight: float
    sharpe_ratio: float
    symbol: str = ""
    sector: str = ""
    fund: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
