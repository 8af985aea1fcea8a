import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_prices(n: int = 300, seed: int = 42, drift: float = 0.0005, vol: float = 0.015) -> np.ndarray:
    """Geometric random walk starting at 100."""
    rng = np.random.RandomState(seed)
    returns = rng.normal(drift, vol, size=n - 1)
    return 100 * np.concatenate([[1.0], np.cumprod(1 + returns)])


def make_series(prices, instrument_id: int = 1, symbol: str = "AAA", start: str = "2022-01-03",
                sector: str = "Tech", fund: str = "Core"):
    """Business-day PriceSeries over the given closes."""
    from regimelab.core.contracts import PriceSeries

    dates = pd.bdate_range(start, periods=len(prices))
    records = [
        {"date": d.isoformat(), "open": p, "high": p * 1.01, "low": p * 0.99, "close": p, "volume": 1_000}
        for d, p in zip(dates, prices)
    ]
    return PriceSeries.from_records(records, instrument_id=instrument_id, symbol=symbol,
                                    sector=sector, fund=fund)


def make_prediction(current: int = 0, prev: int = 0, next_state: int = 0, probs=None, states=None):
    from regimelab.core.contracts import HMMPrediction

    probs = [0.34, 0.33, 0.33] if probs is None else probs
    return HMMPrediction(
        states=states if states is not None else [prev, current],
        state_probs=probs,
        current_state=current,
        prev_state=prev,
        next_state=next_state,
        next_observation=0,
    )


@pytest.fixture
def sample_prices():
    """300 synthetic closes with a small upward drift."""
    return make_prices()


@pytest.fixture
def sample_series(sample_prices):
    return make_series(sample_prices)


@pytest.fixture
def sample_universe():
    """Three instruments with different drifts."""
    return [
        make_series(make_prices(260, seed=1, drift=0.001), instrument_id=1, symbol="UP", sector="Tech"),
        make_series(make_prices(260, seed=2, drift=-0.001), instrument_id=2, symbol="DOWN", sector="Energy"),
        make_series(make_prices(260, seed=3, drift=0.0), instrument_id=3, symbol="FLAT", sector="Health"),
    ]


@pytest.fixture
def bullish_prediction():
    return make_prediction(current=0, prev=0, next_state=0, probs=[0.8, 0.15, 0.05])


@pytest.fixture
def bearish_prediction():
    return make_prediction(current=2, prev=2, next_state=2, probs=[0.05, 0.15, 0.8])


@pytest.fixture
def price_factory():
    return make_prices


@pytest.fixture
def series_factory():
    return make_series


@pytest.fixture
def prediction_factory():
    return make_prediction
