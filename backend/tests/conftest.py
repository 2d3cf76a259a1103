"""
Shared fixtures for the chart practice tests.

The series below are built by hand so the expected ground truth is known:

- ``swing_series``: 15 daily candles rising to a peak at index 4, falling to a
  trough at index 8 and peaking again at index 11. With the default radius of 3
  the swings are high@4, low@8, high@11 and the Fibonacci legs are down 4->8
  and up 8->11. Wicks are wide enough that no Fair Value Gap forms.
- ``fvg_series``: six candles with a bullish gap over candles 0..2 (later
  filled by candle 5) and a bearish gap over candles 3..5.
"""

from typing import Callable, List, Sequence

import pytest

from backend.assessments.chart_annotations.geometry import Candle

START_TIME = 1_700_000_000
DAY = 86400

SWING_MIDS = [10, 11, 12, 13, 14, 13, 12, 11, 10, 11, 12, 13, 12, 11, 10]


def _series_from_mids(mids: Sequence[float], wick: float = 1.5, step: int = DAY) -> List[Candle]:
    return [
        Candle(
            timestamp=START_TIME + i * step,
            open=mid - 0.25,
            high=mid + wick,
            low=mid - wick,
            close=mid + 0.25
        )
        for i, mid in enumerate(mids)
    ]


@pytest.fixture
def make_series() -> Callable[..., List[Candle]]:
    """Factory for candle series built from mid prices."""
    return _series_from_mids


@pytest.fixture
def swing_series() -> List[Candle]:
    return _series_from_mids(SWING_MIDS)


@pytest.fixture
def fvg_series() -> List[Candle]:
    rows = [
        (10.0, 10.0, 9.0, 9.5),
        (10.5, 12.0, 10.0, 11.5),
        (11.5, 14.0, 11.0, 13.5),
        (13.0, 13.5, 12.0, 12.5),
        (12.5, 12.5, 11.5, 11.8),
        (10.8, 11.0, 9.5, 9.8),
    ]
    return [
        Candle(timestamp=START_TIME + i * DAY, open=o, high=h, low=l, close=c)
        for i, (o, h, l, c) in enumerate(rows)
    ]


@pytest.fixture
def ts() -> Callable[[int], int]:
    """Timestamp of candle ``i`` in the fixture series."""
    return lambda i: START_TIME + i * DAY


@pytest.fixture
def chart_rows(swing_series) -> List[dict]:
    """``swing_series`` in the wire form the practice UI posts."""
    return [
        {"time": c.timestamp, "open": c.open, "high": c.high, "low": c.low, "close": c.close}
        for c in swing_series
    ]
