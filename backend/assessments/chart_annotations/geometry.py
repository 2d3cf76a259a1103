"""
Geometry primitives for chart annotations.

This module provides:
1. ``Candle`` and helpers to turn a candle series into numpy arrays
2. Learner annotations anchored to (timestamp, price) pairs, never pixels
3. Nearest-candle snapping used to score annotations by candle index
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from backend.assessments.chart_annotations.types import SwingKind, LegDirection, GapBias
from backend.common.serialization import SerializableMixin


@dataclass(frozen=True)
class Candle(SerializableMixin):
    """One OHLC candle; ``timestamp`` is in seconds."""
    timestamp: int
    open: float
    high: float
    low: float
    close: float

    __serializable_fields__ = ["timestamp", "open", "high", "low", "close"]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Candle':
        """Create a Candle from a dictionary; ``time`` is accepted for ``timestamp``."""
        timestamp = data.get("timestamp", data.get("time"))
        if timestamp is None:
            raise ValueError("Candle requires a timestamp")
        return cls(
            timestamp=int(timestamp),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"])
        )


def validate_series(series: Sequence[Candle]) -> None:
    """
    Check the series invariant: timestamps strictly increasing.

    Raises:
        ValueError: if two candles are out of order or share a timestamp
    """
    for previous, current in zip(series, series[1:]):
        if current.timestamp <= previous.timestamp:
            raise ValueError(
                f"Candle series must be strictly increasing in timestamp "
                f"({previous.timestamp} followed by {current.timestamp})"
            )


def series_arrays(series: Sequence[Candle]) -> Dict[str, np.ndarray]:
    """Column arrays for vectorised detection."""
    return {
        "timestamp": np.fromiter((c.timestamp for c in series), dtype=np.int64, count=len(series)),
        "high": np.fromiter((c.high for c in series), dtype=float, count=len(series)),
        "low": np.fromiter((c.low for c in series), dtype=float, count=len(series)),
    }


def price_range(series: Sequence[Candle]) -> float:
    """Highest high minus lowest low of the series (0 for an empty series)."""
    if not series:
        return 0.0
    return max(c.high for c in series) - min(c.low for c in series)


def snap_to_index(timestamps: np.ndarray, timestamp: float) -> int:
    """
    Index of the candle nearest to ``timestamp``.

    Ties are broken toward the earlier index. Timestamps outside the series
    snap to the first or last candle.
    """
    if len(timestamps) == 0:
        raise ValueError("Cannot snap to an empty series")

    position = int(np.searchsorted(timestamps, timestamp, side="left"))
    if position <= 0:
        return 0
    if position >= len(timestamps):
        return len(timestamps) - 1

    before = timestamp - timestamps[position - 1]
    after = timestamps[position] - timestamp
    return position - 1 if before <= after else position


@dataclass(frozen=True)
class AnnotationPoint(SerializableMixin):
    """A point the learner placed on the chart."""
    timestamp: int
    price: float

    __serializable_fields__ = ["timestamp", "price"]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnnotationPoint':
        timestamp = data.get("timestamp", data.get("time"))
        if timestamp is None:
            raise ValueError("Annotation point requires a timestamp")
        return cls(timestamp=int(timestamp), price=float(data["price"]))


@dataclass(frozen=True)
class SwingAnnotation(SerializableMixin):
    """A swing high or low marked by the learner."""
    point: AnnotationPoint
    kind: SwingKind
    annotation_id: Optional[str] = None

    __serializable_fields__ = ["point", "kind", "annotation_id"]
    __field_aliases__ = {"annotation_id": "id"}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SwingAnnotation':
        """Accepts ``{point: {...}, kind}`` or the flat ``{time, price, type}`` form."""
        point_data = data.get("point", data)
        kind = data.get("kind", data.get("type"))
        if kind is None:
            raise ValueError("Swing annotation requires a kind (high or low)")
        return cls(
            point=AnnotationPoint.from_dict(point_data),
            kind=SwingKind(str(kind).lower()),
            annotation_id=data.get("id")
        )


@dataclass(frozen=True)
class FibonacciAnnotation(SerializableMixin):
    """A Fibonacci leg drawn from ``start`` to ``end``."""
    start: AnnotationPoint
    end: AnnotationPoint
    direction: LegDirection
    annotation_id: Optional[str] = None

    __serializable_fields__ = ["start", "end", "direction", "annotation_id"]
    __field_aliases__ = {"annotation_id": "id"}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FibonacciAnnotation':
        start = AnnotationPoint.from_dict(data["start"])
        end = AnnotationPoint.from_dict(data["end"])
        direction = data.get("direction")
        if direction is None:
            # Infer from the drawn slope when the surface did not tag it
            direction = "up" if end.price >= start.price else "down"
        return cls(
            start=start,
            end=end,
            direction=LegDirection.from_string(str(direction)),
            annotation_id=data.get("id")
        )


@dataclass(frozen=True)
class Zone(SerializableMixin):
    """
    Rectangular zone between two candles and two prices.

    Either candle indices or timestamps may be supplied by the drawing
    surface; ``resolve`` snaps timestamps onto a concrete series.
    """
    top_price: float
    bottom_price: float
    start_index: Optional[int] = None
    end_index: Optional[int] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None

    __serializable_fields__ = ["start_index", "end_index", "top_price", "bottom_price"]
    __field_aliases__ = {
        "start_index": "startIndex",
        "end_index": "endIndex",
        "top_price": "topPrice",
        "bottom_price": "bottomPrice",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Zone':
        top = float(data["topPrice"])
        bottom = float(data["bottomPrice"])
        start_time = data.get("startTime")
        end_time = data.get("endTime")
        return cls(
            top_price=max(top, bottom),
            bottom_price=min(top, bottom),
            start_index=data.get("startIndex"),
            end_index=data.get("endIndex"),
            start_time=int(start_time) if start_time is not None else None,
            end_time=int(end_time) if end_time is not None else None
        )

    def resolve(self, timestamps: np.ndarray) -> 'Zone':
        """Return a zone with both indices set and ordered."""
        start = self.start_index
        end = self.end_index
        if start is None:
            if self.start_time is None:
                raise ValueError("Zone needs startIndex or startTime")
            start = snap_to_index(timestamps, self.start_time)
        if end is None:
            if self.end_time is None:
                raise ValueError("Zone needs endIndex or endTime")
            end = snap_to_index(timestamps, self.end_time)
        start, end = sorted((int(start), int(end)))
        return Zone(
            top_price=self.top_price,
            bottom_price=self.bottom_price,
            start_index=start,
            end_index=end,
            start_time=self.start_time,
            end_time=self.end_time
        )


@dataclass(frozen=True)
class FVGAnnotation(SerializableMixin):
    """A Fair Value Gap zone marked by the learner."""
    zone: Zone
    bias: GapBias
    annotation_id: Optional[str] = None

    __serializable_fields__ = ["zone", "bias", "annotation_id"]
    __field_aliases__ = {"annotation_id": "id"}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FVGAnnotation':
        """Accepts ``{zone: {...}, bias}`` or the flat ``{startTime, ..., type}`` form."""
        bias = data.get("bias", data.get("type"))
        if bias is None:
            raise ValueError("FVG annotation requires a bias (bullish or bearish)")
        return cls(
            zone=Zone.from_dict(data.get("zone", data)),
            bias=GapBias.from_string(str(bias)),
            annotation_id=data.get("id")
        )


def index_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> float:
    """
    Overlap of two inclusive index ranges as intersection over union.

    A zone much wider than a gap scores low even though it contains it.
    Returns 0.0 when the ranges are disjoint.
    """
    shared = min(end_a, end_b) - max(start_a, start_b) + 1
    if shared <= 0:
        return 0.0
    union = (end_a - start_a + 1) + (end_b - start_b + 1) - shared
    return shared / union


def candles_from_dicts(rows: List[Dict[str, Any]]) -> List[Candle]:
    """Build and validate a candle series from wire dictionaries."""
    series = [Candle.from_dict(row) for row in rows]
    validate_series(series)
    return series
