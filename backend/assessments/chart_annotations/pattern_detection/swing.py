"""
Swing point detection.

A swing high is a candle whose high is the highest within ``radius`` candles
on either side and strictly above at least one neighbour on each side. Swing
lows mirror the rule on the lows.
"""

from typing import List, Sequence

import numpy as np

from backend.assessments.chart_annotations.annotation_config import SWING_RADIUS, SWING_MIN_SIGNIFICANCE
from backend.assessments.chart_annotations.geometry import Candle, series_arrays, price_range
from backend.assessments.chart_annotations.pattern_detection.interface import PatternDetector, GroundTruthItem
from backend.assessments.chart_annotations.types import Tool, SwingKind
from backend.common.logger import get_logger

logger = get_logger(__name__)


def _is_extreme(values: np.ndarray, i: int, radius: int, kind: SwingKind) -> bool:
    left = values[i - radius:i]
    right = values[i + 1:i + radius + 1]
    window = values[i - radius:i + radius + 1]
    if kind is SwingKind.HIGH:
        return values[i] == window.max() and bool((left < values[i]).any()) and bool((right < values[i]).any())
    return values[i] == window.min() and bool((left > values[i]).any()) and bool((right > values[i]).any())


class SwingDetector(PatternDetector):
    """Finds confirmed swing highs and lows."""

    tool = Tool.SWINGS

    def __init__(
        self,
        radius: int = SWING_RADIUS,
        min_significance: float = SWING_MIN_SIGNIFICANCE,
        name: str = "SwingDetector"
    ):
        """
        Args:
            radius: Candles on each side a swing must dominate
            min_significance: Fraction of the series price range a swing must
                clear within its window (0 disables the filter)
            name: Detector name
        """
        if radius < 1:
            raise ValueError(f"Swing radius must be at least 1, got {radius}")
        super().__init__(name, {"radius": radius, "min_significance": min_significance})
        self.radius = radius
        self.min_significance = min_significance

    def detect(self, series: Sequence[Candle]) -> List[GroundTruthItem]:
        n = len(series)
        w = self.radius
        if n < 2 * w + 1:
            return []

        arrays = series_arrays(series)
        highs, lows = arrays["high"], arrays["low"]
        min_move = self.min_significance * price_range(series)

        items: List[GroundTruthItem] = []
        last_kept = {SwingKind.HIGH: None, SwingKind.LOW: None}

        for i in range(w, n - w):
            for kind, values in ((SwingKind.HIGH, highs), (SwingKind.LOW, lows)):
                if not _is_extreme(values, i, w, kind):
                    continue

                # Plateau: an equal extreme within the window was already kept
                previous = last_kept[kind]
                if previous is not None and i - previous <= w and values[previous] == values[i]:
                    continue

                if min_move > 0:
                    if kind is SwingKind.HIGH:
                        move = highs[i] - lows[i - w:i + w + 1].min()
                    else:
                        move = highs[i - w:i + w + 1].max() - lows[i]
                    if move < min_move:
                        continue

                last_kept[kind] = i
                items.append(GroundTruthItem(
                    item_id=f"swing-{kind.value}-{i}",
                    tool=Tool.SWINGS,
                    tag=kind,
                    start_index=i,
                    end_index=i,
                    start_time=series[i].timestamp,
                    end_time=series[i].timestamp,
                    start_price=float(values[i]),
                    end_price=float(values[i]),
                ))

        logger.debug(f"{self.name}: {len(items)} swings in {n} candles (radius={w})")
        return items
