"""
Fair Value Gap detection.

A bullish gap sits at middle candle ``i`` when ``high[i-1] < low[i+1]``; the
zone spans candles ``i-1..i+1`` between those two prices. Bearish gaps mirror
the rule with ``low[i-1] > high[i+1]``.
"""

from typing import List, Sequence

from backend.assessments.chart_annotations.annotation_config import FVG_MIN_GAP_FRACTION
from backend.assessments.chart_annotations.geometry import Candle, series_arrays, price_range
from backend.assessments.chart_annotations.pattern_detection.interface import PatternDetector, GroundTruthItem
from backend.assessments.chart_annotations.types import Tool, GapBias
from backend.common.logger import get_logger

logger = get_logger(__name__)


class FVGDetector(PatternDetector):
    """Finds three-candle imbalances."""

    tool = Tool.FVG

    def __init__(self, min_gap_fraction: float = FVG_MIN_GAP_FRACTION, name: str = "FVGDetector"):
        """
        Args:
            min_gap_fraction: Smallest gap, as a fraction of the series price
                range, that is reported (0 reports every gap)
            name: Detector name
        """
        if min_gap_fraction < 0:
            raise ValueError(f"min_gap_fraction must be non-negative, got {min_gap_fraction}")
        super().__init__(name, {"min_gap_fraction": min_gap_fraction})
        self.min_gap_fraction = min_gap_fraction

    def detect(self, series: Sequence[Candle]) -> List[GroundTruthItem]:
        n = len(series)
        if n < 3:
            return []

        arrays = series_arrays(series)
        highs, lows = arrays["high"], arrays["low"]
        min_size = self.min_gap_fraction * price_range(series)

        items: List[GroundTruthItem] = []
        for i in range(1, n - 1):
            if highs[i - 1] < lows[i + 1]:
                bias = GapBias.BULLISH
                top, bottom = float(lows[i + 1]), float(highs[i - 1])
                # Price later trades back down through the bottom of the gap
                filled = bool(n > i + 2 and lows[i + 2:].min() <= bottom)
            elif lows[i - 1] > highs[i + 1]:
                bias = GapBias.BEARISH
                top, bottom = float(lows[i - 1]), float(highs[i + 1])
                filled = bool(n > i + 2 and highs[i + 2:].max() >= top)
            else:
                continue

            size = top - bottom
            if min_size > 0 and size < min_size:
                continue

            items.append(GroundTruthItem(
                item_id=f"fvg-{bias.value}-{i - 1}-{i + 1}",
                tool=Tool.FVG,
                tag=bias,
                start_index=i - 1,
                end_index=i + 1,
                start_time=series[i - 1].timestamp,
                end_time=series[i + 1].timestamp,
                start_price=top,
                end_price=bottom,
                metadata={"size": size, "filled": filled},
            ))

        logger.debug(f"{self.name}: {len(items)} gaps in {n} candles")
        return items
