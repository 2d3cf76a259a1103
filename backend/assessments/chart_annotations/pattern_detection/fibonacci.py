"""
Fibonacci leg detection.

Legs are built from confirmed swings: the swings are compacted into a strictly
alternating high/low sequence and every adjacent low->high pair becomes an up
leg, every high->low pair a down leg.
"""

from typing import Dict, List, Optional, Sequence

from backend.assessments.chart_annotations.annotation_config import FIB_RETRACEMENT_RATIOS
from backend.assessments.chart_annotations.geometry import Candle
from backend.assessments.chart_annotations.pattern_detection.interface import PatternDetector, GroundTruthItem
from backend.assessments.chart_annotations.pattern_detection.swing import SwingDetector
from backend.assessments.chart_annotations.types import Tool, SwingKind, LegDirection
from backend.common.logger import get_logger

logger = get_logger(__name__)


def retracement_levels(start_price: float, end_price: float) -> Dict[str, float]:
    """Price of each retracement ratio between two leg endpoints, keyed by ratio."""
    move = end_price - start_price
    return {str(ratio): start_price + move * ratio for ratio in FIB_RETRACEMENT_RATIOS}


def compact_swings(swings: List[GroundTruthItem]) -> List[GroundTruthItem]:
    """
    Reduce swings to a strictly alternating sequence.

    A run of same-kind swings keeps its most extreme member (highest high,
    lowest low); ties keep the earliest.
    """
    ordered = sorted(swings, key=lambda s: (s.start_index, 0 if s.tag is SwingKind.HIGH else 1))
    compacted: List[GroundTruthItem] = []
    for swing in ordered:
        if compacted and compacted[-1].tag is swing.tag:
            kept = compacted[-1]
            if swing.tag is SwingKind.HIGH and swing.start_price > kept.start_price:
                compacted[-1] = swing
            elif swing.tag is SwingKind.LOW and swing.start_price < kept.start_price:
                compacted[-1] = swing
            continue
        compacted.append(swing)
    return compacted


class FibonacciDetector(PatternDetector):
    """Derives Fibonacci legs between consecutive confirmed swings."""

    tool = Tool.FIBONACCI

    def __init__(self, swing_detector: Optional[SwingDetector] = None, name: str = "FibonacciDetector"):
        self.swing_detector = swing_detector or SwingDetector()
        super().__init__(name, {"radius": self.swing_detector.radius})

    def detect(self, series: Sequence[Candle]) -> List[GroundTruthItem]:
        swings = compact_swings(self.swing_detector.detect(series))

        legs: List[GroundTruthItem] = []
        for start, end in zip(swings, swings[1:]):
            if start.start_index == end.start_index:
                continue

            if start.tag is SwingKind.LOW and end.start_price > start.start_price:
                direction = LegDirection.UP
            elif start.tag is SwingKind.HIGH and end.start_price < start.start_price:
                direction = LegDirection.DOWN
            else:
                continue

            legs.append(GroundTruthItem(
                item_id=f"fib-{direction.value}-{start.start_index}-{end.start_index}",
                tool=Tool.FIBONACCI,
                tag=direction,
                start_index=start.start_index,
                end_index=end.start_index,
                start_time=start.start_time,
                end_time=end.start_time,
                start_price=start.start_price,
                end_price=end.start_price,
                metadata={"levels": retracement_levels(start.start_price, end.start_price)},
            ))

        logger.debug(f"{self.name}: {len(legs)} legs from {len(swings)} alternating swings")
        return legs
