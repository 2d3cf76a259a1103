"""
Tests for the ground-truth detectors.

This module covers:
1. Swing detection on a hand-built series, plateaus and short series
2. Fibonacci legs derived from alternating swings
3. Fair Value Gap detection, bias and the filled flag
4. Determinism of every detector
"""

import pytest

from backend.assessments.chart_annotations.annotation_config import ValidationSettings
from backend.assessments.chart_annotations.geometry import Candle
from backend.assessments.chart_annotations.pattern_detection import (
    SwingDetector,
    FibonacciDetector,
    FVGDetector,
    GroundTruthItem,
    compact_swings,
    create_detector,
    retracement_levels
)
from backend.assessments.chart_annotations.types import Tool, SwingKind, LegDirection, GapBias


# ============================================================================
# Swings
# ============================================================================

def test_swing_detection_finds_peaks_and_trough(swing_series):
    swings = SwingDetector(radius=3).detect(swing_series)

    assert [s.item_id for s in swings] == ["swing-high-4", "swing-low-8", "swing-high-11"]
    assert [s.tag for s in swings] == [SwingKind.HIGH, SwingKind.LOW, SwingKind.HIGH]
    assert swings[0].start_price == pytest.approx(15.5)
    assert swings[1].start_price == pytest.approx(8.5)
    assert swings[0].start_time == swing_series[4].timestamp


def test_series_shorter_than_window_has_no_swings(make_series):
    series = make_series([10, 12, 14, 12, 10, 11])
    assert SwingDetector(radius=3).detect(series) == []


def test_swings_only_confirmed_inside_radius(make_series):
    # The peak at index 1 cannot be confirmed with only one candle to its left
    series = make_series([10, 20, 12, 11, 10, 9, 8, 7])
    swings = SwingDetector(radius=3).detect(series)
    assert all(3 <= s.start_index < len(series) - 3 for s in swings)


def test_plateau_reports_single_swing(make_series):
    series = make_series([10, 11, 12, 15, 15, 12, 11, 10, 9])
    highs = [s for s in SwingDetector(radius=3).detect(series) if s.tag is SwingKind.HIGH]

    assert [s.start_index for s in highs] == [3]


def test_min_significance_filters_small_swings(make_series):
    series = make_series([10, 11, 12, 13, 14, 13, 12, 11, 10, 11, 12, 13, 12, 11, 10], wick=0.1)
    all_swings = SwingDetector(radius=3).detect(series)
    significant = SwingDetector(radius=3, min_significance=0.9).detect(series)

    assert len(all_swings) == 3
    assert significant == []


def test_swing_radius_must_be_positive():
    with pytest.raises(ValueError):
        SwingDetector(radius=0)


# ============================================================================
# Fibonacci
# ============================================================================

def test_fibonacci_legs_between_alternating_swings(swing_series):
    legs = FibonacciDetector(SwingDetector(radius=3)).detect(swing_series)

    assert [leg.item_id for leg in legs] == ["fib-down-4-8", "fib-up-8-11"]
    down, up = legs
    assert down.tag is LegDirection.DOWN
    assert (down.start_price, down.end_price) == (pytest.approx(15.5), pytest.approx(8.5))
    assert up.tag is LegDirection.UP
    assert up.metadata["levels"]["0.5"] == pytest.approx(11.5)


def test_compact_swings_keeps_most_extreme_of_a_run():
    def swing(index, kind, price):
        return GroundTruthItem(
            item_id=f"swing-{kind.value}-{index}", tool=Tool.SWINGS, tag=kind,
            start_index=index, end_index=index, start_time=index, end_time=index,
            start_price=price, end_price=price
        )

    swings = [
        swing(3, SwingKind.HIGH, 10.0),
        swing(6, SwingKind.HIGH, 12.0),
        swing(9, SwingKind.LOW, 5.0),
        swing(12, SwingKind.LOW, 5.0),
        swing(15, SwingKind.HIGH, 11.0),
    ]
    compacted = compact_swings(swings)

    assert [s.item_id for s in compacted] == ["swing-high-6", "swing-low-9", "swing-high-15"]


def test_retracement_levels_span_the_leg():
    levels = retracement_levels(100.0, 200.0)
    assert levels["0.0"] == pytest.approx(100.0)
    assert levels["0.618"] == pytest.approx(161.8)
    assert levels["1.0"] == pytest.approx(200.0)


# ============================================================================
# Fair Value Gaps
# ============================================================================

def test_fvg_detection_bias_and_zone(fvg_series):
    gaps = FVGDetector().detect(fvg_series)

    assert [g.item_id for g in gaps] == ["fvg-bullish-0-2", "fvg-bearish-3-5"]
    bullish, bearish = gaps
    assert bullish.tag is GapBias.BULLISH
    assert (bullish.start_price, bullish.end_price) == (11.0, 10.0)
    assert bearish.tag is GapBias.BEARISH
    assert (bearish.start_price, bearish.end_price) == (12.0, 11.0)


def test_fvg_filled_flag(fvg_series):
    bullish, bearish = FVGDetector().detect(fvg_series)

    assert bullish.metadata["filled"] is True
    assert bearish.metadata["filled"] is False


def test_monotonic_gapless_series_has_no_bullish_fvg(make_series):
    series = make_series([10 + i for i in range(20)])
    gaps = FVGDetector().detect(series)
    assert [g for g in gaps if g.tag is GapBias.BULLISH] == []


def test_fvg_needs_three_candles():
    candles = [
        Candle(timestamp=1, open=1.0, high=2.0, low=0.5, close=1.5),
        Candle(timestamp=2, open=3.0, high=4.0, low=2.5, close=3.5),
    ]
    assert FVGDetector().detect(candles) == []


def test_fvg_min_gap_fraction_drops_small_gaps(fvg_series):
    # Both gaps are 1.0 on a 5.0 price range
    assert FVGDetector(min_gap_fraction=0.25).detect(fvg_series) == []


def test_ground_truth_wire_shape(fvg_series):
    bullish = FVGDetector().detect(fvg_series)[0].to_dict()

    assert bullish["type"] == "bullish"
    assert bullish["startIndex"] == 0
    assert bullish["endIndex"] == 2
    assert bullish["topPrice"] == 11.0
    assert bullish["bottomPrice"] == 10.0
    assert bullish["filled"] is True


# ============================================================================
# Determinism and factory
# ============================================================================

@pytest.mark.parametrize("tool", list(Tool))
def test_detectors_are_deterministic(tool, swing_series):
    detector = create_detector(tool, ValidationSettings(swing_radius=3))
    assert detector.detect(swing_series) == detector.detect(list(swing_series))


def test_create_detector_uses_settings():
    detector = create_detector("swings", ValidationSettings(swing_radius=5))
    assert isinstance(detector, SwingDetector)
    assert detector.radius == 5
    assert detector.get_status()["tool"] == "swings"


def test_create_detector_rejects_unknown_tool():
    with pytest.raises(ValueError):
        create_detector("triangles")
