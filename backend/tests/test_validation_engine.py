"""
Tests for the validation engine and feedback composition.

This module contains tests focusing on:
1. Scoring a submission end to end from wire dictionaries
2. Empty submissions and explicit "no patterns" answers
3. Multi-part tools (Fibonacci uptrend/downtrend, FVG bullish/bearish)
4. Structured errors for requests that cannot be scored
"""

import pytest

from backend.assessments.chart_annotations.annotation_config import ValidationSettings, score_label
from backend.assessments.chart_annotations.feedback import percentage_of
from backend.assessments.chart_annotations.validation_engine import ValidationEngine, parse_drawings
from backend.assessments.chart_annotations.types import Tool


@pytest.fixture
def engine():
    return ValidationEngine(ValidationSettings(
        swing_radius=3,
        swing_index_tolerance=2,
        fib_index_tolerance=2,
        fvg_min_overlap=0.5,
        excellent_threshold=80,
        good_threshold=60
    ))


@pytest.fixture
def swing_drawings(swing_series):
    return [
        {"time": swing_series[4].timestamp, "price": 15.5, "type": "high"},
        {"time": swing_series[8].timestamp, "price": 8.5, "type": "low"},
        {"time": swing_series[11].timestamp, "price": 14.5, "type": "high"},
    ]


def _leg(ts, start, end, start_price, end_price, **extra):
    drawing = {"start": {"time": ts(start), "price": start_price}, "end": {"time": ts(end), "price": end_price}}
    drawing.update(extra)
    return drawing


# ============================================================================
# Score arithmetic
# ============================================================================

def test_percentage_rounds_half_up():
    assert percentage_of(1, 3) == 33
    assert percentage_of(2, 3) == 67
    assert percentage_of(1, 8) == 13
    assert percentage_of(0, 0) == 0


def test_score_label_thresholds():
    settings = ValidationSettings(excellent_threshold=80, good_threshold=60)
    assert score_label(80, settings) == "Excellent work"
    assert score_label(60, settings) == "Good effort"
    assert score_label(59, settings) == "Needs improvement"


# ============================================================================
# Swings
# ============================================================================

def test_submitting_ground_truth_scores_full_marks(engine, swing_series, swing_drawings):
    result = engine.validate("swings", 1, swing_drawings, swing_series)

    assert result.score == 3
    assert result.total_expected_points == 3
    assert result.percentage == 100
    assert result.error is None
    assert result.message == "Excellent work! You correctly identified 3 of 3 swing points."
    assert len(result.correct_answers) == 3
    assert not any(line.startswith("✗") for line in result.feedback)
    assert all(line.startswith("✓") for line in result.feedback)


def test_partial_submission_lists_missed_items(engine, swing_series, swing_drawings):
    result = engine.validate("swings", 1, swing_drawings[:2], swing_series)

    assert result.score == 2
    assert result.percentage == 67
    assert result.message.startswith("Good effort!")
    assert result.feedback[-1] == "⚠ Missed swing high at 14.50"


def test_empty_submission_reports_every_item_missed(engine, swing_series):
    result = engine.validate("swings", 1, [], swing_series)

    assert result.error == "EmptySubmission"
    assert result.percentage == 0
    assert result.total_expected_points == 3
    assert len([line for line in result.feedback if line.startswith("⚠ Missed")]) == 3


def test_wrong_kind_feedback(engine, swing_series):
    drawings = [{"time": swing_series[4].timestamp, "price": 15.5, "type": "low"}]
    result = engine.validate("swings", 1, drawings, swing_series)

    assert result.score == 0
    assert "⚠ Marked a swing low but this is a swing high at 15.50" in result.feedback


def test_extra_annotations_warn(engine, swing_series, swing_drawings):
    extra = swing_drawings + [{"time": swing_series[1].timestamp, "price": 12.0, "type": "low"}]
    result = engine.validate("swings", 1, extra, swing_series)

    assert result.score == 3
    assert result.feedback[-1] == "⚠ You marked 4 swing points but only 3 were expected"
    assert any(line.startswith("✗ No swing low near") for line in result.feedback)


def test_revalidation_is_idempotent(engine, swing_series, swing_drawings):
    first = engine.validate("swings", 1, swing_drawings[:1], swing_series)
    second = engine.validate("swings", 1, swing_drawings[:1], swing_series)

    assert first.to_dict() == second.to_dict()


def test_markers_cover_truth_and_annotations(engine, swing_series, swing_drawings):
    drawings = [dict(swing_drawings[0], id="mine")]
    result = engine.validate("swings", 1, drawings, swing_series).to_dict()

    markers = {m["id"]: m["status"] for m in result["markers"]}
    assert markers["swing-high-4"] == "correct"
    assert markers["swing-low-8"] == "missed"
    assert markers["mine"] == "correct"


# ============================================================================
# "No patterns" answers
# ============================================================================

def test_no_patterns_on_empty_chart_scores_full(engine, make_series):
    series = make_series([10, 12, 14, 12, 10, 11])
    result = engine.validate("swings", 1, [], series, no_patterns_found=True)

    assert result.percentage == 100
    assert result.score == 0
    assert result.total_expected_points == 0
    assert result.error is None
    assert result.feedback == ("✓ Correctly identified that no swing points exist",)


def test_no_patterns_marker_in_drawings(engine, make_series):
    series = make_series([10, 12, 14, 12, 10, 11])
    result = engine.validate("swings", 1, [{"no_swings_found": True}], series)

    assert result.percentage == 100


def test_no_patterns_declared_when_items_exist(engine, swing_series):
    result = engine.validate("swings", 1, [], swing_series, no_patterns_found=True)

    assert result.percentage == 0
    assert result.error is None
    assert "✗ Declared no swing points, but this chart has 3" in result.feedback


def test_annotations_on_empty_chart_are_ambiguous(engine, make_series, ts):
    series = make_series([10, 12, 14, 12, 10, 11])
    result = engine.validate("swings", 1, [{"time": ts(2), "price": 15.5, "type": "high"}], series)

    assert result.error == "ScoringAmbiguity"
    assert result.percentage == 0
    assert result.feedback[-1] == "⚠ This chart has no swing points, so none of your annotations can match"


# ============================================================================
# Multi-part tools
# ============================================================================

def test_fib_part_scores_only_its_direction(engine, swing_series, ts):
    drawings = [_leg(ts, 8, 11, 8.5, 14.5)]
    result = engine.validate("fibonacci", 1, drawings, swing_series)

    assert result.score == 1
    assert result.total_expected_points == 1
    assert result.feedback[0].startswith("✓ [Uptrend]")


def test_fib_both_parts_together(engine, swing_series, ts):
    drawings = {
        "part1": [_leg(ts, 8, 11, 8.5, 14.5)],
        "part2": [_leg(ts, 4, 8, 15.5, 8.5)],
    }
    result = engine.validate("fibonacci", 1, drawings, swing_series, include_multi_part=True)

    assert result.score == 2
    assert result.total_expected_points == 2
    assert result.percentage == 100


def test_fib_mapping_without_multi_part_uses_active_part(engine, swing_series, ts):
    drawings = {
        "part1": [_leg(ts, 8, 11, 8.5, 14.5)],
        "part2": [_leg(ts, 4, 8, 15.5, 8.5)],
    }
    result = engine.validate("fibonacci", 2, drawings, swing_series)

    assert result.score == 1
    assert result.total_expected_points == 1
    assert result.feedback[0].startswith("✓ [Downtrend]")


def test_reversed_leg_feedback(engine, swing_series, ts):
    drawings = [_leg(ts, 8, 4, 8.5, 15.5, direction="uptrend")]
    result = engine.validate("fibonacci", 1, drawings, swing_series)

    assert result.score == 0
    assert any(line.startswith("⚠ [Uptrend] Leg direction reversed") for line in result.feedback)


def test_fvg_both_parts(engine, fvg_series, ts):
    drawings = {
        "part1": [{"startTime": ts(0), "endTime": ts(2), "topPrice": 11, "bottomPrice": 10}],
        "part2": [{"startTime": ts(3), "endTime": ts(5), "topPrice": 12, "bottomPrice": 11}],
    }
    result = engine.validate("fvg", 1, drawings, fvg_series, include_multi_part=True)

    assert result.score == 2
    assert result.message == "Excellent work! You correctly identified 2 of 2 Fair Value Gaps."
    assert "✓ [Bullish] Correctly identified bullish FVG between 10.00 and 11.00 (filled)" in result.feedback


def test_parse_drawings_fills_part_tag():
    drawings = {"part2": [{"startIndex": 3, "endIndex": 5, "topPrice": 12, "bottomPrice": 11}]}
    annotations, declared = parse_drawings(Tool.FVG, drawings, 2, include_multi_part=False)

    assert declared is False
    assert annotations[0].bias.value == "bearish"


def test_flat_multi_part_legs_take_part_from_slope(engine, swing_series, ts):
    drawings = [_leg(ts, 8, 11, 8.5, 14.5), _leg(ts, 4, 8, 15.5, 8.5)]

    annotations, _ = parse_drawings(Tool.FIBONACCI, drawings, 1, include_multi_part=True)
    assert [a.direction.value for a in annotations] == ["up", "down"]

    result = engine.validate("fibonacci", 1, drawings, swing_series, include_multi_part=True)
    assert (result.score, result.total_expected_points) == (2, 2)
    assert not any(line.startswith("✗") for line in result.feedback)


# ============================================================================
# Requests that cannot be scored
# ============================================================================

def test_unknown_tool_is_invalid_tool_state(engine, swing_series):
    result = engine.validate("triangles", 1, [], swing_series)

    assert result.error == "InvalidToolState"
    assert result.percentage == 0
    assert result.feedback[0].startswith("✗")


def test_invalid_part_is_invalid_tool_state(engine, fvg_series):
    result = engine.validate("fvg", 3, [], fvg_series)
    assert result.error == "InvalidToolState"


def test_missing_chart_data_is_invalid_tool_state(engine, swing_drawings):
    result = engine.validate("swings", 1, swing_drawings, [])
    assert result.error == "InvalidToolState"
    assert result.message == "No chart data loaded"


def test_malformed_drawing_is_invalid_tool_state(engine, swing_series):
    result = engine.validate("swings", 1, [{"price": 10.0}], swing_series)
    assert result.error == "InvalidToolState"


def test_unordered_series_is_invalid_tool_state(engine, chart_rows, swing_drawings):
    result = engine.validate("swings", 1, swing_drawings, list(reversed(chart_rows)))
    assert result.error == "InvalidToolState"
