"""
Feedback Composer

Turns a ``MatchResult`` into the immutable ``ValidationResult`` returned to the
learner: a percentage score, a summary message, overlay markers and ordered
feedback lines.

Feedback order:
1. correctly identified items (detector order)
2. missed items (detector order)
3. incorrect or extra annotations (submission order)
4. summary warnings
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from backend.assessments.chart_annotations.annotation_config import (
    ValidationSettings, get_validation_settings, score_label,
    GLYPH_CORRECT, GLYPH_INCORRECT, GLYPH_WARNING
)
from backend.assessments.chart_annotations.geometry import SwingAnnotation, FibonacciAnnotation
from backend.assessments.chart_annotations.matcher import MatchResult, AnnotationVerdict, Diagnostic
from backend.assessments.chart_annotations.pattern_detection.interface import GroundTruthItem
from backend.assessments.chart_annotations.types import Tool, MatchStatus
from backend.common.error_handling import ErrorCode
from backend.common.serialization import SerializableMixin


@dataclass(frozen=True)
class Marker(SerializableMixin):
    """Overlay colour for one ground-truth item or annotation."""
    marker_id: str
    status: MatchStatus

    __serializable_fields__ = ["marker_id", "status"]
    __field_aliases__ = {"marker_id": "id"}


@dataclass(frozen=True)
class ValidationResult(SerializableMixin):
    """Scored outcome of one submission."""
    score: int
    total_expected_points: int
    percentage: int
    message: str
    feedback: Tuple[str, ...] = ()
    correct_answers: Tuple[GroundTruthItem, ...] = ()
    markers: Tuple[Marker, ...] = ()
    error: Optional[str] = None
    tool: Optional[Tool] = None

    __serializable_fields__ = [
        "score", "total_expected_points", "percentage", "message", "feedback",
        "correct_answers", "markers", "error", "tool"
    ]
    __field_aliases__ = {
        "total_expected_points": "totalExpectedPoints",
        "correct_answers": "correctAnswers",
    }

    @classmethod
    def rejected(cls, code: ErrorCode, message: str, tool: Optional[Tool] = None) -> 'ValidationResult':
        """Structured result for a request the engine could not score."""
        return cls(
            score=0,
            total_expected_points=0,
            percentage=0,
            message=message,
            feedback=(f"{GLYPH_INCORRECT} {message}",),
            error=code.value,
            tool=tool
        )


def percentage_of(score: int, total: int) -> int:
    """100 * score / total rounded half up (integer arithmetic, no float drift)."""
    if total <= 0:
        return 0
    return (200 * score + total) // (2 * total)


def _fmt(price: float) -> str:
    return f"{price:.2f}"


def describe_item(item: GroundTruthItem) -> str:
    """Human-readable description of a ground-truth item."""
    if item.tool is Tool.SWINGS:
        return f"swing {item.tag.value} at {_fmt(item.start_price)}"
    if item.tool is Tool.FIBONACCI:
        return f"{item.tag.label.lower()} leg from {_fmt(item.start_price)} to {_fmt(item.end_price)}"
    text = f"{item.tag.value} FVG between {_fmt(item.end_price)} and {_fmt(item.start_price)}"
    if item.metadata.get("filled"):
        text += " (filled)"
    return text


def describe_annotation(verdict: AnnotationVerdict) -> str:
    """Human-readable description of what the learner drew."""
    annotation = verdict.annotation
    if isinstance(annotation, SwingAnnotation):
        return f"swing {annotation.kind.value} near {_fmt(annotation.point.price)}"
    if isinstance(annotation, FibonacciAnnotation):
        return (f"{annotation.direction.label.lower()} leg from {_fmt(annotation.start.price)} "
                f"to {_fmt(annotation.end.price)}")
    zone = annotation.zone
    return f"{annotation.bias.value} FVG between {_fmt(zone.bottom_price)} and {_fmt(zone.top_price)}"


class FeedbackComposer:
    """Builds ``ValidationResult`` objects from match results."""

    def __init__(self, validation_settings: Optional[ValidationSettings] = None):
        self.settings = validation_settings or get_validation_settings()

    def _line(self, glyph: str, tool: Tool, tag: Optional[Enum], text: str) -> str:
        if tool.is_multi_part and tag is not None:
            return f"{glyph} [{tag.label}] {text}"
        return f"{glyph} {text}"

    def _incorrect_line(self, tool: Tool, verdict: AnnotationVerdict) -> str:
        drawn = describe_annotation(verdict)
        related = verdict.related_item

        if verdict.diagnostic is Diagnostic.WRONG_SWING_KIND:
            return self._line(
                GLYPH_WARNING, tool, None,
                f"Marked a swing {verdict.tag.value} but this is a swing {related.tag.value} "
                f"at {_fmt(related.start_price)}"
            )
        if verdict.diagnostic is Diagnostic.REVERSED_LEG:
            return self._line(
                GLYPH_WARNING, tool, verdict.tag,
                f"Leg direction reversed: draw the {describe_item(related)}"
            )
        if verdict.diagnostic is Diagnostic.OPPOSITE_BIAS:
            return self._line(
                GLYPH_WARNING, tool, verdict.tag,
                f"Gap is {related.tag.value}, not {verdict.tag.value}: {describe_item(related)}"
            )

        if tool is Tool.SWINGS:
            text = f"No swing {verdict.tag.value} near {_fmt(verdict.annotation.point.price)}"
        else:
            text = f"No matching {tool.item_noun} for the {drawn}"
        return self._line(GLYPH_INCORRECT, tool, verdict.tag, text)

    def _markers(self, match: MatchResult) -> Tuple[Marker, ...]:
        claimed = {id(item) for item in match.matched}
        markers = [
            Marker(item.item_id, MatchStatus.CORRECT if id(item) in claimed else MatchStatus.MISSED)
            for item in match.ground_truth
        ]
        markers.extend(Marker(v.marker_id, v.status) for v in match.verdicts)
        return tuple(markers)

    def compose(
        self,
        match: MatchResult,
        no_patterns_declared: bool = False,
        error: Optional[ErrorCode] = None
    ) -> ValidationResult:
        """
        Compose the result of one submission.

        Args:
            match: Matcher output
            no_patterns_declared: The learner explicitly stated there is nothing to mark
            error: Error code to carry on an otherwise scored result

        Returns:
            The immutable validation result
        """
        tool = match.tool
        noun = tool.noun
        total = match.total
        score = match.score
        submitted = len(match.verdicts)
        feedback: List[str] = []

        # Explicit "nothing here" on a chart that truly has nothing
        if total == 0 and submitted == 0 and no_patterns_declared:
            label = score_label(100, self.settings)
            return ValidationResult(
                score=0,
                total_expected_points=0,
                percentage=100,
                message=f"{label}! Correctly identified that this chart has no {noun}.",
                feedback=(f"{GLYPH_CORRECT} Correctly identified that no {noun} exist",),
                error=error.value if error else None,
                tool=tool
            )

        for item in match.matched:
            feedback.append(self._line(GLYPH_CORRECT, tool, item.tag, f"Correctly identified {describe_item(item)}"))
        for item in match.missed:
            feedback.append(self._line(GLYPH_WARNING, tool, item.tag, f"Missed {describe_item(item)}"))
        for verdict in match.incorrect:
            feedback.append(self._incorrect_line(tool, verdict))

        if no_patterns_declared and total > 0:
            feedback.append(
                f"{GLYPH_INCORRECT} Declared no {noun}, but this chart has {total}"
            )
        if total == 0 and submitted > 0:
            error = error or ErrorCode.SCORING_AMBIGUITY
            feedback.append(f"{GLYPH_WARNING} This chart has no {noun}, so none of your annotations can match")
        elif total > 0 and submitted > total:
            feedback.append(f"{GLYPH_WARNING} You marked {submitted} {noun} but only {total} were expected")

        percentage = percentage_of(score, total)
        label = score_label(percentage, self.settings)
        message = f"{label}! You correctly identified {score} of {total} {noun}."

        return ValidationResult(
            score=score,
            total_expected_points=total,
            percentage=percentage,
            message=message,
            feedback=tuple(feedback),
            correct_answers=tuple(match.ground_truth),
            markers=self._markers(match),
            error=error.value if error else None,
            tool=tool
        )
