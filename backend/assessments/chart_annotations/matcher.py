"""
Annotation Matcher

Greedy, tolerance-based matching of learner annotations against detector
ground truth. Annotations are processed in submission order; each one claims
the nearest unclaimed ground-truth item within tolerance (ties go to the
earliest item). Unclaimed items are reported as missed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Union

import numpy as np

from backend.assessments.chart_annotations.annotation_config import ValidationSettings, get_validation_settings
from backend.assessments.chart_annotations.geometry import (
    SwingAnnotation, FibonacciAnnotation, FVGAnnotation, snap_to_index, index_overlap
)
from backend.assessments.chart_annotations.pattern_detection.interface import GroundTruthItem
from backend.assessments.chart_annotations.types import Tool, MatchStatus
from backend.common.logger import get_logger

logger = get_logger(__name__)

Annotation = Union[SwingAnnotation, FibonacciAnnotation, FVGAnnotation]


class Diagnostic(str, Enum):
    """Why an unmatched annotation is close to being right."""
    WRONG_SWING_KIND = "wrong_swing_kind"
    REVERSED_LEG = "reversed_leg"
    OPPOSITE_BIAS = "opposite_bias"


@dataclass(frozen=True)
class AnnotationVerdict:
    """Outcome for one learner annotation."""
    position: int
    annotation: Annotation
    status: MatchStatus
    matched_item: Optional[GroundTruthItem] = None
    diagnostic: Optional[Diagnostic] = None
    related_item: Optional[GroundTruthItem] = None

    @property
    def tag(self) -> Enum:
        """Kind, direction or bias the learner gave this annotation."""
        if isinstance(self.annotation, SwingAnnotation):
            return self.annotation.kind
        if isinstance(self.annotation, FibonacciAnnotation):
            return self.annotation.direction
        return self.annotation.bias

    @property
    def marker_id(self) -> str:
        return self.annotation.annotation_id or f"annotation-{self.position}"


@dataclass(frozen=True)
class MatchResult:
    """
    Result of matching one submission.

    Attributes:
        tool: Tool being scored
        ground_truth: Items scored against, in detector order
        verdicts: One verdict per annotation, in submission order
        matched: Ground-truth items claimed by an annotation, in detector order
        missed: Ground-truth items nobody claimed, in detector order
    """
    tool: Tool
    ground_truth: List[GroundTruthItem]
    verdicts: List[AnnotationVerdict]
    matched: List[GroundTruthItem] = field(default_factory=list)
    missed: List[GroundTruthItem] = field(default_factory=list)

    @property
    def score(self) -> int:
        return len(self.matched)

    @property
    def total(self) -> int:
        return len(self.ground_truth)

    @property
    def incorrect(self) -> List[AnnotationVerdict]:
        return [v for v in self.verdicts if v.status is MatchStatus.INCORRECT]

    def verdict_for(self, item: GroundTruthItem) -> Optional[AnnotationVerdict]:
        """Verdict of the annotation that claimed ``item``, if any."""
        for verdict in self.verdicts:
            if verdict.matched_item is item:
                return verdict
        return None


class AnnotationMatcher:
    """Matches annotations for one tool under a set of tolerances."""

    def __init__(self, validation_settings: Optional[ValidationSettings] = None):
        self.settings = validation_settings or get_validation_settings()

    # ------------------------------------------------------------------
    # Distances: None means "outside tolerance"
    # ------------------------------------------------------------------

    def _swing_distance(self, annotation: SwingAnnotation, item: GroundTruthItem,
                        timestamps: np.ndarray, check_tag: bool = True) -> Optional[float]:
        if check_tag and annotation.kind is not item.tag:
            return None
        distance = abs(snap_to_index(timestamps, annotation.point.timestamp) - item.start_index)
        return float(distance) if distance <= self.settings.swing_index_tolerance else None

    def _fib_distance(self, annotation: FibonacciAnnotation, item: GroundTruthItem,
                      timestamps: np.ndarray, reverse: bool = False) -> Optional[float]:
        start = snap_to_index(timestamps, annotation.start.timestamp)
        end = snap_to_index(timestamps, annotation.end.timestamp)
        if reverse:
            start, end = end, start
        elif annotation.direction is not item.tag:
            return None
        start_distance = abs(start - item.start_index)
        end_distance = abs(end - item.end_index)
        tolerance = self.settings.fib_index_tolerance
        if start_distance > tolerance or end_distance > tolerance:
            return None
        return float(start_distance + end_distance)

    def _fvg_distance(self, annotation: FVGAnnotation, item: GroundTruthItem,
                      timestamps: np.ndarray, check_tag: bool = True) -> Optional[float]:
        if check_tag and annotation.bias is not item.tag:
            return None
        zone = annotation.zone.resolve(timestamps)
        overlap = index_overlap(zone.start_index, zone.end_index, item.start_index, item.end_index)
        if overlap < self.settings.fvg_min_overlap:
            return None
        return 1.0 - overlap

    def distance(self, tool: Tool, annotation: Annotation, item: GroundTruthItem,
                 timestamps: np.ndarray) -> Optional[float]:
        """Distance between an annotation and a ground-truth item, or None if out of tolerance."""
        if tool is Tool.SWINGS:
            return self._swing_distance(annotation, item, timestamps)
        if tool is Tool.FIBONACCI:
            return self._fib_distance(annotation, item, timestamps)
        return self._fvg_distance(annotation, item, timestamps)

    def _diagnose(self, tool: Tool, annotation: Annotation, ground_truth: Sequence[GroundTruthItem],
                  timestamps: np.ndarray):
        """Find a near miss that explains an incorrect annotation."""
        for item in ground_truth:
            if tool is Tool.SWINGS:
                if item.tag is not annotation.kind and \
                        self._swing_distance(annotation, item, timestamps, check_tag=False) is not None:
                    return Diagnostic.WRONG_SWING_KIND, item
            elif tool is Tool.FIBONACCI:
                if self._fib_distance(annotation, item, timestamps, reverse=True) is not None:
                    return Diagnostic.REVERSED_LEG, item
            else:
                if item.tag is not annotation.bias and \
                        self._fvg_distance(annotation, item, timestamps, check_tag=False) is not None:
                    return Diagnostic.OPPOSITE_BIAS, item
        return None, None

    def match(
        self,
        tool: Tool,
        annotations: Sequence[Annotation],
        ground_truth: Sequence[GroundTruthItem],
        timestamps: np.ndarray,
        diagnostic_pool: Optional[Sequence[GroundTruthItem]] = None
    ) -> MatchResult:
        """
        Match annotations to ground truth.

        Args:
            tool: Tool whose annotations are being scored
            annotations: Learner annotations in submission order
            ground_truth: Detector output in detector order
            timestamps: Candle timestamps used to snap annotations to indices
            diagnostic_pool: Items searched for near misses on incorrect
                annotations (defaults to ``ground_truth``)

        Returns:
            MatchResult with verdicts, matched and missed items
        """
        if diagnostic_pool is None:
            diagnostic_pool = ground_truth
        claimed = [False] * len(ground_truth)
        verdicts: List[AnnotationVerdict] = []

        for position, annotation in enumerate(annotations):
            best_index = None
            best_distance = None
            for j, item in enumerate(ground_truth):
                if claimed[j]:
                    continue
                d = self.distance(tool, annotation, item, timestamps)
                if d is None:
                    continue
                # Strict comparison keeps the earliest item on ties
                if best_distance is None or d < best_distance:
                    best_index, best_distance = j, d

            if best_index is not None:
                claimed[best_index] = True
                verdicts.append(AnnotationVerdict(
                    position=position,
                    annotation=annotation,
                    status=MatchStatus.CORRECT,
                    matched_item=ground_truth[best_index]
                ))
                continue

            diagnostic, related = self._diagnose(tool, annotation, diagnostic_pool, timestamps)
            verdicts.append(AnnotationVerdict(
                position=position,
                annotation=annotation,
                status=MatchStatus.INCORRECT,
                diagnostic=diagnostic,
                related_item=related
            ))

        matched = [item for j, item in enumerate(ground_truth) if claimed[j]]
        missed = [item for j, item in enumerate(ground_truth) if not claimed[j]]

        logger.debug(
            f"Matched {len(matched)}/{len(ground_truth)} {tool.value} items "
            f"from {len(annotations)} annotations"
        )
        return MatchResult(
            tool=tool,
            ground_truth=list(ground_truth),
            verdicts=verdicts,
            matched=matched,
            missed=missed
        )
