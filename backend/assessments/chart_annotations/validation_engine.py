"""
Chart Annotation Validation Engine

Single entry point that scores one practice submission: parses the series and
the learner's drawings, runs the detector for the tool, matches the drawings
against the ground truth and composes the feedback.

The engine is stateless and safe to call concurrently. Every problem on the
validate path comes back as a structured ``ValidationResult``; nothing is
raised past ``validate``.
"""

from typing import Any, List, Mapping, Optional, Sequence, Union

from backend.assessments.chart_annotations.annotation_config import ValidationSettings, get_validation_settings
from backend.assessments.chart_annotations.feedback import FeedbackComposer, ValidationResult
from backend.assessments.chart_annotations.geometry import (
    Candle, SwingAnnotation, FibonacciAnnotation, FVGAnnotation, candles_from_dicts, series_arrays, validate_series
)
from backend.assessments.chart_annotations.matcher import AnnotationMatcher, Annotation
from backend.assessments.chart_annotations.pattern_detection import create_detector
from backend.assessments.chart_annotations.types import Tool, VALID_PARTS, part_tag
from backend.common.error_handling import (
    ChartIQError, ErrorCode, InvalidToolStateError, convert_exception, log_error
)
from backend.common.logger import get_logger, log_execution_time

logger = get_logger(__name__)

# Markers the drawing surface sends instead of annotations to say "nothing here"
NO_PATTERN_FLAGS = ("no_patterns_found", "no_swings_found", "no_fibs_found", "no_fvgs_found")

_ANNOTATION_TYPES = {
    Tool.SWINGS: SwingAnnotation,
    Tool.FIBONACCI: FibonacciAnnotation,
    Tool.FVG: FVGAnnotation,
}

DrawingsInput = Union[Sequence[Any], Mapping[str, Sequence[Any]]]


def _is_no_patterns_marker(raw: Any) -> bool:
    return isinstance(raw, Mapping) and any(raw.get(flag) for flag in NO_PATTERN_FLAGS)


def parse_annotation(tool: Tool, raw: Any, default_part: Optional[int] = None) -> Annotation:
    """
    Build a typed annotation from its wire form.

    Already-typed annotations are returned unchanged. When the wire form has
    no direction/bias the tag of ``default_part`` is used.
    """
    annotation_type = _ANNOTATION_TYPES[tool]
    if isinstance(raw, annotation_type):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidToolStateError(
            f"Expected a {tool.item_noun} drawing, got {type(raw).__name__}",
            details={"tool": tool.value}
        )

    data = dict(raw)
    if tool.is_multi_part and default_part is not None:
        tag = part_tag(tool, default_part)
        tag_keys = ("direction",) if tool is Tool.FIBONACCI else ("bias", "type")
        if not any(data.get(key) for key in tag_keys):
            data[tag_keys[0]] = tag.value

    try:
        return annotation_type.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidToolStateError(
            f"Invalid {tool.item_noun} drawing: {e}",
            details={"tool": tool.value, "drawing": {k: str(v) for k, v in data.items()}}
        ) from e


def parse_drawings(tool: Tool, drawings: Optional[DrawingsInput], part: int, include_multi_part: bool = True):
    """
    Normalise the drawings of a submission.

    Accepts a flat list, or for multi-part tools a ``{"part1": [...],
    "part2": [...]}`` mapping (flattened part 1 first; only the active part
    when ``include_multi_part`` is off).

    Returns:
        Tuple of (annotations in submission order, "no patterns" marker seen)
    """
    if drawings is None:
        return [], False

    buckets: List[tuple] = []
    if isinstance(drawings, Mapping):
        for bucket_part in (VALID_PARTS if include_multi_part else (part,)):
            buckets.append((bucket_part, drawings.get(f"part{bucket_part}") or []))
    elif include_multi_part and tool is Tool.FIBONACCI:
        # Untagged legs in a flat list take their part from the slope
        buckets.append((None, drawings))
    else:
        buckets.append((part if tool.is_multi_part else None, drawings))

    annotations: List[Annotation] = []
    declared_none = False
    for bucket_part, items in buckets:
        for raw in items:
            if _is_no_patterns_marker(raw):
                declared_none = True
                continue
            annotations.append(parse_annotation(tool, raw, bucket_part))
    return annotations, declared_none


def parse_series(series: Sequence[Any]) -> List[Candle]:
    """Typed, validated candle series from candles or wire dictionaries."""
    if all(isinstance(c, Candle) for c in series):
        candles = list(series)
        validate_series(candles)
        return candles
    return candles_from_dicts([c.to_dict() if isinstance(c, Candle) else c for c in series])


class ValidationEngine:
    """
    Scores practice submissions.

    Args:
        validation_settings: Tolerances and thresholds; defaults to the
            configured ``ValidationSettings``
    """

    def __init__(self, validation_settings: Optional[ValidationSettings] = None):
        self.settings = validation_settings or get_validation_settings()
        self.matcher = AnnotationMatcher(self.settings)
        self.composer = FeedbackComposer(self.settings)

    def _check_request(self, tool: Tool, part: int, series: Sequence[Candle]) -> None:
        if not series:
            raise InvalidToolStateError("No chart data loaded", details={"tool": tool.value})
        if tool.is_multi_part and part not in VALID_PARTS:
            raise InvalidToolStateError(
                f"Invalid part {part} for {tool.value}; expected 1 or 2",
                details={"tool": tool.value, "part": part}
            )

    @log_execution_time(logger)
    def validate(
        self,
        tool: Union[str, Tool],
        part: int,
        drawings: Optional[DrawingsInput],
        series: Optional[Sequence[Any]],
        include_multi_part: bool = False,
        no_patterns_found: bool = False
    ) -> ValidationResult:
        """
        Score one submission.

        Args:
            tool: Drawing tool being validated
            part: Active part (1 = uptrend/bullish, 2 = downtrend/bearish); ignored for swings
            drawings: Learner annotations (typed or wire dictionaries)
            series: The OHLC candles shown to the learner
            include_multi_part: Score both parts together, associating drawings by their tag
            no_patterns_found: The learner explicitly answered "nothing to mark"

        Returns:
            ValidationResult; problems are reported through its ``error`` field
        """
        tool_value = tool.value if isinstance(tool, Tool) else tool
        resolved_tool: Optional[Tool] = None
        try:
            resolved_tool = tool if isinstance(tool, Tool) else Tool.from_string(str(tool))
            try:
                candles = parse_series(series or [])
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidToolStateError(f"Invalid chart data: {e}", details={"tool": resolved_tool.value}) from e
            self._check_request(resolved_tool, part, candles)

            annotations, marker_seen = parse_drawings(resolved_tool, drawings, part, include_multi_part)
            declared_none = (no_patterns_found or marker_seen) and not annotations

            ground_truth = create_detector(resolved_tool, self.settings).detect(candles)
            scored_truth = ground_truth
            if resolved_tool.is_multi_part and not include_multi_part:
                tag = part_tag(resolved_tool, part)
                scored_truth = [item for item in ground_truth if item.tag is tag]

            error = None
            if not annotations and not declared_none:
                error = ErrorCode.EMPTY_SUBMISSION

            match = self.matcher.match(
                resolved_tool,
                annotations,
                scored_truth,
                series_arrays(candles)["timestamp"],
                diagnostic_pool=ground_truth
            )
            result = self.composer.compose(match, no_patterns_declared=declared_none, error=error)

            logger.info(
                f"Validated {resolved_tool.value} part {part}: "
                f"{result.score}/{result.total_expected_points} ({result.percentage}%)"
            )
            return result

        except ChartIQError as e:
            log_error(e, context={"tool": tool_value, "part": part})
            return ValidationResult.rejected(e.code, e.message, resolved_tool)
        except ValueError as e:
            # Unknown tool name
            log_error(e, context={"tool": tool_value})
            return ValidationResult.rejected(ErrorCode.INVALID_TOOL_STATE, str(e), resolved_tool)
        except Exception as e:
            error = convert_exception(e, "Validation failed")
            log_error(error, include_stack_trace=True, context={"tool": tool_value, "part": part})
            return ValidationResult.rejected(error.code, "Validation failed", resolved_tool)


_default_engine: Optional[ValidationEngine] = None


def get_validation_engine() -> ValidationEngine:
    """Shared engine built from the configured settings."""
    global _default_engine
    if _default_engine is None:
        _default_engine = ValidationEngine()
    return _default_engine


def validate(
    tool: Union[str, Tool],
    part: int,
    drawings: Optional[DrawingsInput],
    series: Optional[Sequence[Any]],
    include_multi_part: bool = False,
    no_patterns_found: bool = False
) -> ValidationResult:
    """Module-level shortcut for ``get_validation_engine().validate``."""
    return get_validation_engine().validate(
        tool, part, drawings, series,
        include_multi_part=include_multi_part,
        no_patterns_found=no_patterns_found
    )
