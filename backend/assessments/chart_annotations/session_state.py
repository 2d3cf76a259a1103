"""
Practice Session State Machine

The practice session is modelled as immutable ``SessionState`` values and a
single pure ``transition(state, event) -> state`` function. Side effects the
session needs (fetching a chart, validating drawings, clearing overlays) are
never performed here: a transition that needs one puts a command on the new
state's ``outbox`` and the session controller executes it.

Lifecycle::

    Idle -> AssetSelected -> ChartLoading -> ChartReady -> Drawing
         -> Validating -> ResultsShown -> (TryAgain) -> Drawing

Fetch and validate requests carry increasing request ids; completions whose id
is not the one the state is waiting for are stale and ignored.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

from backend.assessments.chart_annotations.annotation_config import (
    DEFAULT_TIMEFRAME, asset_type_for
)
from backend.assessments.chart_annotations.feedback import ValidationResult
from backend.assessments.chart_annotations.geometry import (
    Candle, SwingAnnotation, FibonacciAnnotation, FVGAnnotation
)
from backend.assessments.chart_annotations.types import Tool, VALID_PARTS
from backend.common.error_handling import (
    EmptySubmissionError, InvalidToolStateError, InvalidTransitionError
)
from backend.common.logger import get_logger

logger = get_logger(__name__)

Annotation = Union[SwingAnnotation, FibonacciAnnotation, FVGAnnotation]
Bucket = Tuple[Annotation, ...]


class SessionStatus(str, Enum):
    """Where the learner is in the practice loop."""
    IDLE = "idle"
    ASSET_SELECTED = "asset_selected"
    CHART_LOADING = "chart_loading"
    CHART_READY = "chart_ready"
    DRAWING = "drawing"
    VALIDATING = "validating"
    RESULTS_SHOWN = "results_shown"


LOADING_STATUSES = (SessionStatus.ASSET_SELECTED, SessionStatus.CHART_LOADING)
EDITABLE_STATUSES = (SessionStatus.CHART_READY, SessionStatus.DRAWING)


@dataclass(frozen=True)
class DrawingsState:
    """
    Per-tool drawing buckets.

    Swings are a single list; Fibonacci and FVG keep one list per part
    (part 1 = uptrend/bullish, part 2 = downtrend/bearish).
    """
    swings: Bucket = ()
    fibonacci: Tuple[Bucket, Bucket] = ((), ())
    fvg: Tuple[Bucket, Bucket] = ((), ())

    def bucket(self, tool: Tool, part: int = 1) -> Bucket:
        if tool is Tool.SWINGS:
            return self.swings
        return getattr(self, tool.value)[part - 1]

    def with_bucket(self, tool: Tool, part: int, items: Bucket) -> 'DrawingsState':
        if tool is Tool.SWINGS:
            return replace(self, swings=tuple(items))
        parts = list(getattr(self, tool.value))
        parts[part - 1] = tuple(items)
        return replace(self, **{tool.value: tuple(parts)})

    def combined(self, tool: Tool) -> Bucket:
        """Every annotation of ``tool``, part 1 first."""
        if tool is Tool.SWINGS:
            return self.swings
        part1, part2 = getattr(self, tool.value)
        return part1 + part2

    def count(self, tool: Tool) -> int:
        return len(self.combined(tool))

    def submission(self, tool: Tool) -> Union[Bucket, Dict[str, Bucket]]:
        """Drawings in the shape the validation engine accepts."""
        if tool is Tool.SWINGS:
            return self.swings
        part1, part2 = getattr(self, tool.value)
        return {"part1": part1, "part2": part2}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "swings": [a.to_dict() for a in self.swings],
            "fibonacci": {f"part{i + 1}": [a.to_dict() for a in p] for i, p in enumerate(self.fibonacci)},
            "fvg": {f"part{i + 1}": [a.to_dict() for a in p] for i, p in enumerate(self.fvg)},
        }


# ============================================================================
# Commands (outbox)
# ============================================================================

@dataclass(frozen=True)
class FetchChart:
    request_id: int
    asset: str
    asset_type: str
    timeframe: str


@dataclass(frozen=True)
class ValidateDrawings:
    request_id: int
    tool: Tool
    part: int
    drawings: Any
    series: Tuple[Candle, ...]
    include_multi_part: bool
    no_patterns_found: bool


@dataclass(frozen=True)
class ClearOverlays:
    """Tell the rendering surface to drop drawn shapes and result markers."""


Command = Union[FetchChart, ValidateDrawings, ClearOverlays]


# ============================================================================
# Events
# ============================================================================

@dataclass(frozen=True)
class SelectAsset:
    asset: str
    asset_type: Optional[str] = None


@dataclass(frozen=True)
class ChangeTimeframe:
    timeframe: str


@dataclass(frozen=True)
class FetchStarted:
    request_id: int


@dataclass(frozen=True)
class ChartLoaded:
    request_id: int
    candles: Tuple[Candle, ...]


@dataclass(frozen=True)
class ChartLoadFailed:
    request_id: int
    message: str


@dataclass(frozen=True)
class SelectTool:
    tool: Tool


@dataclass(frozen=True)
class SelectPart:
    part: int


@dataclass(frozen=True)
class AddAnnotation:
    annotation: Annotation


@dataclass(frozen=True)
class UpdateDrawings:
    """Replace the active bucket with what the drawing surface currently shows."""
    annotations: Bucket


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class DeclareNoPatterns:
    pass


@dataclass(frozen=True)
class Submit:
    include_multi_part: Optional[bool] = None


@dataclass(frozen=True)
class ValidationSucceeded:
    request_id: int
    result: ValidationResult


@dataclass(frozen=True)
class ValidationFailed:
    request_id: int
    message: str


@dataclass(frozen=True)
class DismissOverlay:
    pass


@dataclass(frozen=True)
class TryAgain:
    pass


Event = Union[
    SelectAsset, ChangeTimeframe, FetchStarted, ChartLoaded, ChartLoadFailed, SelectTool, SelectPart,
    AddAnnotation, UpdateDrawings, Clear, DeclareNoPatterns, Submit, ValidationSucceeded,
    ValidationFailed, DismissOverlay, TryAgain
]


@dataclass(frozen=True)
class SessionState:
    """One immutable snapshot of a practice session."""
    status: SessionStatus = SessionStatus.IDLE
    asset: Optional[str] = None
    asset_type: Optional[str] = None
    timeframe: str = DEFAULT_TIMEFRAME
    tool: Tool = Tool.SWINGS
    active_part: int = 1
    drawings: DrawingsState = field(default_factory=DrawingsState)
    candles: Tuple[Candle, ...] = ()
    result: Optional[ValidationResult] = None
    overlay_visible: bool = False
    no_patterns_declared: bool = False
    message: Optional[str] = None
    request_counter: int = 0
    fetch_request_id: Optional[int] = None
    validate_request_id: Optional[int] = None
    rollback: Optional['SessionState'] = None
    outbox: Tuple[Command, ...] = ()

    @property
    def chart_loaded(self) -> bool:
        return bool(self.candles) and self.status not in LOADING_STATUSES

    @property
    def active_bucket(self) -> Bucket:
        return self.drawings.bucket(self.tool, self.active_part)

    def settled_status(self) -> SessionStatus:
        """Status a session with a loaded chart rests in."""
        if self.result is not None:
            return SessionStatus.RESULTS_SHOWN
        if self.drawings.count(self.tool) > 0:
            return SessionStatus.DRAWING
        return SessionStatus.CHART_READY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "asset": self.asset,
            "assetType": self.asset_type,
            "timeframe": self.timeframe,
            "tool": self.tool.value,
            "activePart": self.active_part,
            "drawings": self.drawings.to_dict(),
            "candleCount": len(self.candles),
            "result": self.result.to_dict() if self.result else None,
            "overlayVisible": self.overlay_visible,
            "noPatternsDeclared": self.no_patterns_declared,
            "message": self.message,
        }


def _illegal(state: SessionState, event: Event) -> InvalidTransitionError:
    return InvalidTransitionError(state.status.value, type(event).__name__)


def _require(state: SessionState, event: Event, *statuses: SessionStatus) -> None:
    if state.status not in statuses:
        raise _illegal(state, event)


def _snapshot(state: SessionState) -> SessionState:
    """State to restore if the fetch being started fails."""
    if state.status in LOADING_STATUSES and state.rollback is not None:
        return state.rollback
    snapshot = replace(state, outbox=(), rollback=None, validate_request_id=None)
    if state.status is SessionStatus.VALIDATING:
        # The pending validation is abandoned by the fetch
        return replace(snapshot, status=snapshot.settled_status())
    return snapshot


def _start_fetch(state: SessionState, **changes) -> SessionState:
    request_id = state.request_counter + 1
    new_state = replace(
        state,
        request_counter=request_id,
        fetch_request_id=request_id,
        validate_request_id=None,
        candles=(),
        message=None,
        rollback=_snapshot(state),
        **changes
    )
    command = FetchChart(request_id, new_state.asset, new_state.asset_type, new_state.timeframe)
    return replace(new_state, outbox=new_state.outbox + (command,))


# ============================================================================
# Handlers
# ============================================================================

def _on_select_asset(state: SessionState, event: SelectAsset) -> SessionState:
    asset = event.asset.lower()
    return _start_fetch(
        state,
        status=SessionStatus.ASSET_SELECTED,
        asset=asset,
        asset_type=event.asset_type or asset_type_for(asset),
        drawings=DrawingsState(),
        result=None,
        overlay_visible=False,
        no_patterns_declared=False,
        outbox=(ClearOverlays(),)
    )


def _on_change_timeframe(state: SessionState, event: ChangeTimeframe) -> SessionState:
    if state.asset is None:
        raise _illegal(state, event)
    # Drawings and any existing result survive a timeframe change
    return _start_fetch(state, status=SessionStatus.CHART_LOADING, timeframe=event.timeframe)


def _on_fetch_started(state: SessionState, event: FetchStarted) -> SessionState:
    if event.request_id != state.fetch_request_id:
        return state
    _require(state, event, *LOADING_STATUSES)
    return replace(state, status=SessionStatus.CHART_LOADING)


def _on_chart_loaded(state: SessionState, event: ChartLoaded) -> SessionState:
    if event.request_id != state.fetch_request_id:
        logger.debug(f"Ignoring stale chart for request {event.request_id}")
        return state
    _require(state, event, *LOADING_STATUSES)
    loaded = replace(
        state,
        candles=tuple(event.candles),
        fetch_request_id=None,
        rollback=None,
        message=None
    )
    return replace(loaded, status=loaded.settled_status())


def _on_chart_load_failed(state: SessionState, event: ChartLoadFailed) -> SessionState:
    if event.request_id != state.fetch_request_id:
        return state
    _require(state, event, *LOADING_STATUSES)
    previous = state.rollback or SessionState()
    return replace(previous, message=event.message, request_counter=state.request_counter, outbox=())


def _with_tool(state: SessionState, tool: Tool) -> SessionState:
    """Switch tools, dropping every tool's drawings and the result."""
    cleared = replace(
        state,
        tool=tool,
        active_part=1,
        drawings=DrawingsState(),
        result=None,
        overlay_visible=False,
        no_patterns_declared=False,
        validate_request_id=None
    )
    if cleared.status in LOADING_STATUSES or cleared.status is SessionStatus.IDLE:
        return cleared
    return replace(cleared, status=cleared.settled_status())


def _on_select_tool(state: SessionState, event: SelectTool) -> SessionState:
    tool = Tool.from_string(event.tool) if not isinstance(event.tool, Tool) else event.tool
    if tool is state.tool:
        return state
    cleared = replace(_with_tool(state, tool), message=None, outbox=(ClearOverlays(),))
    if state.rollback is not None:
        # A failed fetch must not bring back the previous tool's drawings
        cleared = replace(cleared, rollback=_with_tool(state.rollback, tool))
    return cleared


def _on_select_part(state: SessionState, event: SelectPart) -> SessionState:
    if not state.tool.is_multi_part:
        raise _illegal(state, event)
    if event.part not in VALID_PARTS:
        raise InvalidToolStateError(
            f"Invalid part {event.part} for {state.tool.value}; expected 1 or 2",
            details={"tool": state.tool.value, "part": event.part}
        )
    return replace(state, active_part=event.part)


def _on_add_annotation(state: SessionState, event: AddAnnotation) -> SessionState:
    _require(state, event, *EDITABLE_STATUSES)
    bucket = state.active_bucket + (event.annotation,)
    return replace(
        state,
        status=SessionStatus.DRAWING,
        drawings=state.drawings.with_bucket(state.tool, state.active_part, bucket),
        no_patterns_declared=False,
        message=None
    )


def _on_update_drawings(state: SessionState, event: UpdateDrawings) -> SessionState:
    _require(state, event, *EDITABLE_STATUSES)
    updated = replace(
        state,
        drawings=state.drawings.with_bucket(state.tool, state.active_part, tuple(event.annotations)),
        no_patterns_declared=state.no_patterns_declared and not event.annotations,
        message=None
    )
    return replace(updated, status=updated.settled_status())


def _clear_active(state: SessionState) -> SessionState:
    """Empty the active bucket (all swings for the swings tool) and drop the result."""
    return replace(
        state,
        drawings=state.drawings.with_bucket(state.tool, state.active_part, ()),
        result=None,
        overlay_visible=False,
        no_patterns_declared=False,
        message=None,
        outbox=(ClearOverlays(),)
    )


def _on_clear(state: SessionState, event: Clear) -> SessionState:
    _require(state, event, SessionStatus.CHART_READY, SessionStatus.DRAWING, SessionStatus.RESULTS_SHOWN)
    cleared = _clear_active(state)
    return replace(cleared, status=cleared.settled_status())


def _on_declare_no_patterns(state: SessionState, event: DeclareNoPatterns) -> SessionState:
    _require(state, event, *EDITABLE_STATUSES)
    return replace(state, no_patterns_declared=True, message=None)


def _on_submit(state: SessionState, event: Submit) -> SessionState:
    if state.status is SessionStatus.VALIDATING:
        return replace(state, message="A validation is already in progress")
    if not state.chart_loaded:
        return replace(state, message="Please wait for chart data to load")
    if state.drawings.count(state.tool) == 0 and not state.no_patterns_declared:
        return replace(state, message=EmptySubmissionError(state.tool.value).message)

    include = state.tool.is_multi_part if event.include_multi_part is None else event.include_multi_part
    request_id = state.request_counter + 1
    command = ValidateDrawings(
        request_id=request_id,
        tool=state.tool,
        part=state.active_part,
        drawings=state.drawings.submission(state.tool),
        series=state.candles,
        include_multi_part=include,
        no_patterns_found=state.no_patterns_declared
    )
    return replace(
        state,
        status=SessionStatus.VALIDATING,
        request_counter=request_id,
        validate_request_id=request_id,
        message=None,
        outbox=(command,)
    )


def _on_validation_succeeded(state: SessionState, event: ValidationSucceeded) -> SessionState:
    if event.request_id != state.validate_request_id:
        logger.debug(f"Ignoring stale validation result for request {event.request_id}")
        return state
    _require(state, event, SessionStatus.VALIDATING)
    return replace(
        state,
        status=SessionStatus.RESULTS_SHOWN,
        result=event.result,
        overlay_visible=True,
        validate_request_id=None
    )


def _on_validation_failed(state: SessionState, event: ValidationFailed) -> SessionState:
    if event.request_id != state.validate_request_id:
        return state
    _require(state, event, SessionStatus.VALIDATING)
    return replace(
        state,
        status=SessionStatus.DRAWING,
        validate_request_id=None,
        message=event.message
    )


def _on_dismiss_overlay(state: SessionState, event: DismissOverlay) -> SessionState:
    _require(state, event, SessionStatus.RESULTS_SHOWN)
    # Drawings and result markers stay on the chart
    return replace(state, overlay_visible=False, outbox=())


def _on_try_again(state: SessionState, event: TryAgain) -> SessionState:
    _require(state, event, SessionStatus.RESULTS_SHOWN)
    return replace(_clear_active(state), status=SessionStatus.DRAWING)


_HANDLERS: Dict[Type, Callable[[SessionState, Any], SessionState]] = {
    SelectAsset: _on_select_asset,
    ChangeTimeframe: _on_change_timeframe,
    FetchStarted: _on_fetch_started,
    ChartLoaded: _on_chart_loaded,
    ChartLoadFailed: _on_chart_load_failed,
    SelectTool: _on_select_tool,
    SelectPart: _on_select_part,
    AddAnnotation: _on_add_annotation,
    UpdateDrawings: _on_update_drawings,
    Clear: _on_clear,
    DeclareNoPatterns: _on_declare_no_patterns,
    Submit: _on_submit,
    ValidationSucceeded: _on_validation_succeeded,
    ValidationFailed: _on_validation_failed,
    DismissOverlay: _on_dismiss_overlay,
    TryAgain: _on_try_again,
}


def transition(state: SessionState, event: Event) -> SessionState:
    """
    Apply one event to a session.

    Args:
        state: Current session state
        event: Event to apply

    Returns:
        The next state; commands to execute are on its ``outbox``

    Raises:
        InvalidTransitionError: If the event is not accepted in the current state
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise _illegal(state, event)

    next_state = handler(replace(state, outbox=()), event)
    if next_state.status is not state.status:
        logger.debug(f"Session {state.status.value} -> {next_state.status.value} on {type(event).__name__}")
    return next_state
