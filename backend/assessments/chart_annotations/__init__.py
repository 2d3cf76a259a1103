"""
Chart Annotation Practice Module

This module implements practice mode for ChartIQ: the learner draws swing
points, Fibonacci legs or Fair Value Gaps on a real chart and the drawings are
scored against deterministically detected ground truth.
"""

from backend.assessments.chart_annotations.types import Tool, SwingKind, LegDirection, GapBias, MatchStatus
from backend.assessments.chart_annotations.geometry import (
    Candle,
    SwingAnnotation,
    FibonacciAnnotation,
    FVGAnnotation,
    Zone
)
from backend.assessments.chart_annotations.matcher import AnnotationMatcher, MatchResult
from backend.assessments.chart_annotations.feedback import FeedbackComposer, ValidationResult
from backend.assessments.chart_annotations.validation_engine import (
    ValidationEngine,
    get_validation_engine,
    validate
)
from backend.assessments.chart_annotations.session_state import SessionState, SessionStatus, transition
from backend.assessments.chart_annotations.session_controller import PracticeSessionController, SessionContext

__all__ = [
    'Tool',
    'SwingKind',
    'LegDirection',
    'GapBias',
    'MatchStatus',
    'Candle',
    'SwingAnnotation',
    'FibonacciAnnotation',
    'FVGAnnotation',
    'Zone',
    'AnnotationMatcher',
    'MatchResult',
    'FeedbackComposer',
    'ValidationResult',
    'ValidationEngine',
    'get_validation_engine',
    'validate',
    'SessionState',
    'SessionStatus',
    'transition',
    'PracticeSessionController',
    'SessionContext',
]
