"""
Chart Pattern Detection Module

Deterministic ground-truth detectors for the practice-mode drawing tools:

1. Swing points: local highs and lows confirmed over a lookback radius
2. Fibonacci legs: moves between consecutive alternating swings
3. Fair Value Gaps: three-candle price imbalances
"""

from backend.assessments.chart_annotations.pattern_detection.interface import (
    PatternDetector,
    GroundTruthItem
)

from backend.assessments.chart_annotations.pattern_detection.swing import SwingDetector
from backend.assessments.chart_annotations.pattern_detection.fibonacci import (
    FibonacciDetector,
    compact_swings,
    retracement_levels
)
from backend.assessments.chart_annotations.pattern_detection.fvg import FVGDetector

from backend.assessments.chart_annotations.pattern_detection.factory import create_detector

__all__ = [
    # Core interfaces
    'PatternDetector',
    'GroundTruthItem',

    # Detectors
    'SwingDetector',
    'FibonacciDetector',
    'FVGDetector',
    'compact_swings',
    'retracement_levels',

    # Factory functions
    'create_detector'
]
