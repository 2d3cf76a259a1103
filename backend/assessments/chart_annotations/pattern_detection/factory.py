"""
Pattern Detector Factory

This module provides the factory function that builds the detector for a
drawing tool from a ``ValidationSettings`` instance.
"""

from typing import Optional, Union

from backend.assessments.chart_annotations.annotation_config import ValidationSettings, get_validation_settings
from backend.assessments.chart_annotations.pattern_detection.interface import PatternDetector
from backend.assessments.chart_annotations.pattern_detection.swing import SwingDetector
from backend.assessments.chart_annotations.pattern_detection.fibonacci import FibonacciDetector
from backend.assessments.chart_annotations.pattern_detection.fvg import FVGDetector
from backend.assessments.chart_annotations.types import Tool
from backend.common.logger import get_logger

logger = get_logger(__name__)


def create_detector(
    tool: Union[str, Tool],
    validation_settings: Optional[ValidationSettings] = None
) -> PatternDetector:
    """
    Create the ground-truth detector for a drawing tool.

    Args:
        tool: Tool to detect patterns for
        validation_settings: Detector parameters (defaults to the configured ones)

    Returns:
        Configured pattern detector instance

    Raises:
        ValueError: If an invalid tool is specified
    """
    if isinstance(tool, str) and not isinstance(tool, Tool):
        tool = Tool.from_string(tool)
    validation_settings = validation_settings or get_validation_settings()

    if tool is Tool.SWINGS:
        detector = SwingDetector(
            radius=validation_settings.swing_radius,
            min_significance=validation_settings.swing_min_significance
        )
    elif tool is Tool.FIBONACCI:
        detector = FibonacciDetector(
            swing_detector=SwingDetector(
                radius=validation_settings.swing_radius,
                min_significance=validation_settings.swing_min_significance
            )
        )
    else:
        detector = FVGDetector(min_gap_fraction=validation_settings.fvg_min_gap_fraction)

    logger.debug(f"Created detector {detector}")
    return detector
