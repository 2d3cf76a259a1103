"""
Chart Practice Router

This module exports the router from the practice_controller module.
"""

from backend.assessments.chart_annotations.practice_controller import router
from backend.common.logger import get_logger

logger = get_logger(__name__)
logger.info(f"Practice router loaded with {len(router.routes)} routes")

__all__ = ['router']
