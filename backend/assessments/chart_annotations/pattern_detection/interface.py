"""
Pattern Detection Interface

This module defines the ground-truth item produced by every detector and the
abstract base class the swing, Fibonacci and Fair Value Gap detectors share.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Any, Optional, Sequence

from backend.assessments.chart_annotations.geometry import Candle
from backend.assessments.chart_annotations.types import Tool
from backend.common.serialization import SerializableMixin, serialize


@dataclass(frozen=True)
class GroundTruthItem(SerializableMixin):
    """
    One pattern the detectors found in a candle series.

    Attributes:
        item_id: Stable identifier, e.g. ``swing-high-12`` or ``fvg-bullish-7-9``
        tool: Tool whose ground truth this item belongs to
        tag: Swing kind, leg direction or gap bias
        start_index: First candle index of the pattern
        end_index: Last candle index (equal to ``start_index`` for swings)
        start_time: Timestamp of the first candle
        end_time: Timestamp of the last candle
        start_price: Swing price, leg start price, or gap top
        end_price: Swing price, leg end price, or gap bottom
        metadata: Tool-specific extras (Fibonacci levels, gap size, filled flag)
    """
    item_id: str
    tool: Tool
    tag: Enum
    start_index: int
    end_index: int
    start_time: int
    end_time: int
    start_price: float
    end_price: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the wire shape the drawing surface renders.

        Returns:
            Dictionary representation of the ground-truth item
        """
        data: Dict[str, Any] = {"id": self.item_id, "tool": self.tool.value}

        if self.tool is Tool.SWINGS:
            data.update({
                "type": self.tag.value,
                "index": self.start_index,
                "time": self.start_time,
                "price": self.start_price,
            })
        elif self.tool is Tool.FIBONACCI:
            data.update({
                "direction": self.tag.value,
                "start": {"index": self.start_index, "time": self.start_time, "price": self.start_price},
                "end": {"index": self.end_index, "time": self.end_time, "price": self.end_price},
            })
        else:
            data.update({
                "type": self.tag.value,
                "startIndex": self.start_index,
                "endIndex": self.end_index,
                "startTime": self.start_time,
                "endTime": self.end_time,
                "topPrice": self.start_price,
                "bottomPrice": self.end_price,
            })

        for key, value in self.metadata.items():
            data[key] = serialize(value)
        return data


class PatternDetector(ABC):
    """
    Abstract base class for all ground-truth detectors.

    Detectors are pure: the same series always yields the same items in the
    same order, and no state is kept between calls.
    """

    tool: Tool

    def __init__(self, name: str, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the detector.

        Args:
            name: Unique name for this detector
            config: Additional configuration parameters

        Raises:
            ValueError: If name is empty
        """
        if not name:
            raise ValueError("Detector name cannot be empty")

        self.name = name
        self.config = config or {}

    @abstractmethod
    def detect(self, series: Sequence[Candle]) -> List[GroundTruthItem]:
        """
        Compute ground truth for a candle series.

        Args:
            series: Candles ordered by strictly increasing timestamp

        Returns:
            Ground-truth items in deterministic order
        """
        pass

    def get_status(self) -> Dict[str, Any]:
        """Detector name, tool and effective configuration."""
        return {
            "name": self.name,
            "tool": self.tool.value,
            "config": dict(self.config),
        }

    def __str__(self) -> str:
        return f"{self.name} ({self.tool.value})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name='{self.name}', config={self.config})"
