"""
Chart Annotation Types

Enumerations shared by the detectors, the matcher, the feedback composer and
the practice session state machine.
"""

from enum import Enum
from typing import Optional, Tuple


class Tool(str, Enum):
    """Drawing tools offered in practice mode."""
    SWINGS = "swings"
    FIBONACCI = "fibonacci"
    FVG = "fvg"

    @classmethod
    def from_string(cls, value: str) -> "Tool":
        """Convert string to enum value with validation."""
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join([m.value for m in cls])
            raise ValueError(f"Invalid tool: {value}. Valid values: {valid_values}")

    @property
    def is_multi_part(self) -> bool:
        """Fibonacci (uptrend/downtrend) and FVG (bullish/bearish) are drawn in two parts."""
        return self is not Tool.SWINGS

    @property
    def noun(self) -> str:
        return {
            Tool.SWINGS: "swing points",
            Tool.FIBONACCI: "Fibonacci legs",
            Tool.FVG: "Fair Value Gaps",
        }[self]

    @property
    def item_noun(self) -> str:
        return {
            Tool.SWINGS: "swing point",
            Tool.FIBONACCI: "Fibonacci leg",
            Tool.FVG: "Fair Value Gap",
        }[self]


class SwingKind(str, Enum):
    """Swing point kind."""
    HIGH = "high"
    LOW = "low"


class LegDirection(str, Enum):
    """Direction of a Fibonacci leg."""
    UP = "up"
    DOWN = "down"

    @classmethod
    def from_string(cls, value: str) -> "LegDirection":
        """Accepts ``up``/``down`` and the ``uptrend``/``downtrend`` wire values."""
        normalized = value.lower()
        aliases = {"uptrend": "up", "downtrend": "down"}
        try:
            return cls(aliases.get(normalized, normalized))
        except ValueError:
            raise ValueError(f"Invalid leg direction: {value}. Valid values: up, down")

    @property
    def label(self) -> str:
        return "Uptrend" if self is LegDirection.UP else "Downtrend"


class GapBias(str, Enum):
    """Bias of a Fair Value Gap."""
    BULLISH = "bullish"
    BEARISH = "bearish"

    @classmethod
    def from_string(cls, value: str) -> "GapBias":
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Invalid gap bias: {value}. Valid values: bullish, bearish")

    @property
    def label(self) -> str:
        return self.value.capitalize()


class MatchStatus(str, Enum):
    """Verdict of one ground-truth item or learner annotation.

    The rendering surface colours overlay markers green, yellow and red.
    """
    CORRECT = "correct"
    MISSED = "missed"
    INCORRECT = "incorrect"


# Tag carried by each part of a multi-part tool: part 1 / part 2
PART_TAGS = {
    Tool.FIBONACCI: (LegDirection.UP, LegDirection.DOWN),
    Tool.FVG: (GapBias.BULLISH, GapBias.BEARISH),
}

VALID_PARTS: Tuple[int, int] = (1, 2)


def part_tag(tool: Tool, part: int) -> Optional[Enum]:
    """Direction/bias associated with ``part`` of ``tool`` (None for swings)."""
    if not tool.is_multi_part:
        return None
    if part not in VALID_PARTS:
        raise ValueError(f"Invalid part {part} for {tool.value}; expected 1 or 2")
    return PART_TAGS[tool][part - 1]
