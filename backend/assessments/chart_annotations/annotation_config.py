"""
Chart Annotation Configuration Module

Named tolerances, detector parameters and score-message thresholds used by the
annotation validation engine, plus the practice-mode asset and timeframe
catalogue. Every value the engine consults is collected in
``ValidationSettings`` so callers (and tests) can override them per request.
"""

from typing import Final, List, Mapping, Tuple
from functools import lru_cache

from pydantic import BaseModel, Field, validator

from backend.config import settings

# ============================================================================
# Detector parameters
# ============================================================================

SWING_RADIUS: Final[int] = settings.SWING_RADIUS
SWING_MIN_SIGNIFICANCE: Final[float] = settings.SWING_MIN_SIGNIFICANCE
FVG_MIN_GAP_FRACTION: Final[float] = settings.FVG_MIN_GAP_FRACTION

FIB_RETRACEMENT_RATIOS: Final[Tuple[float, ...]] = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)

# ============================================================================
# Matcher tolerances
# ============================================================================

SWING_INDEX_TOLERANCE: Final[int] = settings.SWING_INDEX_TOLERANCE
FIB_INDEX_TOLERANCE: Final[int] = settings.FIB_INDEX_TOLERANCE
FVG_MIN_OVERLAP: Final[float] = settings.FVG_MIN_OVERLAP

# ============================================================================
# Feedback policy
# ============================================================================

EXCELLENT_THRESHOLD: Final[int] = settings.EXCELLENT_THRESHOLD
GOOD_THRESHOLD: Final[int] = settings.GOOD_THRESHOLD

SCORE_MESSAGES: Final[Mapping[str, str]] = {
    "excellent": "Excellent work",
    "good": "Good effort",
    "poor": "Needs improvement",
}

GLYPH_CORRECT: Final[str] = "✓"
GLYPH_INCORRECT: Final[str] = "✗"
GLYPH_WARNING: Final[str] = "⚠"

# ============================================================================
# Practice catalogue
# ============================================================================

# Candles requested per timeframe for a practice chart
TIMEFRAME_CANDLES: Final[Mapping[str, int]] = {
    "1h": 168,
    "4h": 336,
    "1day": 180,
    "1week": 104,
}
DEFAULT_CANDLE_COUNT: Final[int] = 180

PRACTICE_ASSETS: Final[Mapping[str, str]] = {
    "btc": "crypto",
    "eth": "crypto",
    "sol": "crypto",
    "bnb": "crypto",
    "aapl": "equity",
    "nvda": "equity",
    "tsla": "equity",
    "gld": "equity",
    "gc=f": "commodity",
    "si=f": "commodity",
    "cl=f": "commodity",
    "ng=f": "commodity",
}

DEFAULT_TIMEFRAME: Final[str] = "1day"


class ValidationSettings(BaseModel):
    """
    Tolerances and policies applied by one validation run.

    Defaults come from the module constants above, which in turn read the
    application ``Settings`` (and therefore the environment).
    """
    swing_radius: int = Field(default=SWING_RADIUS, ge=1)
    swing_min_significance: float = Field(default=SWING_MIN_SIGNIFICANCE, ge=0.0)
    swing_index_tolerance: int = Field(default=SWING_INDEX_TOLERANCE, ge=0)
    fib_index_tolerance: int = Field(default=FIB_INDEX_TOLERANCE, ge=0)
    fvg_min_overlap: float = Field(default=FVG_MIN_OVERLAP, gt=0.0, le=1.0)
    fvg_min_gap_fraction: float = Field(default=FVG_MIN_GAP_FRACTION, ge=0.0)
    excellent_threshold: int = Field(default=EXCELLENT_THRESHOLD, ge=0, le=100)
    good_threshold: int = Field(default=GOOD_THRESHOLD, ge=0, le=100)

    class Config:
        allow_mutation = False

    @validator('good_threshold')
    def validate_thresholds(cls, v, values):
        """The "good" band must sit below the "excellent" band"""
        excellent = values.get('excellent_threshold', EXCELLENT_THRESHOLD)
        if v > excellent:
            raise ValueError(f"good_threshold ({v}) must not exceed excellent_threshold ({excellent})")
        return v

    def override(self, **changes) -> 'ValidationSettings':
        """Return a copy with some values replaced (validated again)."""
        data = self.dict()
        data.update(changes)
        return ValidationSettings(**data)


@lru_cache(maxsize=1)
def get_validation_settings() -> ValidationSettings:
    """Default settings shared by every engine that is not given its own."""
    return ValidationSettings()


def candles_for_timeframe(timeframe: str) -> int:
    """Number of candles a practice chart shows for ``timeframe``."""
    return TIMEFRAME_CANDLES.get(timeframe, DEFAULT_CANDLE_COUNT)


def asset_type_for(asset: str, default: str = "equity") -> str:
    """Asset class of a catalogue symbol."""
    return PRACTICE_ASSETS.get(asset.lower(), default)


def score_label(percentage: int, validation_settings: ValidationSettings) -> str:
    """Summary label for a percentage under the configured thresholds."""
    if percentage >= validation_settings.excellent_threshold:
        return SCORE_MESSAGES["excellent"]
    if percentage >= validation_settings.good_threshold:
        return SCORE_MESSAGES["good"]
    return SCORE_MESSAGES["poor"]


__all__: List[str] = [
    "SWING_RADIUS", "SWING_MIN_SIGNIFICANCE", "FVG_MIN_GAP_FRACTION", "FIB_RETRACEMENT_RATIOS",
    "SWING_INDEX_TOLERANCE", "FIB_INDEX_TOLERANCE", "FVG_MIN_OVERLAP",
    "EXCELLENT_THRESHOLD", "GOOD_THRESHOLD", "SCORE_MESSAGES",
    "GLYPH_CORRECT", "GLYPH_INCORRECT", "GLYPH_WARNING",
    "TIMEFRAME_CANDLES", "DEFAULT_CANDLE_COUNT", "PRACTICE_ASSETS", "DEFAULT_TIMEFRAME",
    "ValidationSettings", "get_validation_settings", "candles_for_timeframe", "asset_type_for", "score_label",
]
