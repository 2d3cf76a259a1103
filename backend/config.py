"""Application configuration module."""

from typing import List, Optional
from pydantic import BaseSettings, validator


class Settings(BaseSettings):
    """Application settings."""

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "ChartIQ Practice"
    ALLOW_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: Optional[str] = None

    # Request handling
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Detector and matcher tolerances
    SWING_RADIUS: int = 3
    SWING_MIN_SIGNIFICANCE: float = 0.0
    SWING_INDEX_TOLERANCE: int = 2
    FIB_INDEX_TOLERANCE: int = 2
    FVG_MIN_OVERLAP: float = 0.5
    FVG_MIN_GAP_FRACTION: float = 0.0

    # Score-message thresholds (percent)
    EXCELLENT_THRESHOLD: int = 80
    GOOD_THRESHOLD: int = 60

    # Market data
    YAHOO_BASE_URL: str = "https://query1.finance.yahoo.com"
    MARKET_DATA_MAX_RETRIES: int = 2

    @validator('LOG_LEVEL')
    def validate_level(cls, v):
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @validator('FVG_MIN_OVERLAP')
    def validate_overlap(cls, v):
        """Overlap is intersection over union of the index ranges"""
        if not 0 < v <= 1:
            raise ValueError(f"FVG_MIN_OVERLAP must be in (0, 1], got {v}")
        return v

    class Config:
        """Pydantic settings config."""
        env_file = ".env"
        case_sensitive = True


settings = Settings()
