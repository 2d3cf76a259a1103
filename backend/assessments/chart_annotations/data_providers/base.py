"""
Chart Data Provider

Base class for the market-data collaborator of practice mode: given an asset,
its asset class and a timeframe, return the OHLC candles to draw on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from backend.assessments.chart_annotations.annotation_config import candles_for_timeframe
from backend.assessments.chart_annotations.geometry import Candle
from backend.common.logger import get_logger
from backend.common.serialization import SerializableMixin


@dataclass
class ProviderConfig(SerializableMixin):
    """
    Configuration for a chart data provider.

    Attributes:
        name: Provider name used in logs and errors
        base_url: Base URL for API requests
        timeout: Request timeout in seconds
        max_retries: Maximum number of retries for failed requests
        params: Additional provider-specific parameters
    """
    name: str
    base_url: Optional[str] = None
    timeout: float = 10.0
    max_retries: int = 2
    params: Dict[str, Any] = field(default_factory=dict)

    __serializable_fields__ = ["name", "base_url", "timeout", "max_retries", "params"]
    __optional_fields__ = ["base_url", "timeout", "max_retries", "params"]


class ChartDataProvider(ABC):
    """
    Base class for practice chart data providers.

    Implementations raise ``DataUnavailableError`` when no usable series can be
    produced for the request.
    """

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.logger = get_logger(f"{__name__}.{config.name}")

    @abstractmethod
    async def fetch_chart(self, asset: str, asset_type: str, timeframe: str) -> List[Candle]:
        """
        Fetch the candles for a practice chart.

        Args:
            asset: Catalogue symbol (e.g. ``btc``, ``aapl``)
            asset_type: ``crypto``, ``equity`` or ``commodity``
            timeframe: ``1h``, ``4h``, ``1day`` or ``1week``

        Returns:
            Candles ordered by strictly increasing timestamp

        Raises:
            DataUnavailableError: If the data could not be fetched
        """
        pass

    def candle_count(self, timeframe: str) -> int:
        return candles_for_timeframe(timeframe)

    async def close(self) -> None:
        """Release any network resources."""
        return None


def chart_payload(asset: str, timeframe: str, candles: List[Candle]) -> Dict[str, Any]:
    """Response body of ``practice-fetch``."""
    return {
        "chartData": [
            {
                "time": candle.timestamp,
                "open": candle.open,
                "high": candle.high,
                "low": candle.low,
                "close": candle.close,
            }
            for candle in candles
        ],
        "asset": asset.upper(),
        "timeframe": timeframe,
        "candleCount": len(candles),
        "isLive": True,
    }
