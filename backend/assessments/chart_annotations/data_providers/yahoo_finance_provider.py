"""
Yahoo Finance Chart Provider

Implementation of the ChartDataProvider for Yahoo Finance chart data.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import aiohttp
import pandas as pd

from backend.assessments.chart_annotations.data_providers.base import ChartDataProvider, ProviderConfig
from backend.assessments.chart_annotations.geometry import Candle
from backend.config import settings
from backend.common.error_handling import DataUnavailableError, retry

# Practice timeframe -> (Yahoo interval, pandas resample rule or None, seconds per candle)
TIMEFRAMES = {
    "1h": ("1h", None, 3600),
    "4h": ("1h", "4h", 4 * 3600),
    "1day": ("1d", None, 86400),
    "1week": ("1wk", None, 7 * 86400),
}

# Weekends and market holidays leave gaps; request extra history to cover them
HISTORY_PADDING = {"crypto": 1.2, "equity": 1.8, "commodity": 1.8}

DEFAULT_CONFIG = ProviderConfig(
    name="YahooFinance",
    base_url=settings.YAHOO_BASE_URL,
    timeout=settings.REQUEST_TIMEOUT_SECONDS,
    max_retries=settings.MARKET_DATA_MAX_RETRIES,
)


def yahoo_symbol(asset: str, asset_type: str) -> str:
    """Yahoo ticker for a catalogue symbol (``btc`` -> ``BTC-USD``)."""
    symbol = asset.upper()
    if asset_type == "crypto" and not symbol.endswith("-USD"):
        return f"{symbol}-USD"
    return symbol


def frame_from_chart(data: Dict[str, Any]) -> pd.DataFrame:
    """
    Build an OHLC DataFrame from a ``/v8/finance/chart`` response.

    Raises:
        DataUnavailableError: If the response carries an error or no rows
    """
    chart = data.get("chart", {})
    error = chart.get("error")
    if error:
        raise DataUnavailableError(f"Yahoo Finance API error: {error.get('description', 'Unknown error')}")

    result = chart.get("result") or []
    if not result:
        raise DataUnavailableError("No data returned from Yahoo Finance")

    chart_data = result[0]
    timestamps = chart_data.get("timestamp") or []
    quote = (chart_data.get("indicators", {}).get("quote") or [{}])[0]

    df = pd.DataFrame({
        "timestamp": timestamps,
        "open": quote.get("open", []),
        "high": quote.get("high", []),
        "low": quote.get("low", []),
        "close": quote.get("close", []),
    })

    # Drop rows with missing data
    df = df.dropna()
    df["timestamp"] = pd.to_datetime(df["timestamp"].astype("int64"), unit="s", utc=True)
    return df.drop_duplicates(subset="timestamp").sort_values("timestamp")


def resample_frame(df: pd.DataFrame, rule: str) -> pd.DataFrame:
    """Aggregate candles into ``rule``-sized buckets (e.g. hourly into 4h)."""
    resampled = (
        df.set_index("timestamp")
        .resample(rule)
        .agg({"open": "first", "high": "max", "low": "min", "close": "last"})
        .dropna()
    )
    return resampled.reset_index()


def candles_from_frame(df: pd.DataFrame, limit: Optional[int] = None) -> List[Candle]:
    """Convert an OHLC DataFrame to candles, keeping the most recent ``limit``."""
    if limit is not None and limit > 0:
        df = df.tail(limit)
    return [
        Candle(
            timestamp=int(row.timestamp.timestamp()),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close)
        )
        for row in df.itertuples(index=False)
    ]


class YahooFinanceChartProvider(ChartDataProvider):
    """Yahoo Finance implementation of the ChartDataProvider."""

    def __init__(self, config: Optional[ProviderConfig] = None):
        """
        Initialize the Yahoo Finance provider.

        Args:
            config: Configuration for the provider (optional)
        """
        super().__init__(config or DEFAULT_CONFIG)
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_lock = asyncio.Lock()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        async with self._session_lock:
            if self._session is None:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.config.timeout)
                )
        return self._session

    @retry(
        max_retries=settings.MARKET_DATA_MAX_RETRIES,
        retry_delay=0.5,
        retry_exceptions=(aiohttp.ClientError, asyncio.TimeoutError)
    )
    async def _make_request(self, endpoint: str, params: Dict[str, Any]) -> Any:
        """
        Make a request to the Yahoo Finance API.

        Connection errors and timeouts are retried; HTTP errors are not.
        """
        session = await self._ensure_session()
        url = f"{self.config.base_url}{endpoint}"

        async with session.get(url, params=params) as response:
            if response.status == 200:
                return await response.json()
            error_text = await response.text()
            self.logger.error(f"API error: {response.status}, {error_text[:200]}")
            raise DataUnavailableError(
                f"Yahoo Finance returned HTTP {response.status}",
                details={"status_code": response.status}
            )

    async def fetch_chart(self, asset: str, asset_type: str, timeframe: str) -> List[Candle]:
        if timeframe not in TIMEFRAMES:
            raise DataUnavailableError(f"Unsupported timeframe: {timeframe}", asset=asset, timeframe=timeframe)

        interval, resample_rule, seconds = TIMEFRAMES[timeframe]
        count = self.candle_count(timeframe)
        period2 = int(time.time())
        period1 = period2 - int(count * seconds * HISTORY_PADDING.get(asset_type, 1.8))
        symbol = yahoo_symbol(asset, asset_type)

        params = {
            "interval": interval,
            "period1": period1,
            "period2": period2,
            "includePrePost": "false",
        }

        try:
            data = await self._make_request(f"/v8/finance/chart/{symbol}", params)
            df = frame_from_chart(data)
        except DataUnavailableError as e:
            raise DataUnavailableError(e.message, asset=asset, timeframe=timeframe, details=e.details, cause=e)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DataUnavailableError("Failed to fetch chart data", asset=asset, timeframe=timeframe, cause=e)

        if resample_rule:
            df = resample_frame(df, resample_rule)

        candles = candles_from_frame(df, count)
        if not candles:
            raise DataUnavailableError("No candles available", asset=asset, timeframe=timeframe)

        self.logger.info(f"Fetched {len(candles)} {timeframe} candles for {symbol}")
        return candles

    async def close(self) -> None:
        """Close the provider and release resources."""
        if self._session:
            await self._session.close()
            self._session = None
