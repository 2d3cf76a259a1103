"""
Tests for the Yahoo Finance chart provider.

Network access is never used: responses are sample payloads in the
``/v8/finance/chart`` format and ``_make_request`` is patched.
"""

import pytest
from unittest.mock import AsyncMock, patch

from backend.assessments.chart_annotations.data_providers import YahooFinanceChartProvider, chart_payload
from backend.assessments.chart_annotations.data_providers.yahoo_finance_provider import (
    candles_from_frame,
    frame_from_chart,
    resample_frame,
    yahoo_symbol
)
from backend.common.error_handling import DataUnavailableError

# 2023-11-15 00:00 UTC, aligned to a 4h boundary
HOUR_START = 1_700_006_400


def _chart_response(timestamps, opens, highs, lows, closes):
    return {
        "chart": {
            "result": [{
                "timestamp": timestamps,
                "indicators": {"quote": [{
                    "open": opens, "high": highs, "low": lows, "close": closes
                }]}
            }],
            "error": None
        }
    }


@pytest.fixture
def hourly_response():
    timestamps = [HOUR_START + i * 3600 for i in range(8)]
    opens = [10, 11, 12, 13, 14, 15, 16, 17]
    highs = [11, 12, 13, 14, 15, 16, 17, 18]
    lows = [9, 10, 11, 12, 13, 14, 15, 16]
    closes = [11, 12, 13, 14, 15, 16, 17, 18]
    return _chart_response(timestamps, opens, highs, lows, closes)


def test_yahoo_symbol():
    assert yahoo_symbol("btc", "crypto") == "BTC-USD"
    assert yahoo_symbol("aapl", "equity") == "AAPL"
    assert yahoo_symbol("gc=f", "commodity") == "GC=F"


def test_frame_drops_incomplete_rows():
    response = _chart_response([HOUR_START, HOUR_START + 3600], [1.0, None], [2.0, 3.0], [0.5, 1.0], [1.5, 2.0])

    df = frame_from_chart(response)

    assert len(df) == 1
    assert candles_from_frame(df)[0].timestamp == HOUR_START


def test_frame_reports_api_error():
    with pytest.raises(DataUnavailableError) as exc_info:
        frame_from_chart({"chart": {"result": None, "error": {"description": "No data found"}}})
    assert "No data found" in exc_info.value.message


def test_frame_requires_result():
    with pytest.raises(DataUnavailableError):
        frame_from_chart({"chart": {"result": [], "error": None}})


def test_resample_hourly_into_four_hours(hourly_response):
    candles = candles_from_frame(resample_frame(frame_from_chart(hourly_response), "4h"))

    assert len(candles) == 2
    first = candles[0]
    assert first.timestamp == HOUR_START
    assert (first.open, first.high, first.low, first.close) == (10.0, 14.0, 9.0, 14.0)
    assert candles[1].timestamp == HOUR_START + 4 * 3600


def test_candles_from_frame_keeps_most_recent(hourly_response):
    candles = candles_from_frame(frame_from_chart(hourly_response), limit=3)

    assert [c.timestamp for c in candles] == [HOUR_START + i * 3600 for i in (5, 6, 7)]


@pytest.mark.asyncio
async def test_fetch_chart_builds_request(hourly_response):
    provider = YahooFinanceChartProvider()
    with patch.object(provider, "_make_request", AsyncMock(return_value=hourly_response)) as request:
        candles = await provider.fetch_chart("btc", "crypto", "1h")

    assert len(candles) == 8
    endpoint, params = request.await_args.args
    assert endpoint == "/v8/finance/chart/BTC-USD"
    assert params["interval"] == "1h"
    assert params["period1"] < params["period2"]


@pytest.mark.asyncio
async def test_fetch_chart_resamples_four_hour_timeframe(hourly_response):
    provider = YahooFinanceChartProvider()
    with patch.object(provider, "_make_request", AsyncMock(return_value=hourly_response)) as request:
        candles = await provider.fetch_chart("eth", "crypto", "4h")

    assert request.await_args.args[1]["interval"] == "1h"
    assert len(candles) == 2


@pytest.mark.asyncio
async def test_fetch_chart_wraps_errors_with_context():
    provider = YahooFinanceChartProvider()
    empty = {"chart": {"result": [], "error": None}}
    with patch.object(provider, "_make_request", AsyncMock(return_value=empty)):
        with pytest.raises(DataUnavailableError) as exc_info:
            await provider.fetch_chart("aapl", "equity", "1day")

    assert exc_info.value.details["asset"] == "aapl"
    assert exc_info.value.details["timeframe"] == "1day"
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_unsupported_timeframe():
    with pytest.raises(DataUnavailableError):
        await YahooFinanceChartProvider().fetch_chart("btc", "crypto", "3m")


def test_chart_payload_shape(swing_series):
    payload = chart_payload("btc", "1day", swing_series)

    assert payload["asset"] == "BTC"
    assert payload["candleCount"] == len(swing_series)
    assert payload["isLive"] is True
    assert set(payload["chartData"][0]) == {"time", "open", "high", "low", "close"}
