"""
Tests for the asyncio practice session controller.

The chart provider is replaced by AsyncMock objects so the tests exercise
the controller's own behaviour: fetch/validate orchestration, timeouts,
superseded requests and the rendering sink.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from backend.assessments.chart_annotations.annotation_config import ValidationSettings
from backend.assessments.chart_annotations.geometry import AnnotationPoint, SwingAnnotation
from backend.assessments.chart_annotations.session_controller import PracticeSessionController, SessionContext
from backend.assessments.chart_annotations.session_state import (
    AddAnnotation, ClearOverlays, SelectAsset, SessionStatus, Submit
)
from backend.assessments.chart_annotations.types import SwingKind
from backend.assessments.chart_annotations.validation_engine import ValidationEngine
from backend.common.error_handling import DataUnavailableError


def _provider(candles=None, side_effect=None):
    provider = MagicMock()
    provider.fetch_chart = AsyncMock(return_value=list(candles or []), side_effect=side_effect)
    provider.close = AsyncMock()
    return provider


def _controller(provider, **kwargs):
    engine = ValidationEngine(ValidationSettings(swing_radius=3, swing_index_tolerance=2))
    return PracticeSessionController(provider, engine=engine, timeout_seconds=kwargs.pop("timeout_seconds", 1.0), **kwargs)


@pytest.mark.asyncio
async def test_select_asset_loads_chart(swing_series):
    provider = _provider(swing_series)
    rendered = []
    controller = _controller(provider, render=rendered.append, context=SessionContext(user_id="u1"))

    await controller.dispatch(SelectAsset("btc"))
    state = await controller.wait_idle()

    assert state.status is SessionStatus.CHART_READY
    assert len(state.candles) == len(swing_series)
    provider.fetch_chart.assert_awaited_once_with("btc", "crypto", "1day")
    assert rendered == [ClearOverlays()]


@pytest.mark.asyncio
async def test_async_render_sink_is_awaited(swing_series):
    render = AsyncMock()
    controller = _controller(_provider(swing_series), render=render)

    await controller.dispatch(SelectAsset("btc"))
    await controller.wait_idle()

    render.assert_awaited_once_with(ClearOverlays())


@pytest.mark.asyncio
async def test_fetch_timeout_rolls_back_with_message():
    async def slow_fetch(*args):
        await asyncio.sleep(5)

    controller = _controller(_provider(side_effect=slow_fetch), timeout_seconds=0.05)

    await controller.dispatch(SelectAsset("btc"))
    state = await controller.wait_idle()

    assert state.status is SessionStatus.IDLE
    assert state.message == "Chart fetch timed out after 0.05 seconds"


@pytest.mark.asyncio
async def test_data_unavailable_message():
    provider = _provider(side_effect=DataUnavailableError("No data returned from Yahoo Finance"))
    controller = _controller(provider)

    await controller.dispatch(SelectAsset("aapl"))
    state = await controller.wait_idle()

    assert state.status is SessionStatus.IDLE
    assert state.message == "Error fetching chart data: No data returned from Yahoo Finance"
    provider.fetch_chart.assert_awaited_once_with("aapl", "equity", "1day")


@pytest.mark.asyncio
async def test_unexpected_provider_error_is_reported():
    controller = _controller(_provider(side_effect=RuntimeError("socket closed")))

    await controller.dispatch(SelectAsset("btc"))
    state = await controller.wait_idle()

    assert state.message == "Failed to fetch chart data"


@pytest.mark.asyncio
async def test_newer_fetch_supersedes_older(swing_series, fvg_series):
    async def fetch(asset, asset_type, timeframe):
        if asset == "btc":
            await asyncio.sleep(5)
            return list(fvg_series)
        return list(swing_series)

    controller = _controller(_provider(side_effect=fetch))

    await controller.dispatch(SelectAsset("btc"))
    await controller.dispatch(SelectAsset("eth"))
    state = await controller.wait_idle()

    assert state.asset == "eth"
    assert state.status is SessionStatus.CHART_READY
    assert state.candles == tuple(swing_series)


@pytest.mark.asyncio
async def test_submit_validates_in_background(swing_series):
    controller = _controller(_provider(swing_series))
    await controller.dispatch(SelectAsset("btc"))
    await controller.wait_idle()

    for index, kind in ((4, SwingKind.HIGH), (8, SwingKind.LOW), (11, SwingKind.HIGH)):
        candle = swing_series[index]
        price = candle.high if kind is SwingKind.HIGH else candle.low
        await controller.dispatch(AddAnnotation(SwingAnnotation(AnnotationPoint(candle.timestamp, price), kind)))

    state = await controller.dispatch(Submit())
    assert state.status is SessionStatus.VALIDATING

    state = await controller.wait_idle()
    assert state.status is SessionStatus.RESULTS_SHOWN
    assert state.result.percentage == 100
    assert state.overlay_visible


@pytest.mark.asyncio
async def test_close_releases_provider(swing_series):
    provider = _provider(swing_series)
    controller = _controller(provider)

    await controller.close()

    provider.close.assert_awaited_once()
