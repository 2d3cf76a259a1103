"""
Chart Practice Controller

API controller for chart practice mode: fetching a practice chart and
validating the learner's drawings against it.
"""

import asyncio
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, validator

from backend.assessments.chart_annotations.annotation_config import (
    DEFAULT_TIMEFRAME, TIMEFRAME_CANDLES, asset_type_for
)
from backend.assessments.chart_annotations.data_providers import (
    ChartDataProvider, chart_payload, get_chart_provider
)
from backend.assessments.chart_annotations.types import Tool
from backend.assessments.chart_annotations.validation_engine import ValidationEngine, get_validation_engine
from backend.config import settings
from backend.common.error_handling import (
    ChartIQError, ErrorCode, DataUnavailableError, RequestTimeoutError, error_response, log_error
)
from backend.common.logger import get_logger

# Set up logger
logger = get_logger(__name__)

# Create router
router = APIRouter()

_ERROR_STATUS = {
    ErrorCode.DATA_UNAVAILABLE: 503,
    ErrorCode.REQUEST_TIMEOUT: 504,
    ErrorCode.INVALID_TOOL_STATE: 400,
    ErrorCode.VALIDATION_ERROR: 400,
}


# Request Models
class PracticeFetchRequest(BaseModel):
    asset: str = Field(..., min_length=1, description="Catalogue symbol, e.g. btc or aapl")
    asset_type: Optional[str] = Field(None, alias="assetType", description="crypto, equity or commodity")
    timeframe: str = Field(DEFAULT_TIMEFRAME, description="1h, 4h, 1day or 1week")

    class Config:
        allow_population_by_field_name = True

    @validator('timeframe')
    def validate_timeframe(cls, v):
        """Only the practice timeframes are served"""
        if v not in TIMEFRAME_CANDLES:
            raise ValueError(f"Invalid timeframe: {v}. Valid values: {', '.join(TIMEFRAME_CANDLES)}")
        return v


class PracticeValidateRequest(BaseModel):
    tool: str = Field(..., description="swings, fibonacci or fvg")
    part: int = Field(1, ge=1, le=2, description="Active part of a multi-part tool")
    drawings: Union[List[Dict[str, Any]], Dict[str, List[Dict[str, Any]]]] = Field(default_factory=list)
    chart_data: List[Dict[str, Any]] = Field(..., alias="chartData")
    timeframe: Optional[str] = None
    include_multi_part: Optional[bool] = Field(None, alias="includeMultiPart")
    no_patterns_found: bool = Field(False, alias="noPatternsFound")

    class Config:
        allow_population_by_field_name = True


def _error_json(error: ChartIQError) -> JSONResponse:
    return JSONResponse(status_code=_ERROR_STATUS.get(error.code, 500), content=error_response(error))


class PracticeController:
    """Implements the practice-mode endpoints."""

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds or settings.REQUEST_TIMEOUT_SECONDS

    async def fetch_chart(self, request: PracticeFetchRequest, provider: ChartDataProvider) -> Dict[str, Any]:
        """
        Fetch the candles of a practice chart.

        Raises:
            DataUnavailableError: If the provider could not produce a series
            RequestTimeoutError: If the provider did not answer in time
        """
        asset = request.asset.lower()
        asset_type = request.asset_type or asset_type_for(asset)
        try:
            candles = await asyncio.wait_for(
                provider.fetch_chart(asset, asset_type, request.timeframe),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError("Chart fetch", self.timeout_seconds, cause=e)
        except ChartIQError:
            raise
        except Exception as e:
            raise DataUnavailableError(
                "Failed to fetch chart data", asset=asset, timeframe=request.timeframe, cause=e
            )

        logger.info(f"Serving {len(candles)} {request.timeframe} candles for {asset}")
        return chart_payload(asset, request.timeframe, candles)

    async def validate(self, request: PracticeValidateRequest, engine: ValidationEngine) -> Dict[str, Any]:
        """Score a submission; problems come back inside the result."""
        include = request.include_multi_part
        if include is None:
            try:
                include = Tool.from_string(request.tool).is_multi_part
            except ValueError:
                include = False

        try:
            result = await asyncio.wait_for(
                run_in_threadpool(
                    engine.validate,
                    request.tool,
                    request.part,
                    request.drawings,
                    request.chart_data,
                    include_multi_part=include,
                    no_patterns_found=request.no_patterns_found
                ),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError("Validation", self.timeout_seconds, cause=e)
        return result.to_dict()


practice_controller = PracticeController()


@router.post("/practice-fetch")
async def practice_fetch_endpoint(
    request: PracticeFetchRequest,
    provider: ChartDataProvider = Depends(get_chart_provider)
):
    try:
        return await practice_controller.fetch_chart(request, provider)
    except ChartIQError as e:
        log_error(e, context={"asset": request.asset, "timeframe": request.timeframe})
        return _error_json(e)


@router.post("/practice-validate")
async def practice_validate_endpoint(
    request: PracticeValidateRequest,
    engine: ValidationEngine = Depends(get_validation_engine)
):
    try:
        payload = await practice_controller.validate(request, engine)
    except ChartIQError as e:
        log_error(e, context={"tool": request.tool})
        return _error_json(e)

    if payload.get("error") == ErrorCode.INVALID_TOOL_STATE.value:
        return JSONResponse(status_code=400, content=payload)
    return payload
