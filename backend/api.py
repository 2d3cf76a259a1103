"""
Central API router and utilities for the ChartIQ practice service.

This module provides:
- A central router that includes all assessment module routers
- The request validation error handler
"""

from typing import Dict

from fastapi import APIRouter, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.common.error_handling import ErrorCode
from backend.common.logger import get_logger

# Configure logging
logger = get_logger(__name__)

# Create main API router
main_router = APIRouter()

# Version prefix for all API routes
API_VERSION = "v1"

# Dictionary to track registered assessment modules
registered_modules: Dict[str, APIRouter] = {}


def register_assessment_module(name: str, router: APIRouter) -> None:
    """
    Register an assessment module router with the main API router.

    Args:
        name: Name of the assessment module
        router: FastAPI router for the assessment module
    """
    if name in registered_modules:
        logger.warning(f"Assessment module '{name}' already registered, skipping")
        return

    # Include the router with the appropriate prefix
    main_router.include_router(
        router,
        prefix=f"/{API_VERSION}/{name}",
        tags=[name]
    )

    registered_modules[name] = router
    logger.info(f"Registered assessment module: {name} with {len(router.routes)} routes")


# Common validation error handler
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle validation errors and return a standardized response.

    Args:
        request: The incoming request
        exc: The validation exception

    Returns:
        A JSON response with error details
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": error.get("loc", []),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": True,
            "status": "error",
            "code": ErrorCode.VALIDATION_ERROR.value,
            "message": "Validation error",
            "details": error_details
        }
    )
