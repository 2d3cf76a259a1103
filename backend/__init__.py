"""
ChartIQ Practice Service

This module serves as the main entry point for the ChartIQ backend,
providing the API for chart annotation practice.

The service features:
1. Practice charts fetched from live market data
2. Deterministic detection of swing points, Fibonacci legs and Fair Value Gaps
3. Scoring of the learner's drawings with per-annotation feedback
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.common.logger import configure_logger, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI application lifespan context manager.

    Releases the shared market data session on shutdown.
    """
    logger.info("Application startup sequence complete. Yielding control.")
    yield

    logger.info("Application shutdown sequence initiated.")
    from backend.assessments.chart_annotations.data_providers import close_chart_provider
    await close_chart_provider()
    logger.info("Application shutdown sequence complete.")


def create_app(
    app_name: str = None,
    app_description: str = "Practice identifying chart structure on real market data"
) -> FastAPI:
    """
    Create and configure a FastAPI application instance.

    Args:
        app_name: The name of the application (defaults to ``PROJECT_NAME``)
        app_description: Description of the application

    Returns:
        Configured FastAPI application
    """
    from backend.config import settings

    configure_logger(
        name="backend",
        level=settings.LOG_LEVEL,
        use_json=settings.LOG_JSON,
        log_file=settings.LOG_FILE
    )

    app = FastAPI(
        title=app_name or settings.PROJECT_NAME,
        description=app_description,
        version="0.1.0",
        lifespan=lifespan
    )

    # Add CORS middleware
    from fastapi.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register assessment modules before the main router is mounted
    _register_assessment_modules()

    from backend.api import main_router, validation_exception_handler
    from fastapi.exceptions import RequestValidationError
    app.include_router(main_router, prefix="/api")
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    logger.info(f"Application created with {len(app.routes)} routes")
    return app


def _register_assessment_modules() -> None:
    """Register assessment modules with the main router."""
    from backend.api import register_assessment_module
    from backend.assessments.chart_annotations.router import router as practice_router

    register_assessment_module(name="practice", router=practice_router)
