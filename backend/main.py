"""
Main application entry point for the ChartIQ practice service.

Usage:
    - Direct: python -m backend.main
    - ASGI server: uvicorn backend.main:app
"""

import os

from backend import create_app
from backend.common.logger import app_logger

# Setup module logger
logger = app_logger.getChild("main")

app = create_app()


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Welcome to the ChartIQ Practice API"}


# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    # Get configuration from environment or use defaults
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "true").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")

    uvicorn.run(
        "backend.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level="info"
    )
