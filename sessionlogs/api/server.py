"""FastAPI service receiving tracked sessions.

Provides REST API endpoints for:
- Opening sessions and serving their client configuration
- Receiving client pushes
- Closing sessions and writing them to storage
"""

from datetime import UTC, datetime

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from sessionlogs.api.tracking import _sessions
from sessionlogs.api.tracking import router as tracking_router
from sessionlogs.config import get_settings
from sessionlogs.utils.logging import configure_logging

logger = structlog.get_logger()

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    timestamp: str
    open_sessions: int


# ============================================================================
# App Configuration
# ============================================================================

app = FastAPI(
    title="Session Logs API",
    description="Usage tracking for interactive web applications",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Tracking pushes come from the pages of the tracked application, without cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tracking_router)


# ============================================================================
# Health & Status Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return HealthResponse(
        status="healthy",
        version=VERSION,
        timestamp=datetime.now(UTC).isoformat(),
        open_sessions=len(_sessions),
    )


def main() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    logger.info("Starting tracking server", host=settings.server_host, port=settings.server_port)
    uvicorn.run(app, host=settings.server_host, port=settings.server_port)


if __name__ == "__main__":
    main()
