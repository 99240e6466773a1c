"""
Health check endpoint
"""
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ticketdesk import __version__
from ticketdesk.dependencies import ServiceContainer, get_services

router = APIRouter(prefix="/api/v1/health", tags=["health"])

# Application start time for uptime calculation
APP_START_TIME = time.time()


class HealthResponse(BaseModel):
    """Basic health check response"""
    status: str = Field(..., description="Overall status: healthy, degraded")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = Field(..., description="Application version")
    uptime_seconds: float = Field(..., description="Application uptime in seconds")
    ai_configured: bool = Field(..., description="Whether an AI provider is configured")


@router.get("", response_model=HealthResponse)
async def health_check(services: ServiceContainer = Depends(get_services)) -> HealthResponse:
    """
    Liveness check

    Reports "degraded" when no AI provider is configured; tickets are still
    created, just without AI enrichment.
    """
    ai_configured = services.ai_service.is_configured()
    return HealthResponse(
        status="healthy" if ai_configured else "degraded",
        version=__version__,
        uptime_seconds=round(time.time() - APP_START_TIME, 2),
        ai_configured=ai_configured,
    )
