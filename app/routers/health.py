# =============================================================================
# app/routers/health.py - Health Check Endpoint
# =============================================================================
# Provides the health check endpoint for monitoring and load balancers.
# =============================================================================

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    uptime: float


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint.

    Always answers 200 with the seconds elapsed since process start, read
    from the supervisor's monotonic clock.
    """
    request.app.state.logger.info("Health check requested.")
    return HealthResponse(
        status="healthy",
        uptime=request.app.state.clock.uptime(),
    )
