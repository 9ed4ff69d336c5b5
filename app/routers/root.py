# =============================================================================
# app/routers/root.py - Root Endpoint
# =============================================================================

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()

WELCOME_TEXT = (
    "Welcome to the application! Check /api/ for API endpoints, "
    "or /api/health for status."
)


@router.get("/", response_class=PlainTextResponse)
async def root():
    """Root endpoint - returns the welcome text."""
    return WELCOME_TEXT
