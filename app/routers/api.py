# =============================================================================
# app/routers/api.py - API Index and Example Endpoints
# =============================================================================
# Mounted under /api. Static example endpoints with no side effects.
# =============================================================================

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

router = APIRouter()

API_GREETING = "Hello from the API! See /api/health for status and /api/data for example data."


class DataResponse(BaseModel):
    """Example payload returned by GET /api/data."""
    message: str


@router.get("/", response_class=PlainTextResponse)
async def api_index():
    """API index - static informational text."""
    return API_GREETING


@router.get("/data", response_model=DataResponse)
async def get_data():
    """
    Example data endpoint.

    Stands in for a protected resource; authentication is out of scope,
    so it answers every caller.
    """
    return DataResponse(message="This is some protected data!")
