# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - root.py: GET / welcome text
# - api.py: GET /api/ greeting and the GET /api/data example endpoint
# - health.py: GET /api/health liveness payload
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import api
from . import health
from . import root

__all__ = [
    "api",
    "health",
    "root",
]
