# =============================================================================
# core/ - Request Lifecycle Package
# =============================================================================
# This package contains the request pipeline:
# - pipeline/: ordered stages, route lookup and the terminal error stage
#
# Code in this package should NOT import from FastAPI; it only relies on
# Starlette's ASGI primitives. This keeps the pipeline testable on its own.
# =============================================================================
