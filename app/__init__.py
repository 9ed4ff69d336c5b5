# =============================================================================
# app/ - FastAPI Application Package
# =============================================================================
# This package contains the FastAPI web application:
# - main.py: App factory, router wiring, console entry point
# - config.py: Environment variable loading and settings
# - exceptions.py: Framework exception handlers (forward into the pipeline)
# - middleware.py: ASGI adapter running requests through the pipeline
# - server.py: Process supervisor (socket, fault handling, exit codes)
# - routers/: API endpoint definitions organized by feature
#
# The app layer is thin - it handles HTTP concerns and delegates the
# request lifecycle to the core/ package.
# =============================================================================
