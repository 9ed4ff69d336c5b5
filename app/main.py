# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the service.
# It wires settings, logging, routers, exception handlers and the request
# pipeline into one FastAPI application.
#
# Usage:
#   scaffold-server                        (supervised: bind checks, exit codes)
#   uvicorn app.main:app --port 3000       (plain uvicorn)
# =============================================================================

import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import Settings, get_settings
from app.exceptions import register_exception_handlers
from app.middleware import PipelineMiddleware
from app.routers import api, health, root
from app.server import PROCESS_CLOCK, ProcessSupervisor, UptimeClock
from core.pipeline import RequestPipeline, RouterTable, TerminalErrorStage, default_stages
from lib.log import StructuredLogger, configure_logging

APP_TITLE = "HTTP Service Scaffold"
APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Logs startup and shutdown; there are no connections to open or close.
    """
    logger = app.state.logger
    logger.debug(f"Starting {APP_TITLE} in {app.state.settings.ENVIRONMENT} mode")

    yield

    logger.info(f"Shutting down {APP_TITLE}")


def create_app(
    settings: Settings | None = None,
    logger: StructuredLogger | None = None,
    clock: UptimeClock | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (defaults to get_settings())
        logger: Structured logger (defaults to configure_logging(settings))
        clock: Uptime source for /api/health (defaults to the process clock)

    Returns:
        FastAPI app with every request running through the RequestPipeline
    """
    settings = settings or get_settings()
    logger = logger or configure_logging(settings)

    # The HTTP surface is exactly the routes below, so no docs routes
    app = FastAPI(
        title=APP_TITLE,
        version=APP_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.logger = logger
    app.state.clock = clock or PROCESS_CLOCK

    # =========================================================================
    # Exception Handlers
    # =========================================================================

    register_exception_handlers(app)

    # =========================================================================
    # Routers
    # =========================================================================

    app.include_router(root.router, tags=["Root"])
    app.include_router(api.router, prefix="/api", tags=["API"])
    app.include_router(health.router, prefix="/api", tags=["Health"])

    # =========================================================================
    # Request Pipeline
    # =========================================================================

    router_table = RouterTable(app.router)
    error_stage = TerminalErrorStage(
        logger,
        production=settings.is_production,
        redaction_marker=settings.STACK_REDACTION_MARKER,
    )
    pipeline = RequestPipeline(
        default_stages(logger, router_table, settings.MAX_BODY_BYTES),
        error_stage,
    )
    app.state.router_table = router_table
    app.state.pipeline = pipeline

    app.add_middleware(PipelineMiddleware, pipeline=pipeline)

    return app


app = create_app()


def main() -> None:
    """Console entry point: serve `app` under the process supervisor."""
    supervisor = ProcessSupervisor(app, app.state.settings, app.state.logger)
    sys.exit(supervisor.run())


if __name__ == "__main__":
    main()
