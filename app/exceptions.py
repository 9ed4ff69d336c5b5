# =============================================================================
# app/exceptions.py - Exception Handlers
# =============================================================================
# Centralized exception handling for the API.
# Framework errors (HTTPException, request validation) are re-raised as
# PipelineError so the terminal error stage writes them with the same
# envelope as every other failure.
# =============================================================================

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.pipeline.errors import PipelineError


# =============================================================================
# Exception Handlers
# =============================================================================

async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
):
    """
    Forward an HTTPException to the terminal error stage.

    Keeps the exception's status; `detail` becomes the envelope message.
    """
    raise PipelineError(str(exc.detail), status_code=exc.status_code, cause=exc) from exc


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
):
    """
    Forward a request validation failure to the terminal error stage as a 422.
    """
    errors = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in exc.errors()
    )
    message = f"Validation error: {errors}" if errors else "Validation error"
    raise PipelineError(message, status_code=422, cause=exc) from exc


def register_exception_handlers(app: FastAPI) -> None:
    """Install the forwarding handlers on `app`."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
