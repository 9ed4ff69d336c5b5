# =============================================================================
# core/pipeline/errors.py - Pipeline Error Types
# =============================================================================
# The single error shape that flows from any stage to the terminal error
# stage, plus the fault raised when a response is written twice.
# =============================================================================

import traceback
from http import HTTPStatus
from typing import Any

DEFAULT_ERROR_STATUS = HTTPStatus.INTERNAL_SERVER_ERROR.value


class PipelineError(Exception):
    """
    Tagged request error: message, HTTP status and optional cause.

    Raised (or returned as a stage result) anywhere in the pipeline and
    consumed exactly once by the terminal error stage, which turns it into
    the JSON error envelope.

    Attributes:
        message: Human-readable message sent to the client
        status_code: HTTP status for the response (500 when not given)
        cause: Underlying exception, if this error wraps one
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code or DEFAULT_ERROR_STATUS
        self.cause = cause
        # Errors that are never raised (e.g. synthesized 404s) still need a trace
        self._origin = traceback.format_stack()[:-1]
        if cause is not None:
            self.__cause__ = cause

    @classmethod
    def from_exception(cls, exc: BaseException) -> "PipelineError":
        """
        Wrap an arbitrary exception as a 500 PipelineError.

        A PipelineError is returned unchanged so its status survives.
        """
        if isinstance(exc, PipelineError):
            return exc
        message = str(exc) or type(exc).__name__
        return cls(message, status_code=DEFAULT_ERROR_STATUS, cause=exc)

    @property
    def stack(self) -> str:
        """
        Formatted trace for logs and non-production responses.

        Uses the cause's traceback when wrapping, the raise traceback when the
        error itself was raised, and the construction site otherwise.
        """
        if self.cause is not None:
            return "".join(traceback.format_exception(self.cause)).rstrip()
        if self.__traceback__ is not None:
            return "".join(traceback.format_exception(self)).rstrip()
        header = f"{type(self).__name__}: {self.message}\n"
        return (header + "".join(self._origin)).rstrip()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, status_code={self.status_code})"


class ResponseAlreadySentError(RuntimeError):
    """Raised when a second terminal write is attempted for one request."""

    def __init__(self, url: str = ""):
        super().__init__(
            f"Response already sent for {url}" if url else "Response already sent"
        )


def not_found_error(url: str) -> PipelineError:
    """Synthesize the 404 error for a request no route answered."""
    return PipelineError(f"Not Found - {url}", status_code=HTTPStatus.NOT_FOUND.value)


def entity_too_large_error() -> PipelineError:
    return PipelineError(
        "request entity too large",
        status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE.value,
    )


def error_envelope(
    error: PipelineError,
    production: bool,
    redaction_marker: str,
) -> dict[str, Any]:
    """
    Build the JSON error body shared by every failure class.

    Args:
        error: The error being reported
        production: Whether stack detail must be withheld
        redaction_marker: Fixed value sent as `stack` in production

    Returns:
        {"message": ..., "stack": ...}
    """
    return {
        "message": error.message,
        "stack": redaction_marker if production else error.stack,
    }
