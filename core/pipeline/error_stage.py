# =============================================================================
# core/pipeline/error_stage.py - Terminal Error Stage
# =============================================================================
# Last stop for every request that did not get a response from a route:
# unmatched requests become a synthesized 404, and every error (404 or not)
# is written with the same JSON envelope.
#
#   NORMAL --no route--> NOT_FOUND --synthesized 404--> ERROR
#   NORMAL --forwarded PipelineError--------------------> ERROR
# =============================================================================

from enum import Enum

from starlette.responses import JSONResponse

from core.pipeline.context import RequestContext
from core.pipeline.errors import PipelineError, error_envelope, not_found_error


class ErrorStageState(str, Enum):
    NORMAL = "normal"
    NOT_FOUND = "not_found"
    ERROR = "error"


class TerminalErrorStage:
    """
    Turns "no route" and forwarded errors into exactly one error response.

    Args:
        logger: StructuredLogger (warn for 404s, error for every response)
        production: Withhold stack traces from clients
        redaction_marker: Value sent as `stack` when production is set
    """

    def __init__(self, logger, production: bool, redaction_marker: str):
        self._logger = logger
        self._production = production
        self._redaction_marker = redaction_marker

    async def not_found(self, context: RequestContext) -> None:
        """NOT_FOUND branch: synthesize the 404 and hand it to `fail`."""
        context.locals["error_stage"] = ErrorStageState.NOT_FOUND
        error = not_found_error(context.url)
        self._logger.warn(f"404 Not Found: {context.method} {context.url}")
        await self.fail(context, error)

    async def fail(self, context: RequestContext, error: PipelineError) -> None:
        """ERROR state: log the error and write the envelope once."""
        context.locals["error_stage"] = ErrorStageState.ERROR
        status_code = error.status_code
        stack = error.stack

        self._logger.error(
            f"Error: {error.message}",
            status=status_code,
            stack=stack,
            url=context.url,
            method=context.method,
        )

        if context.response.started:
            # Fault after the handler began streaming; the client already has
            # its one response
            self._logger.error(
                "Response already started; error not sent to client",
                status=context.response.status_code,
                url=context.url,
                method=context.method,
            )
            return

        context.response.status_code = status_code
        response = JSONResponse(
            status_code=status_code,
            content=error_envelope(error, self._production, self._redaction_marker),
        )
        await context.respond(response)
