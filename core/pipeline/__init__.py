# =============================================================================
# core/pipeline/ - Request Lifecycle
# =============================================================================
# The request pipeline and everything it is built from:
# - context.py: RequestContext / ResponseState (per-request state)
# - errors.py: PipelineError, the 404 constructor and the error envelope
# - result.py: StageResult values returned by stages
# - stages.py: security headers, body parsing, access log, dispatch
# - router_table.py: (method, path) -> route lookup
# - error_stage.py: not-found synthesis and the catch-all error responder
# - dispatcher.py: RequestPipeline, the loop that runs the stages
# =============================================================================

from core.pipeline.context import RequestContext, ResponseState
from core.pipeline.dispatcher import RequestPipeline
from core.pipeline.error_stage import ErrorStageState, TerminalErrorStage
from core.pipeline.errors import (
    PipelineError,
    ResponseAlreadySentError,
    error_envelope,
    not_found_error,
)
from core.pipeline.result import Flow, StageResult
from core.pipeline.router_table import RouterTable
from core.pipeline.stages import SECURITY_HEADERS, default_stages

__all__ = [
    "RequestContext",
    "ResponseState",
    "RequestPipeline",
    "ErrorStageState",
    "TerminalErrorStage",
    "PipelineError",
    "ResponseAlreadySentError",
    "error_envelope",
    "not_found_error",
    "Flow",
    "StageResult",
    "RouterTable",
    "SECURITY_HEADERS",
    "default_stages",
]
