# =============================================================================
# core/pipeline/result.py - Stage Results
# =============================================================================
# What a stage hands back to the dispatcher: keep going, stop because the
# response is written, stop because no route matched, or stop with an error.
# =============================================================================

from dataclasses import dataclass
from enum import Enum

from core.pipeline.errors import PipelineError


class Flow(str, Enum):
    """Control-flow decision returned by a stage."""
    CONTINUE = "continue"
    RESPONDED = "responded"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class StageResult:
    flow: Flow
    error: PipelineError | None = None

    @classmethod
    def fail(cls, error: PipelineError) -> "StageResult":
        return cls(Flow.ERROR, error)


CONTINUE = StageResult(Flow.CONTINUE)
RESPONDED = StageResult(Flow.RESPONDED)
NOT_FOUND = StageResult(Flow.NOT_FOUND)
