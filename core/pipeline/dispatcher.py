# =============================================================================
# core/pipeline/dispatcher.py - Request Pipeline
# =============================================================================
# Runs the ordered stages for one request and routes every way out of the
# chain (no route, forwarded error, raised exception, no response at all)
# into the terminal error stage, so each request gets exactly one response.
# =============================================================================

from http import HTTPStatus
from typing import Awaitable, Callable, Sequence

from core.pipeline.context import RequestContext
from core.pipeline.error_stage import TerminalErrorStage
from core.pipeline.errors import PipelineError
from core.pipeline.result import Flow, StageResult

Stage = Callable[[RequestContext], Awaitable[StageResult]]


class RequestPipeline:
    """
    Ordered stage list driven by a small dispatcher loop.

    Each stage returns a StageResult; exceptions raised by a stage are
    converted to an ERROR result. The loop stops at the first result that
    is not CONTINUE.

    Args:
        stages: Request stages in order (see core.pipeline.stages)
        error_stage: Terminal error stage for NOT_FOUND / ERROR outcomes
    """

    def __init__(self, stages: Sequence[Stage], error_stage: TerminalErrorStage):
        self.stages = list(stages)
        self.error_stage = error_stage

    async def _run_stage(self, stage: Stage, context: RequestContext) -> StageResult:
        try:
            return await stage(context)
        except Exception as exc:
            return StageResult.fail(PipelineError.from_exception(exc))

    async def run(self, context: RequestContext) -> None:
        """Run every stage for `context` and make sure a response is written."""
        result = None
        for stage in self.stages:
            result = await self._run_stage(stage, context)
            if result.flow != Flow.CONTINUE:
                break

        if result is None or result.flow == Flow.CONTINUE:
            # Chain ran out without anyone answering
            await self.error_stage.not_found(context)
        elif result.flow == Flow.NOT_FOUND:
            await self.error_stage.not_found(context)
        elif result.flow == Flow.ERROR:
            await self.error_stage.fail(context, result.error or PipelineError("Unknown error"))
        elif not context.response.started:
            await self.error_stage.fail(context, PipelineError(
                f"No response produced for {context.method} {context.url}",
                status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value,
            ))
