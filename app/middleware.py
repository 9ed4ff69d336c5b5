# =============================================================================
# app/middleware.py - Pipeline Middleware
# =============================================================================
# ASGI middleware that runs every HTTP request through the RequestPipeline.
# It sits outside FastAPI's exception middleware, so route faults reach the
# pipeline's terminal error stage instead of the framework defaults.
# =============================================================================

from starlette.types import ASGIApp, Receive, Scope, Send

from core.pipeline import RequestContext, RequestPipeline


class PipelineMiddleware:
    """
    Run HTTP requests through `pipeline`; pass other scopes straight through.

    The wrapped app is what the dispatch stage forwards matched requests to.
    """

    def __init__(self, app: ASGIApp, pipeline: RequestPipeline):
        self.app = app
        self.pipeline = pipeline

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        context = RequestContext(scope, receive, send, downstream=self.app)
        await self.pipeline.run(context)
