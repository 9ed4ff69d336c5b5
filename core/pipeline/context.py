# =============================================================================
# core/pipeline/context.py - Per-Request State
# =============================================================================
# RequestContext: the request plus everything stages share while it runs.
# ResponseState: the response being built, guarding the single terminal write.
# =============================================================================

from typing import Any

from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.pipeline.errors import ResponseAlreadySentError, entity_too_large_error


class ResponseState:
    """
    Response in progress for one request.

    Stages register headers here before anything is written. All output goes
    through `send`, which merges those headers into the response start and
    refuses a second response start.
    """

    def __init__(self, send: Send, url: str = ""):
        self._send = send
        self._url = url
        self.status_code = 200
        self.headers: dict[str, str] = {}
        self.started = False
        self.finished = False

    def set_header(self, name: str, value: str) -> None:
        self.headers[name.lower()] = value

    def _merge_headers(self, message: Message) -> Message:
        raw = list(message.get("headers", []))
        present = {name.lower() for name, _ in raw}
        for name, value in self.headers.items():
            key = name.encode("latin-1")
            if key not in present:
                raw.append((key, value.encode("latin-1")))
        return {**message, "headers": raw}

    async def send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            if self.started:
                raise ResponseAlreadySentError(self._url)
            self.started = True
            self.status_code = message["status"]
            message = self._merge_headers(message)
        elif message["type"] == "http.response.body":
            if not message.get("more_body", False):
                self.finished = True
        await self._send(message)

    async def write(self, response: Response, scope: Scope, receive: Receive) -> None:
        """Send a complete Starlette response; raises if one was already sent."""
        if self.started:
            raise ResponseAlreadySentError(self._url)
        await response(scope, receive, self.send)


class RequestContext:
    """
    Everything a stage may look at or touch for one request.

    The request itself is read-only to stages and handlers; per-request
    values travel in `locals` (also exposed as `request.state.locals`).
    The parsed body is stored as `request.state.body` by the body parser;
    a body it reads is replayed to the downstream app.
    """

    def __init__(self, scope: Scope, receive: Receive, send: Send, downstream: ASGIApp):
        self.scope = scope
        self._receive = receive
        self.downstream = downstream
        self.request = Request(scope, receive)
        self.url = original_url(scope)
        self.response = ResponseState(send, self.url)
        self.locals: dict[str, Any] = {}
        self.request.state.locals = self.locals
        self._body: bytes | None = None
        self._replayed = False

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def path(self) -> str:
        return self.request.url.path

    @property
    def client_address(self) -> str | None:
        client = self.request.client
        return client.host if client else None

    @property
    def user_agent(self) -> str | None:
        return self.request.headers.get("user-agent")

    async def read_body(self, limit: int | None = None) -> bytes:
        """
        Read the raw body once; later reads return the cached bytes.

        With a limit, a declared Content-Length above it is rejected before
        anything is received, and the stream stops at the first chunk that
        crosses it.

        Raises:
            PipelineError: 413 when the body is larger than `limit`
        """
        if self._body is not None:
            return self._body

        if limit is not None:
            declared = self.request.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > limit:
                raise entity_too_large_error()

        chunks = []
        size = 0
        async for chunk in self.request.stream():
            size += len(chunk)
            if limit is not None and size > limit:
                raise entity_too_large_error()
            chunks.append(chunk)
        self._body = b"".join(chunks)
        return self._body

    async def _replay_receive(self) -> Message:
        # Cached body first, then the real channel (only disconnects are left)
        if not self._replayed:
            self._replayed = True
            return {"type": "http.request", "body": self._body or b"", "more_body": False}
        return await self._receive()

    async def forward(self) -> None:
        """Run the downstream ASGI app with the replayed body and guarded send."""
        receive = self._replay_receive if self._body is not None else self._receive
        await self.downstream(self.scope, receive, self.response.send)

    async def respond(self, response: Response) -> None:
        await self.response.write(response, self.scope, self._receive)


def original_url(scope: Scope) -> str:
    """Request path plus query string, as the client sent it."""
    path = scope.get("path", "")
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path
