# =============================================================================
# core/pipeline/stages.py - Request Stages
# =============================================================================
# The request-level stages, in the order the pipeline runs them:
#
#   1. security_headers  - hardening headers on every response
#   2. parse_body        - JSON / form bodies into request.state.body
#   3. access_log        - one info record per request
#   4. dispatch          - hand the request to the matching route
#
# Each factory returns an async `(context) -> StageResult` callable.
# =============================================================================

import json
from http import HTTPStatus
from urllib.parse import parse_qsl

from core.pipeline.context import RequestContext
from core.pipeline.errors import PipelineError
from core.pipeline.result import CONTINUE, NOT_FOUND, RESPONDED, StageResult
from core.pipeline.router_table import RouterTable

JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"

SECURITY_HEADERS: dict[str, str] = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


# =============================================================================
# 1. Security Headers
# =============================================================================

def security_headers(headers: dict[str, str] | None = None):
    """Register hardening headers before anything can be written."""
    headers = dict(SECURITY_HEADERS if headers is None else headers)

    async def stage(context: RequestContext) -> StageResult:
        for name, value in headers.items():
            context.response.set_header(name, value)
        return CONTINUE

    return stage


# =============================================================================
# 2. Body Parsing
# =============================================================================

def media_type(content_type: str | None) -> str:
    """`application/json; charset=utf-8` -> `application/json`"""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def parse_json_body(raw: bytes):
    """
    Parse a JSON request body.

    An empty body parses to {}. Only objects and arrays are accepted at the
    top level.

    Raises:
        PipelineError: 400 for undecodable or malformed bodies
    """
    if not raw.strip():
        return {}
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PipelineError(
            "Request body is not valid UTF-8",
            status_code=HTTPStatus.BAD_REQUEST.value,
            cause=exc,
        ) from exc
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PipelineError(
            f"Malformed JSON body: {exc.msg} (line {exc.lineno} column {exc.colno})",
            status_code=HTTPStatus.BAD_REQUEST.value,
            cause=exc,
        ) from exc
    if not isinstance(value, (dict, list)):
        raise PipelineError(
            "JSON body must be an object or an array",
            status_code=HTTPStatus.BAD_REQUEST.value,
        )
    return value


def parse_form_body(raw: bytes) -> dict[str, str | list[str]]:
    """
    Parse an url-encoded form body into a mapping.

    Repeated keys collect their values into a list.
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PipelineError(
            "Request body is not valid UTF-8",
            status_code=HTTPStatus.BAD_REQUEST.value,
            cause=exc,
        ) from exc

    form: dict[str, str | list[str]] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        if key not in form:
            form[key] = value
        elif isinstance(form[key], list):
            form[key].append(value)
        else:
            form[key] = [form[key], value]
    return form


def parse_body(max_body_bytes: int):
    """
    Populate `request.state.body` from the request payload.

    JSON and form bodies are read up to `max_body_bytes` (413 beyond it) and
    parsed. Any other body is left unread on the request stream, where the
    handler reads it as raw bytes; `request.state.body` is None for those.
    """
    parsers = {
        JSON_MEDIA_TYPE: parse_json_body,
        FORM_MEDIA_TYPE: parse_form_body,
    }

    async def stage(context: RequestContext) -> StageResult:
        parser = parsers.get(media_type(context.request.headers.get("content-type")))
        if parser is None:
            context.request.state.body = None
            return CONTINUE

        raw = await context.read_body(limit=max_body_bytes)
        context.request.state.body = parser(raw)
        return CONTINUE

    return stage


# =============================================================================
# 3. Access Log
# =============================================================================

def access_log(logger):
    """Emit one info record per request; logging failures never fail the request."""

    async def stage(context: RequestContext) -> StageResult:
        try:
            logger.info(
                f"Incoming Request: {context.method} {context.url}",
                ip=context.client_address,
                user_agent=context.user_agent,
            )
        except Exception:  # noqa: BLE001
            pass
        return CONTINUE

    return stage


# =============================================================================
# 4. Router Dispatch
# =============================================================================

def dispatch(router_table: RouterTable):
    """Forward to the matching route, or report NOT_FOUND when none matches."""

    async def stage(context: RequestContext) -> StageResult:
        route = router_table.match(context.method, context.path)
        if route is None:
            return NOT_FOUND
        await context.forward()
        return RESPONDED

    return stage


def default_stages(logger, router_table: RouterTable, max_body_bytes: int) -> list:
    """The request stages in their required order."""
    return [
        security_headers(),
        parse_body(max_body_bytes),
        access_log(logger),
        dispatch(router_table),
    ]
