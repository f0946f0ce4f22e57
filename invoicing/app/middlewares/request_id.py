"""Request correlation ids shared by logs, error envelopes and Sentry."""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

HEADER = "X-Request-ID"
# Caller supplied ids are echoed into logs, so keep them short and printable.
_VALID_ID = re.compile(r"[A-Za-z0-9._:-]{1,64}")

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def current_request_id() -> str | None:
    return request_id_ctx.get(None)


def resolve_request_id(supplied: str | None) -> str:
    """Return ``supplied`` when it is a usable id, else a fresh one."""

    if supplied and _VALID_ID.fullmatch(supplied):
        return supplied
    return uuid.uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and echo it on the response."""

    async def dispatch(self, request: Request, call_next):
        req_id = resolve_request_id(request.headers.get(HEADER))
        token = request_id_ctx.set(req_id)
        request.state.request_id = req_id
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[HEADER] = req_id
        return response
