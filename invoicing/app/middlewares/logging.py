import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..obs import capture_exception
from ..utils.responses import err
from .request_id import HEADER, request_id_ctx, resolve_request_id

logger = logging.getLogger("api")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Emit one access log line per request and trap unhandled errors."""

    async def dispatch(self, request: Request, call_next):
        req_id = getattr(request.state, "request_id", None)
        token = None
        if not req_id:
            req_id = resolve_request_id(request.headers.get(HEADER))
            request.state.request_id = req_id
            # Fallback for contexts where RequestIdMiddleware is absent
            token = request_id_ctx.set(req_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            error_id = str(uuid.uuid4())
            capture_exception(exc, route=request.url.path, error_id=error_id)
            payload = err("INTERNAL", "Internal Server Error")
            payload["error_id"] = error_id
            response = JSONResponse(payload, status_code=500)
        dur_ms = int((time.perf_counter() - start) * 1000)

        log_fn = logger.error if response.status_code >= 500 else logger.info
        log_fn(
            "%s %s -> %d in %dms",
            request.method,
            request.url.path,
            response.status_code,
            dur_ms,
        )
        response.headers[HEADER] = req_id

        if token is not None:
            request_id_ctx.reset(token)
        return response
