"""
Request logging middleware.

Every request gets a short id (echoed as X-Request-ID). Query values that
can carry OAuth secrets (authorization codes, signed state, tokens) are
masked before the request line is logged.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from urllib.parse import urlencode

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

logger = logging.getLogger(__name__)

REDACTED_PARAMS = frozenset({"code", "state", "access_token", "refresh_token"})


def get_request_id() -> str:
    """Id of the request being handled, or '' outside a request."""
    return request_id_ctx.get()


def redact_query(request: Request) -> str:
    masked = [
        (key, "[redacted]" if key.lower() in REDACTED_PARAMS else value)
        for key, value in request.query_params.multi_items()
    ]
    return urlencode(masked)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request on arrival and one on completion."""

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = uuid.uuid4().hex[:8]
        request_id_ctx.set(req_id)

        query = redact_query(request)
        target = f"{request.url.path}?{query}" if query else request.url.path
        logger.info(f"[{req_id}] {request.method} {target}", extra={"request_id": req_id})

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.exception(f"[{req_id}] {request.method} {request.url.path} raised after {elapsed_ms:.0f}ms")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[{req_id}] {response.status_code} {request.method} {request.url.path} ({elapsed_ms:.0f}ms)",
            extra={"request_id": req_id, "status_code": response.status_code},
        )
        response.headers["X-Request-ID"] = req_id
        return response
