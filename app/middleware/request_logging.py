"""
Request logging middleware: one log line per request with trace id and latency.
"""
import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with a trace id and log its outcome."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse an upstream trace id so gateway and API logs line up
        trace_id = request.headers.get(TRACE_HEADER) or str(uuid.uuid4())
        request.state.trace_id = trace_id
        actor = request.headers.get("X-User-Id", "system")

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.error(
                f"[{trace_id}] {request.method} {request.url.path} by {actor} "
                f"-> EXCEPTION after {latency_ms}ms: {exc}",
                exc_info=True
            )
            raise

        latency_ms = int((time.perf_counter() - start) * 1000)
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(
            level,
            f"[{trace_id}] {request.method} {request.url.path} by {actor} "
            f"-> {response.status_code} ({latency_ms}ms)"
        )
        response.headers[TRACE_HEADER] = trace_id
        return response
