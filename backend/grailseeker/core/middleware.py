"""FastAPI middleware for request/response handling."""

from __future__ import annotations

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from grailseeker.core.tracing import generate_trace_id, trace_context

logger = structlog.get_logger("grailseeker.middleware")


class TracingMiddleware(BaseHTTPMiddleware):
    """Middleware to add trace IDs to all requests."""

    async def dispatch(self, request: Request, call_next):
        """Bind a trace id for the request and echo it in X-Trace-ID.

        Reuses the incoming X-Trace-ID header when present.
        """
        trace_id = request.headers.get("X-Trace-ID") or generate_trace_id()

        with trace_context(trace_id):
            logger.debug("Processing request", method=request.method, path=request.url.path)

            response = await call_next(request)
            response.headers["X-Trace-ID"] = trace_id

            logger.debug(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            return response
