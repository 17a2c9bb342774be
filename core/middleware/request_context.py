"""
Request Context Middleware

Gives each inbound request an id, scopes the logging context to it, logs
the request line and its outcome, and stamps X-Request-ID and
X-Response-Time on the response. For streaming responses the recorded
time is time to headers.
"""

from __future__ import annotations
import uuid
import time
import logging
from typing import Callable
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.handlers.logger import RequestContext, set_context, request_context


logger = logging.getLogger("droid-gateway")

SLOW_REQUEST_MS = 100


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Per-request id, logging context and timing headers"""

    def __init__(self, app, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or f"req_{uuid.uuid4().hex[:16]}"
        started = time.perf_counter()

        request.state.request_id = request_id
        request.state.start_time = started
        token = set_context(RequestContext(request_id=request_id, start_time=started))

        try:
            logger.info(
                f"{request.method} {request.url.path}",
                extra={"method": request.method, "path": request.url.path},
            )
            response = await call_next(request)

            duration_ms = (time.perf_counter() - started) * 1000
            response.headers[self.header_name] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

            log = logger.info if duration_ms > SLOW_REQUEST_MS or response.status_code >= 400 else logger.debug
            log(
                f"{request.method} {request.url.path} -> {response.status_code} in {duration_ms:.1f}ms",
                extra={"status_code": response.status_code, "duration_ms": round(duration_ms, 2)},
            )
            return response
        finally:
            request_context.reset(token)
