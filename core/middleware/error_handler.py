"""
Global Exception Handler Middleware

Catches all exceptions and returns OpenAI-style error responses.
"""

from __future__ import annotations
import logging
from typing import Callable
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from core.adapters.errors import translate_error
from core.exceptions import GatewayError


logger = logging.getLogger("droid-gateway")


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    Turn uncaught exceptions into one non-2xx JSON response.

    Gateway errors (bad request, unknown model, credential failures) keep
    their mapped status; anything else is a 500.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> JSONResponse:
        try:
            return await call_next(request)

        except GatewayError as e:
            status_code, body = translate_error(e)
            logger.warning(
                f"Request failed: {e.message}",
                extra={"path": request.url.path, "error_type": type(e).__name__},
            )
            return self._error_response(status_code, body, request)

        except Exception as e:
            logger.exception(
                f"Unhandled exception: {e}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "error_type": type(e).__name__,
                }
            )
            status_code, body = translate_error(e)
            return self._error_response(status_code, body, request)

    def _error_response(self, status_code: int, body: dict, request: Request) -> JSONResponse:
        response = JSONResponse(status_code=status_code, content=body)
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            response.headers["X-Request-ID"] = request_id
        return response
