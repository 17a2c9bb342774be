"""
Error Translator

Maps gateway and upstream errors to OpenAI-style error responses.
"""

from __future__ import annotations
import logging
from typing import Dict, Any, Tuple, Optional
import httpx

from core.exceptions import (
    GatewayError,
    InvalidRequestError,
    ModelNotFoundError,
    NoCredentialError,
    RefreshFailedError,
    StreamTransportError,
)


logger = logging.getLogger("droid-gateway")


# =============================================================================
# Error Response Creation
# =============================================================================

def create_error_response(
    error_type: str,
    message: str,
    code: Optional[str] = None,
) -> Dict[str, Any]:
    """Create an OpenAI-style error body"""
    return {
        "error": {
            "message": message,
            "type": error_type,
            "code": code,
        }
    }


# =============================================================================
# Error Translation
# =============================================================================

def translate_error(error: Exception) -> Tuple[int, Dict[str, Any]]:
    """
    Translate any error raised while serving a request.

    Returns:
        Tuple of (HTTP status code, error response dict)
    """
    if isinstance(error, InvalidRequestError):
        return 400, create_error_response("invalid_request_error", error.message, error.code)

    if isinstance(error, ModelNotFoundError):
        return 404, create_error_response("invalid_request_error", error.message, "model_not_found")

    if isinstance(error, NoCredentialError):
        return 401, create_error_response("authentication_error", error.message, "missing_authorization")

    if isinstance(error, RefreshFailedError):
        return 502, create_error_response(
            "authentication_error",
            f"API key not available: {error.message}",
            "refresh_failed",
        )

    if isinstance(error, StreamTransportError):
        return 502, create_error_response("api_error", error.message, "stream_error")

    if isinstance(error, httpx.TimeoutException):
        return 504, create_error_response("api_error", "Upstream request timed out", "timeout")

    if isinstance(error, httpx.ConnectError):
        return 503, create_error_response("api_error", "Cannot connect to upstream", "connect_error")

    if isinstance(error, httpx.RequestError):
        return 502, create_error_response(
            "api_error",
            f"Upstream request error: {type(error).__name__}",
            "upstream_error",
        )

    if isinstance(error, GatewayError):
        return 500, create_error_response("api_error", error.message, "gateway_error")

    logger.error(f"Unexpected error: {error}", exc_info=error)
    return 500, create_error_response("api_error", "Internal server error", "internal_error")


def create_upstream_error(status: int, details: str) -> Tuple[int, Dict[str, Any]]:
    """Relay a non-2xx upstream response with its status"""
    return status, {
        "error": f"Endpoint returned {status}",
        "details": details,
    }


def create_endpoint_mismatch_error(path: str, model: str, endpoint_type: str) -> Tuple[int, Dict[str, Any]]:
    """Direct endpoint called with a model of another protocol type"""
    return 400, create_error_response(
        "invalid_request_error",
        f"{path} only supports {endpoint_type} endpoints, model {model} is not one",
        "invalid_endpoint_type",
    )
