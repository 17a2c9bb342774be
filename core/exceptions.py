"""
Gateway Exceptions

Error taxonomy shared by the credential store, the stream translators
and the routing layer.
"""

from __future__ import annotations
from typing import Optional


class GatewayError(Exception):
    """Base exception for gateway errors"""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(GatewayError):
    """No usable configuration where one is required"""
    pass


# =============================================================================
# Credential Errors
# =============================================================================

class CredentialError(GatewayError):
    """Base class for upstream credential failures"""
    pass


class NoCredentialError(CredentialError):
    """Client-supplied mode and the client sent no authorization"""

    def __init__(self, message: str = "No authorization header provided") -> None:
        super().__init__(message)


class RefreshFailedError(CredentialError):
    """Token endpoint rejected the refresh exchange"""

    def __init__(self, status_code: Optional[int], body: str) -> None:
        if status_code is None:
            message = f"Failed to refresh token: {body}"
        else:
            message = f"Failed to refresh token: {status_code} {body}"
        super().__init__(message)
        self.status_code = status_code
        self.body = body


# =============================================================================
# Stream Errors
# =============================================================================

class StreamError(GatewayError):
    """Base class for streaming failures"""
    pass


class StreamDecodeError(StreamError):
    """A single SSE record could not be interpreted"""
    pass


class StreamTransportError(StreamError):
    """Reading the upstream byte stream failed mid-stream"""
    pass


# =============================================================================
# Request Errors
# =============================================================================

class ModelNotFoundError(GatewayError):
    """Requested model is not configured"""

    def __init__(self, model: str) -> None:
        super().__init__(f"Model {model} not found")
        self.model = model


class InvalidRequestError(GatewayError):
    """Incoming request is invalid"""

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class UpstreamFormatError(GatewayError):
    """Upstream returned 2xx with a body of the wrong shape"""
    pass
