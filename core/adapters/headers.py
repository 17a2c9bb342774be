"""
Upstream Header Builders

Outbound headers per endpoint type. The authorization value always comes
from the credential store; session/message ids and x-stainless-* SDK
headers are taken from the client when present.
"""

from __future__ import annotations
import uuid
from typing import Dict, Mapping, Optional

from config.settings import EndpointType


STAINLESS_DEFAULTS = {
    "x-stainless-arch": "x64",
    "x-stainless-lang": "js",
    "x-stainless-os": "MacOS",
    "x-stainless-runtime": "node",
    "x-stainless-retry-count": "0",
    "x-stainless-runtime-version": "v24.3.0",
}

SDK_PACKAGE_VERSIONS = {
    EndpointType.ANTHROPIC: "0.57.0",
    EndpointType.OPENAI: "5.22.0",
    EndpointType.COMMON: "5.23.2",
}


def _session_headers(client_headers: Mapping[str, str]) -> Dict[str, str]:
    return {
        "x-factory-client": "cli",
        "x-session-id": client_headers.get("x-session-id") or str(uuid.uuid4()),
        "x-assistant-message-id": client_headers.get("x-assistant-message-id") or str(uuid.uuid4()),
    }


def _stainless_headers(client_headers: Mapping[str, str], package_version: str) -> Dict[str, str]:
    defaults = {**STAINLESS_DEFAULTS, "x-stainless-package-version": package_version}
    return {
        header: client_headers.get(header) or default
        for header, default in defaults.items()
    }


def build_headers(
    endpoint_type: EndpointType,
    authorization: str,
    client_headers: Optional[Mapping[str, str]] = None,
    streaming: bool = True,
    user_agent: str = "factory-cli/0.19.3",
) -> Dict[str, str]:
    """
    Build outbound headers for one upstream call.

    Args:
        endpoint_type: Backend protocol variant
        authorization: Value from CredentialStore.get_credential()
        client_headers: Inbound request headers
        streaming: Whether the upstream call streams
        user_agent: User agent sent upstream
    """
    client_headers = client_headers or {}

    headers = {
        "accept": "application/json",
        "content-type": "application/json",
        "authorization": authorization,
        "user-agent": user_agent,
        "connection": "keep-alive",
    }
    headers.update(_session_headers(client_headers))

    if endpoint_type == EndpointType.ANTHROPIC:
        headers.update({
            "anthropic-version": "2023-06-01",
            "anthropic-beta": "interleaved-thinking-2025-05-14",
            "x-api-key": "placeholder",
            "x-model-provider": "anthropic",
            "x-stainless-timeout": client_headers.get("x-stainless-timeout") or "600",
        })
        if streaming:
            headers["x-stainless-helper-method"] = "stream"
    elif endpoint_type == EndpointType.OPENAI:
        headers.update({
            "x-api-key": "placeholder",
            "x-model-provider": "openai",
        })
    else:
        headers["x-api-provider"] = "baseten"

    headers.update(_stainless_headers(client_headers, SDK_PACKAGE_VERSIONS[endpoint_type]))
    return headers
