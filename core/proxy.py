"""
Proxy Router - Main Request Handler

Accepts OpenAI chat-completions requests, routes them by model to an
Anthropic, Responses or common upstream, and translates the response
back. Also exposes direct pass-through endpoints for the two vendor
protocols.
"""

from __future__ import annotations
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from config.settings import EndpointConfig, EndpointType, ModelConfig, Settings
from core.adapters import openai_to_anthropic, openai_to_common, openai_to_responses
from core.adapters.errors import create_endpoint_mismatch_error, create_upstream_error
from core.adapters.headers import build_headers
from core.adapters.response_translator import translate_response
from core.adapters.stream_translator import StreamTranslator, create_stream_translator
from core.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    ModelNotFoundError,
    StreamTransportError,
    UpstreamFormatError,
)
from core.handlers.credentials import CredentialStore
from core.handlers.logger import log_request, log_response, log_upstream_call, update_context
from core.models.openai_types import ChatCompletionsRequest


logger = logging.getLogger("droid-gateway")
router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# =============================================================================
# Dependencies
# =============================================================================

async def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared upstream HTTP client"""
    return request.app.state.http_client


async def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


# =============================================================================
# Helpers
# =============================================================================

async def _read_json(request: Request) -> Dict[str, Any]:
    try:
        body = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidRequestError(f"Invalid JSON body: {e}")
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return body


def _resolve_model(settings: Settings, model_id: Optional[str]) -> Tuple[ModelConfig, EndpointConfig]:
    if not model_id:
        raise InvalidRequestError("model is required", code="missing_model")

    model = settings.get_model(model_id)
    if model is None:
        raise ModelNotFoundError(model_id)

    endpoint = settings.get_endpoint(model.type)
    if endpoint is None:
        raise ConfigurationError(f"Endpoint type {model.type.value} not found")

    update_context(model=model_id, endpoint=model.type.value)
    logger.info(f"Routing to {model.type.value} endpoint: {endpoint.base_url}")
    return model, endpoint


def _shape_request(
    model: ModelConfig,
    body: ChatCompletionsRequest,
    raw_body: Dict[str, Any],
    settings: Settings,
) -> Dict[str, Any]:
    """Backend-ready request body for the model's endpoint type"""
    if model.type == EndpointType.ANTHROPIC:
        return openai_to_anthropic.translate_request(raw_body, model.reasoning_level)
    if model.type == EndpointType.OPENAI:
        return openai_to_responses.translate_request(raw_body, model.reasoning_level)

    common_request = openai_to_common.translate_request(raw_body, settings.gateway.system_prompt)
    common_request["stream"] = body.is_streaming
    return common_request


async def _upstream_error_response(response: httpx.Response) -> JSONResponse:
    error_text = (await response.aread()).decode("utf-8", errors="replace")
    await response.aclose()
    logger.error(f"Endpoint error: {response.status_code}", extra={"details": error_text[:500]})
    status_code, body = create_upstream_error(response.status_code, error_text)
    return JSONResponse(status_code=status_code, content=body)


def _invalid_body_response(response: httpx.Response, reason: str) -> JSONResponse:
    logger.error(f"Endpoint returned a malformed body: {reason}", extra={"details": response.text[:500]})
    return JSONResponse(
        status_code=502,
        content={"error": "Endpoint returned invalid JSON", "details": response.text[:500]},
    )


async def _relay_stream(
    response: httpx.Response,
    translator: Optional[StreamTranslator],
) -> AsyncIterator[bytes]:
    """
    Client-facing stream for an open upstream response.

    The upstream response is closed on every exit path: completion,
    client disconnect (task cancellation) and read failure.
    """
    try:
        if translator is None:
            async for chunk in response.aiter_bytes():
                yield chunk
        else:
            async for record in translator.transform_stream(response.aiter_bytes()):
                yield record
        logger.info("Stream completed")

    except StreamTransportError as e:
        # Headers are already committed; closing is the only signal left
        logger.error(f"Stream error: {e}")

    except (httpx.TransportError, httpx.StreamError) as e:
        logger.error(f"Stream error: {e}")

    except asyncio.CancelledError:
        logger.info("Stream cancelled by client")
        raise

    finally:
        await response.aclose()


async def _call_upstream(
    client: httpx.AsyncClient,
    url: str,
    headers: Dict[str, str],
    body: Dict[str, Any],
    streaming: bool,
    translator: Optional[StreamTranslator] = None,
    endpoint_type: Optional[EndpointType] = None,
    model_id: str = "",
    dev_mode: bool = False,
) -> JSONResponse | StreamingResponse:
    """Make exactly one upstream call and build the client response"""
    log_request(logger, "POST", url, headers, body, dev_mode=dev_mode)

    upstream_request = client.build_request("POST", url, headers=headers, json=body)
    response = await client.send(upstream_request, stream=True)
    logger.info(f"Response status: {response.status_code}")

    if not response.is_success:
        return await _upstream_error_response(response)

    if streaming:
        return StreamingResponse(
            _relay_stream(response, translator),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    try:
        await response.aread()
    finally:
        await response.aclose()

    try:
        data = response.json()
    except ValueError:
        return _invalid_body_response(response, "non-JSON body")

    log_response(logger, response.status_code, data, dev_mode=dev_mode)
    if endpoint_type is not None:
        try:
            data = translate_response(endpoint_type, data, model_id)
        except UpstreamFormatError as e:
            return _invalid_body_response(response, e.message)
    return JSONResponse(content=data)


# =============================================================================
# Models Endpoint
# =============================================================================

@router.get("/v1/models")
async def list_models(settings: Settings = Depends(get_app_settings)):
    """List configured models"""
    logger.info("GET /v1/models")
    return {
        "object": "list",
        "data": [
            {
                "id": model.id,
                "object": "model",
                "created": 0,
                "owned_by": model.type.value,
                "permission": [],
                "root": model.id,
                "parent": None,
            }
            for model in settings.models
        ],
    }


# =============================================================================
# Chat Completions Endpoint
# =============================================================================

@router.post("/v1/chat/completions")
async def create_chat_completion(
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
    credential_store: CredentialStore = Depends(get_credential_store),
):
    """
    OpenAI-compatible Chat Completions endpoint.

    The request is translated for the model's endpoint type and the
    response is translated back to chat.completion(.chunk) format.
    """
    raw_body = await _read_json(request)
    model, endpoint = _resolve_model(settings, raw_body.get("model"))

    try:
        body = ChatCompletionsRequest(**raw_body)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid request: {e}")

    authorization = await credential_store.get_credential(request.headers.get("authorization"))

    upstream_body = _shape_request(model, body, raw_body, settings)
    streaming = body.is_streaming
    headers = build_headers(
        model.type,
        authorization,
        request.headers,
        streaming=streaming,
        user_agent=settings.gateway.user_agent,
    )
    log_upstream_call(logger, model.type.value, model.id, streaming=streaming)

    return await _call_upstream(
        client,
        endpoint.base_url,
        headers,
        upstream_body,
        streaming=streaming,
        translator=create_stream_translator(model.type, model.id) if streaming else None,
        endpoint_type=model.type,
        model_id=model.id,
        dev_mode=settings.gateway.dev_mode,
    )


# =============================================================================
# Direct Pass-through Endpoints
# =============================================================================

async def _handle_direct(
    request: Request,
    expected_type: EndpointType,
    client: httpx.AsyncClient,
    settings: Settings,
    credential_store: CredentialStore,
):
    """Forward a vendor-format request unchanged to its own endpoint"""
    raw_body = await _read_json(request)
    model, endpoint = _resolve_model(settings, raw_body.get("model"))

    if model.type != expected_type:
        status_code, error_body = create_endpoint_mismatch_error(
            request.url.path, model.id, expected_type.value
        )
        return JSONResponse(status_code=status_code, content=error_body)

    authorization = await credential_store.get_credential(request.headers.get("authorization"))

    streaming = raw_body.get("stream") is not False
    headers = build_headers(
        expected_type,
        authorization,
        request.headers,
        streaming=streaming,
        user_agent=settings.gateway.user_agent,
    )
    log_upstream_call(logger, expected_type.value, model.id, streaming=streaming, direct=True)

    return await _call_upstream(
        client,
        endpoint.base_url,
        headers,
        raw_body,
        streaming=streaming,
        dev_mode=settings.gateway.dev_mode,
    )


@router.post("/v1/responses")
async def create_response(
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
    credential_store: CredentialStore = Depends(get_credential_store),
):
    """Responses API pass-through (openai endpoints only)"""
    return await _handle_direct(request, EndpointType.OPENAI, client, settings, credential_store)


@router.post("/v1/messages")
async def create_message(
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
    credential_store: CredentialStore = Depends(get_credential_store),
):
    """Anthropic Messages pass-through (anthropic endpoints only)"""
    return await _handle_direct(request, EndpointType.ANTHROPIC, client, settings, credential_store)
