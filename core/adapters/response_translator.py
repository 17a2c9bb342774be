"""
Non-Streaming Response Translator

Collapses a complete upstream response into one OpenAI chat.completion
object.
"""

from __future__ import annotations
import json
import time
import uuid
import logging
from typing import Dict, Any, List, Optional

from config.settings import EndpointType
from core.adapters.stream_translator import map_stop_reason
from core.exceptions import UpstreamFormatError


logger = logging.getLogger("droid-gateway")


def _completion(
    model: str,
    content: Optional[str],
    finish_reason: str,
    prompt_tokens: int,
    completion_tokens: int,
    response_id: Optional[str] = None,
    tool_calls: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls

    return {
        "id": f"chatcmpl-{response_id or uuid.uuid4().hex[:24]}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [{
            "index": 0,
            "message": message,
            "finish_reason": finish_reason,
        }],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


def _require_object(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise UpstreamFormatError(f"{what} is not a JSON object")
    return value


def _require_list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise UpstreamFormatError(f"{what} is not a JSON array")
    return value


def _require_text(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise UpstreamFormatError(f"{what} is not a string")
    return value


def _token_counts(usage: Any) -> Dict[str, int]:
    usage = _require_object(usage or {}, "usage")
    counts = {}
    for key in ("input_tokens", "output_tokens"):
        value = usage.get(key) or 0
        if not isinstance(value, int):
            raise UpstreamFormatError(f"usage.{key} is not an integer")
        counts[key] = value
    return counts


def translate_anthropic_response(anthropic_response: Dict[str, Any], model: str) -> Dict[str, Any]:
    """Anthropic message -> chat.completion"""
    _require_object(anthropic_response, "response body")
    text_parts = []
    tool_calls = []

    for block in _require_list(anthropic_response.get("content"), "content"):
        _require_object(block, "content block")
        if block.get("type") == "text":
            text_parts.append(_require_text(block.get("text"), "text block"))
        elif block.get("type") == "tool_use":
            tool_calls.append({
                "id": block.get("id") or f"call_{uuid.uuid4().hex[:24]}",
                "type": "function",
                "function": {
                    "name": block.get("name", ""),
                    "arguments": json.dumps(block.get("input") or {}),
                },
            })

    usage = _token_counts(anthropic_response.get("usage"))
    stop_reason = _require_text(anthropic_response.get("stop_reason"), "stop_reason")
    return _completion(
        model=model,
        content="".join(text_parts) if text_parts else None,
        finish_reason=map_stop_reason(stop_reason),
        prompt_tokens=usage["input_tokens"],
        completion_tokens=usage["output_tokens"],
        response_id=anthropic_response.get("id"),
        tool_calls=tool_calls,
    )


def translate_responses_response(responses_response: Dict[str, Any], model: str) -> Dict[str, Any]:
    """Responses API object -> chat.completion"""
    _require_object(responses_response, "response body")
    text_parts = []
    tool_calls = []

    for item in _require_list(responses_response.get("output"), "output"):
        _require_object(item, "output item")
        if item.get("type") == "message":
            for part in _require_list(item.get("content"), "message content"):
                if isinstance(part, dict) and part.get("type") == "output_text":
                    text_parts.append(_require_text(part.get("text"), "output_text"))
        elif item.get("type") == "function_call":
            tool_calls.append({
                "id": item.get("call_id") or item.get("id") or f"call_{uuid.uuid4().hex[:24]}",
                "type": "function",
                "function": {
                    "name": item.get("name", ""),
                    "arguments": item.get("arguments", "{}"),
                },
            })

    if tool_calls:
        finish_reason = "tool_calls"
    elif responses_response.get("status", "completed") == "completed":
        finish_reason = "stop"
    else:
        finish_reason = "length"

    usage = _token_counts(responses_response.get("usage"))
    return _completion(
        model=model,
        content="".join(text_parts) if text_parts else None,
        finish_reason=finish_reason,
        prompt_tokens=usage["input_tokens"],
        completion_tokens=usage["output_tokens"],
        response_id=responses_response.get("id"),
        tool_calls=tool_calls,
    )


def translate_response(endpoint_type: EndpointType, body: Dict[str, Any], model: str) -> Dict[str, Any]:
    """Collapse an upstream body for the endpoint type; common passes through"""
    if endpoint_type == EndpointType.ANTHROPIC:
        return translate_anthropic_response(body, model)
    if endpoint_type == EndpointType.OPENAI:
        return translate_responses_response(body, model)
    return body
