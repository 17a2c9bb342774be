"""
OpenAI Chat to Responses Request Translator

Converts OpenAI Chat Completions requests to OpenAI Responses API requests.
"""

from __future__ import annotations
import logging
from typing import Dict, Any, List, Optional


logger = logging.getLogger("droid-gateway")

PASSTHROUGH_PARAMS = (
    "temperature",
    "top_p",
    "presence_penalty",
    "frequency_penalty",
    "parallel_tool_calls",
)


def translate_request(
    openai_request: Dict[str, Any],
    reasoning: Optional[str] = None,
) -> Dict[str, Any]:
    """Translate an OpenAI chat request to a Responses API request"""
    logger.debug("Transforming OpenAI request to Responses format")

    messages = openai_request.get("messages") or []

    responses_request: Dict[str, Any] = {
        "model": openai_request.get("model"),
        "input": [
            _translate_message(msg) for msg in messages if msg.get("role") != "system"
        ],
        "store": False,
        "stream": openai_request.get("stream") is not False,
    }

    max_tokens = openai_request.get("max_tokens") or openai_request.get("max_completion_tokens")
    if max_tokens:
        responses_request["max_output_tokens"] = max_tokens

    # First system message becomes the instructions
    system_message = next((m for m in messages if m.get("role") == "system"), None)
    if system_message is not None:
        content = system_message.get("content")
        if isinstance(content, str):
            responses_request["instructions"] = content
        elif isinstance(content, list):
            responses_request["instructions"] = "\n".join(
                part.get("text", "") for part in content
                if isinstance(part, dict) and part.get("type") == "text"
            )

    tools = openai_request.get("tools")
    if isinstance(tools, list):
        responses_request["tools"] = [{**tool, "strict": False} for tool in tools]

    for param in PASSTHROUGH_PARAMS:
        if openai_request.get(param) is not None:
            responses_request[param] = openai_request[param]

    if reasoning:
        responses_request["reasoning"] = {"effort": reasoning, "summary": "auto"}

    return responses_request


def _translate_message(msg: Dict[str, Any]) -> Dict[str, Any]:
    role = msg.get("role")
    text_type = "output_text" if role == "assistant" else "input_text"
    image_type = "output_image" if role == "assistant" else "input_image"

    parts: List[Dict[str, Any]] = []
    content = msg.get("content")
    if isinstance(content, str):
        parts.append({"type": text_type, "text": content})
    elif isinstance(content, list):
        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get("type") == "text":
                parts.append({"type": text_type, "text": part.get("text", "")})
            elif part.get("type") == "image_url":
                parts.append({"type": image_type, "image_url": part.get("image_url")})
            else:
                parts.append(part)

    return {"role": role, "content": parts}
