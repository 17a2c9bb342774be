"""
OpenAI to Anthropic Request Translator

Converts OpenAI Chat Completions requests to Anthropic Messages requests.
"""

from __future__ import annotations
import logging
from typing import Dict, Any, List, Optional


logger = logging.getLogger("droid-gateway")

DEFAULT_MAX_TOKENS = 4096

THINKING_BUDGETS = {
    "low": 4096,
    "medium": 12288,
    "high": 24576,
}


def translate_request(
    openai_request: Dict[str, Any],
    reasoning: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Translate an OpenAI chat request to an Anthropic messages request.

    Args:
        openai_request: OpenAI-format request body
        reasoning: Model reasoning level (low/medium/high) or None

    Returns:
        Anthropic-format request body
    """
    logger.debug("Transforming OpenAI request to Anthropic format")

    anthropic_request: Dict[str, Any] = {
        "model": openai_request.get("model"),
        "messages": [],
        "stream": openai_request.get("stream") is not False,
        "max_tokens": (
            openai_request.get("max_tokens")
            or openai_request.get("max_completion_tokens")
            or DEFAULT_MAX_TOKENS
        ),
    }

    system_content: List[Dict[str, Any]] = []

    for msg in openai_request.get("messages") or []:
        if msg.get("role") == "system":
            system_content.extend(_translate_content(msg.get("content"), system=True))
            continue

        anthropic_request["messages"].append({
            "role": msg.get("role"),
            "content": _translate_content(msg.get("content")),
        })

    if system_content:
        anthropic_request["system"] = system_content

    tools = openai_request.get("tools")
    if isinstance(tools, list):
        anthropic_request["tools"] = [_translate_tool(tool) for tool in tools]

    if openai_request.get("temperature") is not None:
        anthropic_request["temperature"] = openai_request["temperature"]
    if openai_request.get("top_p") is not None:
        anthropic_request["top_p"] = openai_request["top_p"]

    stop = openai_request.get("stop")
    if stop is not None:
        anthropic_request["stop_sequences"] = stop if isinstance(stop, list) else [stop]

    if reasoning in THINKING_BUDGETS:
        anthropic_request["thinking"] = {
            "type": "enabled",
            "budget_tokens": THINKING_BUDGETS[reasoning],
        }

    return anthropic_request


def _translate_content(content: Any, system: bool = False) -> List[Dict[str, Any]]:
    """Translate OpenAI message content to Anthropic content blocks"""
    if isinstance(content, str):
        return [{"type": "text", "text": content}]

    blocks = []
    if isinstance(content, list):
        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get("type") == "text":
                blocks.append({"type": "text", "text": part.get("text", "")})
            elif part.get("type") == "image_url" and not system:
                blocks.append({"type": "image", "source": part.get("image_url")})
            else:
                blocks.append(part)
    return blocks


def _translate_tool(tool: Dict[str, Any]) -> Dict[str, Any]:
    """Translate an OpenAI function tool to an Anthropic tool"""
    if tool.get("type") != "function":
        return tool

    function = tool.get("function") or {}
    return {
        "name": function.get("name"),
        "description": function.get("description"),
        "input_schema": function.get("parameters") or {},
    }
