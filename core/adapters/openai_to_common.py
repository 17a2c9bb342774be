"""
Common Endpoint Request Shaping

The common endpoint already speaks OpenAI chat; only the configured
system prompt is injected.
"""

from __future__ import annotations
import logging
from typing import Dict, Any


logger = logging.getLogger("droid-gateway")


def translate_request(openai_request: Dict[str, Any], system_prompt: str = "") -> Dict[str, Any]:
    """Copy the request, prepending the system prompt if one is configured"""
    common_request = dict(openai_request)
    if not system_prompt:
        return common_request

    messages = list(common_request.get("messages") or [])
    first_system = next(
        (index for index, msg in enumerate(messages) if msg.get("role") == "system"),
        None,
    )

    if first_system is None:
        messages.insert(0, {"role": "system", "content": system_prompt})
    else:
        content = messages[first_system].get("content")
        if isinstance(content, list):
            content = [{"type": "text", "text": system_prompt}, *content]
        else:
            content = system_prompt + (content or "")
        messages[first_system] = {**messages[first_system], "content": content}

    common_request["messages"] = messages
    logger.debug("Injected system prompt into common request")
    return common_request
