"""
OpenAI Chat Completions Request Model

Loose validation of inbound chat requests. Message contents are kept as
plain dicts; only the fields routing depends on are typed.
"""

from __future__ import annotations
from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional, Union, Any


class ChatCompletionsRequest(BaseModel):
    """OpenAI Chat Completions request"""
    model_config = ConfigDict(extra="allow")

    model: str
    messages: list[dict[str, Any]] = []
    stream: Optional[bool] = None
    max_tokens: Optional[int] = None
    max_completion_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stop: Optional[Union[str, list[str]]] = None
    tools: Optional[list[dict[str, Any]]] = None

    @field_validator("model")
    @classmethod
    def model_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model is required")
        return value

    @property
    def is_streaming(self) -> bool:
        """Streaming unless the client explicitly sent stream: false"""
        return self.stream is not False
