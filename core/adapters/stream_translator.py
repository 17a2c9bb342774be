"""
Streaming Translator

Translates upstream SSE streams into OpenAI chat.completion.chunk
records in real time. One translator per backend vocabulary:

- AnthropicStreamTranslator: message_start / content_block_delta / ...
- ResponsesStreamTranslator: response.created / response.output_text.delta / ...

Each instance owns the state of exactly one client stream.
"""

from __future__ import annotations
import json
import time
import uuid
import logging
from typing import Dict, Any, List, Optional, AsyncIterator, Callable, Union
from dataclasses import dataclass

from config.settings import EndpointType
from core.adapters.sse_decoder import SSERecord, iter_sse_records
from core.exceptions import StreamDecodeError


logger = logging.getLogger("droid-gateway")


# =============================================================================
# Output Types
# =============================================================================

@dataclass
class NeutralChunk:
    """Backend-agnostic unit of streamed output"""
    id: str
    created: int
    model: str
    role: Optional[str] = None
    content: Optional[str] = None
    finish_reason: Optional[str] = None
    is_final: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Encode as an OpenAI chat.completion.chunk"""
        delta: Dict[str, Any] = {}
        if self.role:
            delta["role"] = self.role
        if self.content:
            delta["content"] = self.content

        return {
            "id": self.id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{
                "index": 0,
                "delta": delta,
                "finish_reason": self.finish_reason if self.is_final else None,
            }],
        }


class StreamEnd:
    """Terminal sentinel, distinct from any chunk"""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "STREAM_END"


STREAM_END = StreamEnd()

StreamOutput = Union[NeutralChunk, StreamEnd]

DONE_RECORD = b"data: [DONE]\n\n"


def encode_output(output: StreamOutput) -> bytes:
    """Wire form of one translator output"""
    if output is STREAM_END:
        return DONE_RECORD
    return f"data: {json.dumps(output.to_dict())}\n\n".encode("utf-8")


# =============================================================================
# Finish Reason Mapping
# =============================================================================

STOP_REASON_MAP = {
    "end_turn": "stop",
    "max_tokens": "length",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
}


def map_stop_reason(stop_reason: Optional[str]) -> str:
    """Map an Anthropic stop_reason to an OpenAI finish_reason"""
    return STOP_REASON_MAP.get(stop_reason, "stop")


# =============================================================================
# Base Translator
# =============================================================================

class StreamTranslator:
    """
    Pull-based stream translator.

    Subclasses implement `handle_event`, returning zero or more outputs per
    record. Once STREAM_END has been produced nothing further is emitted,
    and a stream that ends without it gets one synthesized.
    """

    def __init__(
        self,
        model: str,
        response_id: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.model = model
        self.response_id = response_id or f"chatcmpl-{uuid.uuid4().hex[:24]}"
        self.created = int(clock())
        self.ended = False

    def chunk(
        self,
        content: Optional[str] = None,
        role: Optional[str] = None,
        finish_reason: Optional[str] = None,
    ) -> NeutralChunk:
        return NeutralChunk(
            id=self.response_id,
            created=self.created,
            model=self.model,
            role=role,
            content=content,
            finish_reason=finish_reason,
            is_final=finish_reason is not None,
        )

    def handle_event(self, event: Optional[str], data: Any) -> List[StreamOutput]:
        raise NotImplementedError

    def translate_record(self, record: SSERecord) -> List[StreamOutput]:
        """Translate one record; malformed records are dropped"""
        if self.ended:
            return []

        logger.debug(f"Upstream event: {record.event}")
        try:
            outputs = self.handle_event(record.event, record.data)
        except StreamDecodeError as e:
            logger.warning(f"Skipping malformed SSE record: {e}")
            return []

        # Nothing after the terminal sentinel
        for position, output in enumerate(outputs):
            if output is STREAM_END:
                self.ended = True
                return outputs[:position + 1]
        return outputs

    def finish(self) -> List[StreamOutput]:
        """Outputs owed when the upstream stream ends"""
        if self.ended:
            return []
        logger.warning("Upstream stream ended without a terminal event")
        self.ended = True
        return [STREAM_END]

    async def iter_events(self, byte_stream: AsyncIterator[bytes]) -> AsyncIterator[StreamOutput]:
        """Neutral outputs for a raw upstream byte stream"""
        async for record in iter_sse_records(byte_stream):
            for output in self.translate_record(record):
                yield output
            if self.ended:
                return

        for output in self.finish():
            yield output

    async def transform_stream(self, byte_stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Wire-encoded client stream for a raw upstream byte stream"""
        async for output in self.iter_events(byte_stream):
            yield encode_output(output)

    @staticmethod
    def require_object(event: Optional[str], data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise StreamDecodeError(f"{event} payload is not a JSON object: {str(data)[:100]}")
        return data

    @staticmethod
    def require_mapping(event: Optional[str], payload: Dict[str, Any], key: str) -> Dict[str, Any]:
        """Nested object under `key`; absent or null counts as empty"""
        value = payload.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise StreamDecodeError(f"{event} field {key!r} is not a JSON object: {str(value)[:100]}")
        return value

    @staticmethod
    def require_text(event: Optional[str], value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise StreamDecodeError(f"{event} text is not a string: {str(value)[:100]}")
        return value


# =============================================================================
# Anthropic Messages Stream
# =============================================================================

class AnthropicStreamTranslator(StreamTranslator):
    """Anthropic message-stream vocabulary -> chat.completion.chunk"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.message_id: Optional[str] = None

    def handle_event(self, event: Optional[str], data: Any) -> List[StreamOutput]:
        if event in ("content_block_start", "content_block_stop", "ping"):
            return []

        if event == "message_start":
            payload = self.require_object(event, data)
            message = self.require_mapping(event, payload, "message")
            self.message_id = message.get("id") or self.response_id
            return [self.chunk(content="", role="assistant")]

        if event == "content_block_delta":
            payload = self.require_object(event, data)
            delta = self.require_mapping(event, payload, "delta")
            return [self.chunk(content=self.require_text(event, delta.get("text")))]

        if event == "message_delta":
            payload = self.require_object(event, data)
            delta = self.require_mapping(event, payload, "delta")
            stop_reason = self.require_text(event, delta.get("stop_reason"))
            if stop_reason:
                return [self.chunk(content="", finish_reason=map_stop_reason(stop_reason))]
            return []

        if event == "message_stop":
            logger.debug(f"Anthropic message {self.message_id} complete")
            return [STREAM_END]

        logger.debug(f"Ignoring unknown Anthropic event: {event}")
        return []


# =============================================================================
# OpenAI Responses Stream
# =============================================================================

TERMINAL_RESPONSE_EVENTS = {
    "response.done": None,
    "response.completed": "completed",
    "response.incomplete": "incomplete",
}


class ResponsesStreamTranslator(StreamTranslator):
    """OpenAI responses-stream vocabulary -> chat.completion.chunk"""

    def handle_event(self, event: Optional[str], data: Any) -> List[StreamOutput]:
        if event in ("response.in_progress", "response.output_text.done"):
            return []

        if event == "response.created":
            return [self.chunk(content="", role="assistant")]

        if event == "response.output_text.delta":
            payload = self.require_object(event, data)
            text = self.require_text(event, payload.get("delta") or payload.get("text"))
            return [self.chunk(content=text)]

        if event in TERMINAL_RESPONSE_EVENTS:
            payload = self.require_object(event, data)
            response = self.require_mapping(event, payload, "response")
            status = response.get("status") or TERMINAL_RESPONSE_EVENTS[event]
            finish_reason = "stop" if status == "completed" else "length"
            return [self.chunk(content="", finish_reason=finish_reason), STREAM_END]

        logger.debug(f"Ignoring unknown responses event: {event}")
        return []


# =============================================================================
# Translator Lookup
# =============================================================================

STREAM_TRANSLATORS = {
    EndpointType.ANTHROPIC: AnthropicStreamTranslator,
    EndpointType.OPENAI: ResponsesStreamTranslator,
}


def create_stream_translator(endpoint_type: EndpointType, model: str) -> Optional[StreamTranslator]:
    """Translator for an endpoint type; None means pass the stream through"""
    translator_class = STREAM_TRANSLATORS.get(endpoint_type)
    if translator_class is None:
        return None
    return translator_class(model)
