"""
Tests for the streaming translators.

Covers both backend vocabularies: ordering of role/content/final chunks,
the single terminal sentinel, finish reason mapping, and tolerance for
malformed or unknown events.
"""

import json

import pytest

from config.settings import EndpointType
from core.adapters.sse_decoder import SSERecord
from core.adapters.stream_translator import (
    DONE_RECORD,
    STREAM_END,
    AnthropicStreamTranslator,
    NeutralChunk,
    ResponsesStreamTranslator,
    create_stream_translator,
    encode_output,
    map_stop_reason,
)
from tests.helpers import aiter_chunks, sse


def _anthropic():
    return AnthropicStreamTranslator("claude-test", response_id="chatcmpl-test", clock=lambda: 1000.0)


def _responses():
    return ResponsesStreamTranslator("gpt-test", response_id="chatcmpl-test", clock=lambda: 1000.0)


async def _collect(translator, chunks):
    return [output async for output in translator.iter_events(aiter_chunks(chunks))]


def _finals(outputs):
    return [o for o in outputs if isinstance(o, NeutralChunk) and o.is_final]


def anthropic_stream(stop_reason="end_turn", texts=("Hel", "lo")):
    chunks = [
        sse("message_start", {"type": "message_start", "message": {"id": "msg_01", "role": "assistant"}}),
        sse("content_block_start", {"index": 0, "content_block": {"type": "text", "text": ""}}),
        sse("ping", {"type": "ping"}),
    ]
    for text in texts:
        chunks.append(sse("content_block_delta", {"index": 0, "delta": {"type": "text_delta", "text": text}}))
    chunks.append(sse("content_block_stop", {"index": 0}))
    chunks.append(sse("message_delta", {"delta": {"stop_reason": stop_reason}, "usage": {"output_tokens": 2}}))
    chunks.append(sse("message_stop", {"type": "message_stop"}))
    return chunks


# =============================================================================
# Anthropic
# =============================================================================

class TestAnthropicStreamTranslator:
    @pytest.mark.asyncio
    async def test_full_sequence(self):
        outputs = await _collect(_anthropic(), anthropic_stream())

        role, first, second, final, end = outputs
        assert role.role == "assistant"
        assert first.content == "Hel"
        assert second.content == "lo"
        assert final.is_final and final.finish_reason == "stop"
        assert end is STREAM_END

    @pytest.mark.asyncio
    async def test_exactly_one_final_and_one_end(self):
        outputs = await _collect(_anthropic(), anthropic_stream())

        assert len(_finals(outputs)) == 1
        assert outputs.count(STREAM_END) == 1
        assert outputs[-1] is STREAM_END

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stop_reason,finish_reason", [
        ("end_turn", "stop"),
        ("stop_sequence", "stop"),
        ("max_tokens", "length"),
        ("tool_use", "tool_calls"),
        ("pause_turn", "stop"),
    ])
    async def test_stop_reason_mapping(self, stop_reason, finish_reason):
        outputs = await _collect(_anthropic(), anthropic_stream(stop_reason=stop_reason))
        assert _finals(outputs)[0].finish_reason == finish_reason

    @pytest.mark.asyncio
    async def test_missing_stop_still_ends_once(self):
        chunks = anthropic_stream()[:-2]  # no message_delta, no message_stop

        outputs = await _collect(_anthropic(), chunks)

        assert _finals(outputs) == []
        assert outputs.count(STREAM_END) == 1
        assert outputs[-1] is STREAM_END

    @pytest.mark.asyncio
    async def test_malformed_record_is_skipped(self):
        chunks = anthropic_stream()
        chunks.insert(3, b"event: content_block_delta\ndata: {not json\n\n")

        outputs = await _collect(_anthropic(), chunks)

        texts = [o.content for o in outputs if isinstance(o, NeutralChunk) and o.content]
        assert texts == ["Hel", "lo"]
        assert outputs[-1] is STREAM_END

    @pytest.mark.asyncio
    async def test_unknown_event_is_ignored(self):
        chunks = anthropic_stream()
        chunks.insert(2, sse("some_future_event", {"x": 1}))

        outputs = await _collect(_anthropic(), chunks)
        assert len(outputs) == 5

    @pytest.mark.asyncio
    async def test_nothing_after_stream_end(self):
        chunks = anthropic_stream() + [sse("content_block_delta", {"delta": {"text": "late"}})]

        outputs = await _collect(_anthropic(), chunks)

        assert outputs[-1] is STREAM_END
        assert all(getattr(o, "content", None) != "late" for o in outputs)

    @pytest.mark.parametrize("event,data", [
        ("content_block_delta", {"delta": "oops"}),
        ("content_block_delta", {"delta": {"text": ["not", "text"]}}),
        ("message_start", {"message": "oops"}),
        ("message_delta", {"delta": ["x"]}),
        ("message_delta", {"delta": {"stop_reason": ["end_turn"]}}),
    ])
    def test_malformed_nested_fields_are_skipped(self, event, data):
        translator = _anthropic()
        assert translator.translate_record(SSERecord(event, data)) == []
        assert not translator.ended

    @pytest.mark.asyncio
    async def test_stream_continues_past_malformed_nested_field(self):
        chunks = anthropic_stream()
        chunks.insert(3, sse("content_block_delta", {"delta": "oops"}))

        records = [r async for r in _anthropic().transform_stream(aiter_chunks(chunks))]

        assert records[-1] == DONE_RECORD
        assert len(records) == 5

    @pytest.mark.asyncio
    async def test_message_id_is_recorded(self):
        translator = _anthropic()
        await _collect(translator, anthropic_stream())
        assert translator.message_id == "msg_01"

    def test_message_delta_without_stop_reason_emits_nothing(self):
        translator = _anthropic()
        record = SSERecord(event="message_delta", data={"delta": {}, "usage": {"output_tokens": 1}})
        assert translator.translate_record(record) == []

    def test_records_after_end_are_dropped(self):
        translator = _anthropic()
        assert translator.translate_record(SSERecord("message_stop", {})) == [STREAM_END]
        assert translator.translate_record(SSERecord("content_block_delta", {"delta": {"text": "x"}})) == []
        assert translator.finish() == []

    @pytest.mark.asyncio
    async def test_wire_encoding(self):
        records = [r async for r in _anthropic().transform_stream(aiter_chunks(anthropic_stream()))]

        assert records[-1] == DONE_RECORD
        first = json.loads(records[0][len(b"data: "):])
        assert first == {
            "id": "chatcmpl-test",
            "object": "chat.completion.chunk",
            "created": 1000,
            "model": "claude-test",
            "choices": [{"index": 0, "delta": {"role": "assistant"}, "finish_reason": None}],
        }
        assert all(r.endswith(b"\n\n") for r in records)


# =============================================================================
# Responses
# =============================================================================

def responses_stream(terminal="response.done", status="completed"):
    chunks = [
        sse("response.created", {"type": "response.created", "response": {"id": "resp_1"}}),
        sse("response.in_progress", {"type": "response.in_progress"}),
        sse("response.output_text.delta", {"type": "response.output_text.delta", "delta": "Hi"}),
        sse("response.output_text.delta", {"type": "response.output_text.delta", "delta": " there"}),
        sse("response.output_text.done", {"type": "response.output_text.done", "text": "Hi there"}),
    ]
    if terminal:
        chunks.append(sse(terminal, {"type": terminal, "response": {"status": status}}))
    return chunks


class TestResponsesStreamTranslator:
    @pytest.mark.asyncio
    async def test_full_sequence(self):
        outputs = await _collect(_responses(), responses_stream())

        role, first, second, final, end = outputs
        assert role.role == "assistant"
        assert (first.content, second.content) == ("Hi", " there")
        assert final.finish_reason == "stop"
        assert end is STREAM_END

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", ["response.done", "response.completed"])
    async def test_completed_maps_to_stop(self, terminal):
        outputs = await _collect(_responses(), responses_stream(terminal=terminal))
        assert _finals(outputs)[0].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_incomplete_maps_to_length(self):
        outputs = await _collect(_responses(), responses_stream(terminal="response.incomplete", status=None))
        assert _finals(outputs)[0].finish_reason == "length"

    @pytest.mark.asyncio
    async def test_missing_terminal_event_still_ends_once(self):
        outputs = await _collect(_responses(), responses_stream(terminal=None))

        assert _finals(outputs) == []
        assert outputs.count(STREAM_END) == 1
        assert outputs[-1] is STREAM_END

    @pytest.mark.asyncio
    async def test_events_after_terminal_are_not_emitted(self):
        chunks = responses_stream() + [
            sse("response.output_text.delta", {"delta": "late"}),
            sse("response.done", {"response": {"status": "completed"}}),
        ]

        outputs = await _collect(_responses(), chunks)

        assert len(_finals(outputs)) == 1
        assert outputs.count(STREAM_END) == 1

    @pytest.mark.parametrize("event,data", [
        ("response.completed", {"response": "oops"}),
        ("response.done", {"response": ["x"]}),
        ("response.output_text.delta", {"delta": {"nested": True}}),
    ])
    def test_malformed_nested_fields_are_skipped(self, event, data):
        translator = _responses()
        assert translator.translate_record(SSERecord(event, data)) == []
        assert not translator.ended

    @pytest.mark.asyncio
    async def test_malformed_terminal_event_still_ends_once(self):
        chunks = responses_stream(terminal=None) + [sse("response.completed", {"response": "oops"})]

        outputs = await _collect(_responses(), chunks)

        assert outputs.count(STREAM_END) == 1
        assert outputs[-1] is STREAM_END

    @pytest.mark.asyncio
    async def test_wire_stream_ends_with_done(self):
        records = [r async for r in _responses().transform_stream(aiter_chunks(responses_stream(terminal=None)))]
        assert records[-1] == DONE_RECORD
        assert records.count(DONE_RECORD) == 1


# =============================================================================
# Helpers
# =============================================================================

class TestTranslatorLookup:
    def test_vendor_types_get_translators(self):
        assert isinstance(create_stream_translator(EndpointType.ANTHROPIC, "m"), AnthropicStreamTranslator)
        assert isinstance(create_stream_translator(EndpointType.OPENAI, "m"), ResponsesStreamTranslator)

    def test_common_passes_through(self):
        assert create_stream_translator(EndpointType.COMMON, "m") is None

    def test_unknown_stop_reason_defaults_to_stop(self):
        assert map_stop_reason(None) == "stop"
        assert map_stop_reason("refusal") == "stop"

    def test_end_sentinel_encodes_as_done(self):
        assert encode_output(STREAM_END) == b"data: [DONE]\n\n"

    def test_final_chunk_carries_finish_reason(self):
        chunk = NeutralChunk(id="x", created=1, model="m", finish_reason="length", is_final=True)
        assert chunk.to_dict()["choices"][0] == {"index": 0, "delta": {}, "finish_reason": "length"}
