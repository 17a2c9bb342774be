"""Shared helpers for the test suite."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable, Optional

import httpx

from config.settings import Settings


TOKEN_URL = "https://auth.test/user_management/authenticate"
ANTHROPIC_URL = "https://upstream.test/a/v1/messages"
RESPONSES_URL = "https://upstream.test/o/v1/responses"
COMMON_URL = "https://upstream.test/o/v1/chat/completions"


class FakeClock:
    """Controllable replacement for time.time"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ChunkedStream(httpx.AsyncByteStream):
    """Upstream body delivered in the given chunks, optionally failing midway"""

    def __init__(self, chunks: Iterable[bytes], error: Optional[Exception] = None):
        self.chunks = list(chunks)
        self.error = error
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


def sse(event: Optional[str], data: Any) -> bytes:
    """Encode one SSE record"""
    payload = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False)
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {payload}\n\n".encode("utf-8")


async def aiter_chunks(chunks: Iterable[bytes]):
    for chunk in chunks:
        yield chunk


def parse_sse_body(body: str) -> list:
    """Split a client-facing SSE body into decoded chunk dicts and '[DONE]'"""
    records = []
    for block in body.split("\n\n"):
        block = block.strip()
        if not block.startswith("data: "):
            continue
        payload = block[len("data: "):]
        records.append(payload if payload == "[DONE]" else json.loads(payload))
    return records


def build_settings(**gateway: Any) -> Settings:
    return Settings(**{
        "gateway": {"system_prompt": "", **gateway},
        "endpoints": [
            {"name": "anthropic", "base_url": ANTHROPIC_URL},
            {"name": "openai", "base_url": RESPONSES_URL},
            {"name": "common", "base_url": COMMON_URL},
        ],
        "models": [
            {"id": "claude-test", "type": "anthropic"},
            {"id": "claude-thinking", "type": "anthropic", "reasoning": "high"},
            {"id": "gpt-test", "type": "openai"},
            {"id": "glm-test", "type": "common"},
        ],
    })


def token_handler(
    calls: list,
    status_code: int = 200,
    body: Optional[Callable[[int], dict]] = None,
):
    """MockTransport handler for the token endpoint, recording each call"""

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if status_code != 200:
            return httpx.Response(status_code, text="invalid_grant")
        n = len(calls)
        payload = body(n) if body else {
            "access_token": f"access-{n}",
            "refresh_token": f"refresh-{n}",
        }
        return httpx.Response(200, json=payload)

    return handler
