"""
SSE Decoder

Splits an upstream byte stream into server-sent-event records. Records
may be split across network chunks at any byte, including inside a
multi-byte UTF-8 sequence.
"""

from __future__ import annotations
import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Union

import httpx

from core.exceptions import StreamTransportError


logger = logging.getLogger("droid-gateway")


@dataclass(frozen=True)
class SSERecord:
    """One `event:`/`data:` pair; data is parsed JSON or the raw text"""
    event: Optional[str]
    data: Any

    @property
    def is_json(self) -> bool:
        return not isinstance(self.data, str)


class SSEDecoder:
    """
    Incremental line-based SSE decoder.

    Complete lines are parsed as they arrive; the trailing partial line is
    held back until the next chunk (or `flush()` at end of stream).
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._pending_event: Optional[str] = None
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: Union[bytes, str]) -> list[SSERecord]:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        if not chunk:
            return []

        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        records = []
        for line in lines:
            record = self._parse_line(line)
            if record is not None:
                records.append(record)
        return records

    def flush(self) -> list[SSERecord]:
        """Process whatever is left once the stream has ended"""
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        records = []
        for line in tail.split("\n"):
            record = self._parse_line(line)
            if record is not None:
                records.append(record)
        return records

    def _parse_line(self, line: str) -> Optional[SSERecord]:
        line = line.rstrip("\r")
        if not line.strip() or line.startswith(":"):
            return None

        if line.startswith("event:"):
            self._pending_event = line[6:].strip()
            return None

        if line.startswith("data:"):
            payload = line[5:].strip()
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                data = payload
            record = SSERecord(event=self._pending_event, data=data)
            self._pending_event = None
            return record

        # id:, retry: and unknown fields carry nothing we route on
        return None


async def iter_sse_records(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[SSERecord]:
    """
    Decode an async byte stream into SSE records.

    Transport failures while reading surface as StreamTransportError.
    """
    decoder = SSEDecoder()
    try:
        async for chunk in byte_stream:
            for record in decoder.feed(chunk):
                yield record
    except (httpx.TransportError, httpx.StreamError, OSError) as e:
        logger.error(f"Upstream stream read failed: {e}")
        raise StreamTransportError(f"Upstream stream read failed: {e}") from e

    for record in decoder.flush():
        yield record
