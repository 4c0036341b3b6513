"""
Content-Length framing for JSON-RPC over a byte stream.

Wire format (same as LSP / MCP stdio):

    Content-Length: <N>\\r\\n
    \\r\\n
    <N bytes of UTF-8 JSON>

N counts bytes, not characters. Several frames may arrive in one read and a
frame may be split across any number of reads, so decoding is incremental:
FrameDecoder keeps the unconsumed bytes and, once a header has been read,
the expected body length.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

HEADER_SEPARATOR = b"\r\n\r\n"

_CONTENT_LENGTH = re.compile(rb"Content-Length: *(\d+)", re.IGNORECASE)


def encode_frame(message: Any) -> bytes:
    """Serialize a message and prefix it with its Content-Length header."""
    payload = json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    return f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii") + payload


@dataclass
class DecodeResult:
    """Output of one decode pass over a buffer."""
    messages: list[Any] = field(default_factory=list)
    remaining: bytes = b""
    expected_length: int | None = None


class FrameDecoder:
    """
    Incremental decoder for Content-Length framed JSON.

    State is the pending byte buffer plus ``expected_length``: None while
    looking for a header, the body size once a header has been consumed.
    """

    def __init__(self, buffer: bytes = b"", expected_length: int | None = None):
        self._buffer = bytearray(buffer)
        self.expected_length = expected_length
        self.dropped_headers = 0
        self.dropped_bodies = 0

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet consumed as a complete frame."""
        return bytes(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self.expected_length = None

    def feed(self, data: bytes = b"") -> list[Any]:
        """Append ``data`` and return every message that is now complete."""
        if data:
            self._buffer.extend(data)

        messages: list[Any] = []
        while True:
            if self.expected_length is None:
                header_end = self._buffer.find(HEADER_SEPARATOR)
                if header_end < 0:
                    break

                header = bytes(self._buffer[:header_end])
                del self._buffer[: header_end + len(HEADER_SEPARATOR)]

                match = _CONTENT_LENGTH.search(header)
                if match is None:
                    # Not a frame header; drop it and keep scanning.
                    self.dropped_headers += 1
                    logger.warning(f"Skipping frame header without Content-Length: {header[:80]!r}")
                    continue
                self.expected_length = int(match.group(1))

            if len(self._buffer) < self.expected_length:
                break

            body = bytes(self._buffer[: self.expected_length])
            del self._buffer[: self.expected_length]
            self.expected_length = None

            try:
                messages.append(json.loads(body.decode("utf-8")))
            except ValueError as e:
                self.dropped_bodies += 1
                logger.warning(f"Dropping frame with invalid JSON body ({len(body)} bytes): {e}")

        return messages


def decode_frames(buffer: bytes, expected_length: int | None = None) -> DecodeResult:
    """
    Decode every complete frame in ``buffer``.

    Pure form of FrameDecoder.feed: takes the parser state explicitly and
    returns the messages together with the new state.
    """
    decoder = FrameDecoder(buffer, expected_length)
    messages = decoder.feed()
    return DecodeResult(
        messages=messages,
        remaining=decoder.pending,
        expected_length=decoder.expected_length,
    )
