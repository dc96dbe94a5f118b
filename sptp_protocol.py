# sptp_protocol.py
"""
SPTP wire constants, mode flags and error types.

Every message starts with MAGIC followed by a mode byte. Chunked messages
carry an 8-byte message id, the chunk count and the chunk index before the
fragment:

    magic(1) | mode(1) | payload
    magic(1) | mode(1) | message_id(8) | chunk_count(1) | chunk_index(1) | fragment
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional


MAGIC = 0xAA
MODE_CHUNKED = 0x01
MODE_GZIPPED = 0x02

MESSAGE_ID_SIZE = 8
CHUNK_COUNT_MAX = 255
CHUNK_THRESHOLD_DEFAULT = 1200

GZIP_LEVEL_OFF = 0
GZIP_LEVEL_MIN = 1
GZIP_LEVEL_MAX = 9

HEADER_FORMAT = "!BB"
CHUNKED_HEADER_FORMAT = "!BB8sBB"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
CHUNKED_HEADER_SIZE = struct.calcsize(CHUNKED_HEADER_FORMAT)


class SPTPError(Exception):
    """Base class for everything the writer raises."""


class PayloadTooLarge(SPTPError, ValueError):
    def __init__(self, length: int, threshold: int) -> None:
        super().__init__(
            f"payload too large: {length} bytes needs more than {CHUNK_COUNT_MAX} "
            f"chunks at threshold {threshold}"
        )
        self.length = length
        self.threshold = threshold


class RandomnessFailure(SPTPError):
    pass


class CompressionFailure(SPTPError):
    pass


class SinkWriteFailure(SPTPError, OSError):
    """A sink write failed. Messages before ``chunk_index`` may already be on the wire."""

    def __init__(self, message: str, chunk_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.chunk_index = chunk_index


class ConfigurationError(SPTPError, ValueError):
    pass


class MalformedMessage(SPTPError, ValueError):
    pass


@dataclass(frozen=True)
class Message:
    mode: int
    payload: bytes
    message_id: Optional[bytes] = None
    chunk_count: Optional[int] = None
    chunk_index: Optional[int] = None

    @property
    def chunked(self) -> bool:
        return bool(self.mode & MODE_CHUNKED)

    @property
    def gzipped(self) -> bool:
        return bool(self.mode & MODE_GZIPPED)


def parse_message(data: bytes) -> Message:
    """Split one complete wire message into its header fields and fragment."""
    if len(data) < HEADER_SIZE:
        raise MalformedMessage("message too short")
    magic, mode = struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE])
    if magic != MAGIC:
        raise MalformedMessage(f"bad magic: 0x{magic:02x}")
    if not mode & MODE_CHUNKED:
        return Message(mode=mode, payload=bytes(data[HEADER_SIZE:]))

    if len(data) < CHUNKED_HEADER_SIZE:
        raise MalformedMessage("chunked message too short")
    _, _, message_id, count, index = struct.unpack(
        CHUNKED_HEADER_FORMAT, data[:CHUNKED_HEADER_SIZE]
    )
    if count == 0 or index >= count:
        raise MalformedMessage(f"bad chunk index {index} of {count}")
    return Message(mode=mode, payload=bytes(data[CHUNKED_HEADER_SIZE:]),
                   message_id=message_id, chunk_count=count, chunk_index=index)
