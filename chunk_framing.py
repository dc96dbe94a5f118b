# chunk_framing.py
"""
Frame emitter: turns (mode, payload) into one or more SPTP messages.
"""
from __future__ import annotations

import struct
from typing import Iterator, Optional

from message_ids import IdSource, RandomIdSource, draw_message_id
from sptp_protocol import (
    CHUNK_COUNT_MAX,
    CHUNKED_HEADER_FORMAT,
    ConfigurationError,
    HEADER_FORMAT,
    MAGIC,
    MODE_CHUNKED,
    PayloadTooLarge,
    SinkWriteFailure,
)


def chunk_count(length: int, threshold: int) -> int:
    return -(-length // threshold)


def frame_message(mode: int, payload: bytes) -> bytes:
    return struct.pack(HEADER_FORMAT, MAGIC, mode) + payload


def iter_chunk_messages(mode: int, payload: bytes, threshold: int,
                        message_id: bytes, count: int) -> Iterator[bytes]:
    """Yield ``count`` chunk messages. The caller checks ``count`` against CHUNK_COUNT_MAX."""
    length = len(payload)
    mode |= MODE_CHUNKED
    for i in range(count):
        end = min((i + 1) * threshold, length)
        header = struct.pack(CHUNKED_HEADER_FORMAT, MAGIC, mode, message_id, count, i)
        yield header + payload[i * threshold:end]


class ChunkedFrameEmitter:
    def __init__(self, sink, threshold: int, id_source: Optional[IdSource] = None) -> None:
        if threshold <= 0:
            raise ConfigurationError(f"chunk threshold must be positive, got {threshold}")
        self.sink = sink
        self.threshold = threshold
        self.id_source = id_source if id_source is not None else RandomIdSource()

    def emit(self, mode: int, payload: bytes) -> None:
        """
        Write ``payload`` as a single message, or as a chunk set when it is
        larger than the threshold. The chunk count bound and the id draw are
        checked before the first write; a failed write stops the sequence.
        """
        length = len(payload)
        if length <= self.threshold:
            self._write(frame_message(mode, payload), None)
            return

        count = chunk_count(length, self.threshold)
        if count > CHUNK_COUNT_MAX:
            raise PayloadTooLarge(length, self.threshold)
        message_id = draw_message_id(self.id_source)
        messages = iter_chunk_messages(mode, payload, self.threshold, message_id, count)
        for i, message in enumerate(messages):
            self._write(message, i)

    def _write(self, message: bytes, chunk_index: Optional[int]) -> None:
        where = "message" if chunk_index is None else f"chunk {chunk_index}"
        try:
            written = self.sink.write(message)
        except OSError as e:
            raise SinkWriteFailure(f"sink write failed at {where}: {e}", chunk_index) from e
        # sinks returning None (no count) are taken to have written everything
        if written is not None and written != len(message):
            raise SinkWriteFailure(
                f"short sink write at {where}: {written} of {len(message)} bytes", chunk_index
            )
