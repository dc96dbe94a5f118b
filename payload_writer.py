# payload_writer.py
"""
Payload encoder: optional gzip compression in front of the frame emitter.
"""
from __future__ import annotations

import gzip
import threading
import zlib
from typing import Optional

from chunk_framing import ChunkedFrameEmitter
from message_ids import IdSource
from sptp_protocol import MODE_GZIPPED, CompressionFailure
from writer_options import WriterOptions, normalize_options


def compress(payload: bytes, level: int) -> bytes:
    try:
        return gzip.compress(payload, compresslevel=level, mtime=0)
    except (zlib.error, ValueError) as e:
        raise CompressionFailure(f"gzip compression failed: {e}") from e


class PayloadWriter:
    def __init__(self, sink, opts: WriterOptions, id_source: Optional[IdSource] = None,
                 serialize_writes: bool = False, strict: bool = False) -> None:
        self.options = normalize_options(opts, strict=strict)
        self.emitter = ChunkedFrameEmitter(sink, self.options.chunk_threshold, id_source)
        self._lock = threading.Lock() if serialize_writes else None

    def write(self, p: bytes) -> int:
        """
        Send ``p`` as one logical payload and return ``len(p)``, whatever
        number of bytes actually went on the wire.
        """
        if self._lock is None:
            self._send(p)
        else:
            with self._lock:
                self._send(p)
        return len(p)

    def _send(self, p: bytes) -> None:
        mode = 0
        b = bytes(p)
        if self.options.gzip_enabled:
            mode |= MODE_GZIPPED
            b = compress(b, self.options.gzip_level)
        self.emitter.emit(mode, b)


def new_writer(sink) -> PayloadWriter:
    return new_writer_with_options(sink, WriterOptions())


def new_writer_with_options(sink, opts: WriterOptions, id_source: Optional[IdSource] = None,
                            serialize_writes: bool = False, strict: bool = False) -> PayloadWriter:
    return PayloadWriter(sink, opts, id_source, serialize_writes, strict)
