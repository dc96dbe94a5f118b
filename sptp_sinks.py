# sptp_sinks.py
"""
Sink adapters. The writer only needs an object with ``write(bytes)``; these
wrap sockets and add optional cross-thread serialization.
"""
from __future__ import annotations

import socket
import threading
from typing import Tuple


class SocketSink:
    """Stream socket sink. Each message goes out with a single sendall."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock

    def write(self, data: bytes) -> int:
        self.sock.sendall(data)
        return len(data)


class DatagramSink:
    """Datagram sink. Each message is one datagram to ``addr``."""

    def __init__(self, sock: socket.socket, addr: Tuple[str, int]) -> None:
        self.sock = sock
        self.addr = addr

    def write(self, data: bytes) -> int:
        sent = self.sock.sendto(data, self.addr)
        if sent != len(data):
            raise OSError(f"short datagram write: {sent} of {len(data)} bytes")
        return sent


class LockedSink:
    """
    Serializes writes from several threads. Note this keeps single messages
    whole but does not keep one payload's chunks together; use the writer's
    ``serialize_writes`` for that.
    """
    def __init__(self, inner) -> None:
        self.inner = inner
        self._lock = threading.Lock()

    def write(self, data: bytes) -> int:
        with self._lock:
            return self.inner.write(data)


def open_sink(host: str, port: int, udp: bool = False):
    if udp:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        return DatagramSink(sock, (host, port)), sock
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.connect((host, port))
    except OSError:
        sock.close()
        raise
    return SocketSink(sock), sock
