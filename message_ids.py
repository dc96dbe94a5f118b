# message_ids.py
"""
Correlation id sources for chunked messages.
"""
from __future__ import annotations

import os
import struct
from typing import Callable, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from sptp_protocol import MESSAGE_ID_SIZE, RandomnessFailure


class RandomIdSource:
    """Draws ids from the OS CSPRNG."""

    def next_id(self) -> bytes:
        return os.urandom(MESSAGE_ID_SIZE)


class DeterministicIdSource:
    """
    Derives a reproducible id sequence from a seed. Meant for tests and
    replays; ids stay well distributed but anyone holding the seed can
    predict them.
    """
    def __init__(self, seed: bytes) -> None:
        self._seed = seed
        self._counter = 0

    def next_id(self) -> bytes:
        self._counter += 1
        hkdf = HKDF(algorithm=hashes.SHA256(), length=MESSAGE_ID_SIZE, salt=None,
                    info=b"sptp-message-id|" + struct.pack("!Q", self._counter))
        return hkdf.derive(self._seed)


IdSource = Union[RandomIdSource, DeterministicIdSource, Callable[[], bytes]]


def draw_message_id(source: IdSource) -> bytes:
    draw = getattr(source, "next_id", source)
    try:
        message_id = draw()
    except (OSError, NotImplementedError) as e:
        raise RandomnessFailure(f"message id source failed: {e}") from e
    if not isinstance(message_id, (bytes, bytearray)) or len(message_id) != MESSAGE_ID_SIZE:
        raise RandomnessFailure(f"message id must be {MESSAGE_ID_SIZE} bytes")
    return bytes(message_id)
