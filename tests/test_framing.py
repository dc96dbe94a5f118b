import pytest

from chunk_framing import ChunkedFrameEmitter, chunk_count, frame_message, iter_chunk_messages
from message_ids import DeterministicIdSource, RandomIdSource, draw_message_id
from sptp_protocol import (
    CHUNKED_HEADER_SIZE,
    MAGIC,
    MODE_CHUNKED,
    MODE_GZIPPED,
    ConfigurationError,
    MalformedMessage,
    PayloadTooLarge,
    RandomnessFailure,
    SinkWriteFailure,
    parse_message,
)


SAMPLE = bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06, 0x07, 0x08, 0x09])
SAMPLE_THRESHOLD = 4


class _RecordingSink:
    def __init__(self):
        self.data = []

    def write(self, p):
        self.data.append(bytes(p))
        return len(p)


class _FailingSink(_RecordingSink):
    def __init__(self, fail_at):
        super().__init__()
        self.fail_at = fail_at

    def write(self, p):
        if len(self.data) == self.fail_at:
            raise BrokenPipeError("peer went away")
        return super().write(p)


def test_chunk_count():
    assert chunk_count(9, 4) == 3
    assert chunk_count(8, 4) == 2
    assert chunk_count(1, 4) == 1
    assert chunk_count(255, 1) == 255


def test_small_payload_single_message():
    sink = _RecordingSink()
    ChunkedFrameEmitter(sink, 16).emit(0, b"hello")
    assert sink.data == [bytes([MAGIC, 0]) + b"hello"]
    assert not parse_message(sink.data[0]).chunked


def test_payload_equal_to_threshold_is_not_chunked():
    sink = _RecordingSink()
    ChunkedFrameEmitter(sink, 4).emit(MODE_GZIPPED, b"abcd")
    assert sink.data == [bytes([MAGIC, MODE_GZIPPED]) + b"abcd"]


def test_empty_payload():
    sink = _RecordingSink()
    ChunkedFrameEmitter(sink, 4).emit(0, b"")
    assert sink.data == [bytes([MAGIC, 0])]


def test_nine_bytes_threshold_four():
    sink = _RecordingSink()
    ChunkedFrameEmitter(sink, SAMPLE_THRESHOLD).emit(0, SAMPLE)

    assert len(sink.data) == 3
    for d in sink.data:
        assert d[0] == MAGIC
        assert d[1] == MODE_CHUNKED
    msg_id = sink.data[0][2:10]
    assert sink.data[1][2:10] == msg_id
    assert sink.data[2][2:10] == msg_id
    assert sink.data[0][10:12] == bytes([0x03, 0x00])
    assert sink.data[1][10:12] == bytes([0x03, 0x01])
    assert sink.data[2][10:12] == bytes([0x03, 0x02])
    assert sink.data[0][12:] == bytes([0x01, 0x02, 0x03, 0x04])
    assert sink.data[1][12:] == bytes([0x05, 0x06, 0x07, 0x08])
    assert sink.data[2][12:] == bytes([0x09])


def test_chunked_keeps_caller_mode_bits():
    sink = _RecordingSink()
    ChunkedFrameEmitter(sink, 4).emit(MODE_GZIPPED, SAMPLE)
    assert all(d[1] == MODE_CHUNKED | MODE_GZIPPED for d in sink.data)


def test_chunks_cover_payload_in_order():
    payload = bytes(range(256)) * 3
    sink = _RecordingSink()
    ChunkedFrameEmitter(sink, 100).emit(0, payload)

    messages = [parse_message(d) for d in sink.data]
    assert len(messages) == chunk_count(len(payload), 100) == 8
    assert [m.chunk_index for m in messages] == list(range(8))
    assert {m.chunk_count for m in messages} == {8}
    assert len({m.message_id for m in messages}) == 1
    assert b"".join(m.payload for m in messages) == payload
    assert all(len(d) <= CHUNKED_HEADER_SIZE + 100 for d in sink.data)


def test_max_chunk_count_allowed():
    sink = _RecordingSink()
    ChunkedFrameEmitter(sink, 1).emit(0, b"x" * 255)
    assert len(sink.data) == 255
    assert parse_message(sink.data[-1]).chunk_index == 254


def test_too_many_chunks_writes_nothing():
    sink = _RecordingSink()
    drawn = []

    def ids():
        drawn.append(1)
        return b"\x00" * 8

    with pytest.raises(PayloadTooLarge):
        ChunkedFrameEmitter(sink, 1, ids).emit(0, b"x" * 256)
    assert sink.data == []
    assert drawn == []


def test_iter_chunk_messages_uses_given_count():
    messages = list(iter_chunk_messages(MODE_GZIPPED, SAMPLE, 4, b"\x01" * 8, 3))
    assert [parse_message(m).chunk_index for m in messages] == [0, 1, 2]
    assert all(m[1] == MODE_CHUNKED | MODE_GZIPPED for m in messages)
    assert b"".join(m[CHUNKED_HEADER_SIZE:] for m in messages) == SAMPLE


def test_emitter_rejects_non_positive_threshold():
    for threshold in (0, -5):
        with pytest.raises(ConfigurationError):
            ChunkedFrameEmitter(_RecordingSink(), threshold)


def test_randomness_failure_writes_nothing():
    sink = _RecordingSink()

    def broken():
        raise OSError("entropy source unavailable")

    with pytest.raises(RandomnessFailure):
        ChunkedFrameEmitter(sink, 4, broken).emit(0, SAMPLE)
    assert sink.data == []


def test_wrong_size_id_rejected():
    with pytest.raises(RandomnessFailure):
        draw_message_id(lambda: b"short")


def test_sink_failure_stops_sequence():
    sink = _FailingSink(fail_at=1)
    with pytest.raises(SinkWriteFailure) as exc:
        ChunkedFrameEmitter(sink, 4).emit(0, SAMPLE)
    assert exc.value.chunk_index == 1
    assert isinstance(exc.value, OSError)
    assert isinstance(exc.value.__cause__, BrokenPipeError)
    assert len(sink.data) == 1


def test_sink_failure_unchunked():
    with pytest.raises(SinkWriteFailure) as exc:
        ChunkedFrameEmitter(_FailingSink(fail_at=0), 16).emit(0, b"abc")
    assert exc.value.chunk_index is None


def test_injected_ids_are_used():
    sink = _RecordingSink()
    ChunkedFrameEmitter(sink, 4, lambda: b"ABCDEFGH").emit(0, SAMPLE)
    assert all(d[2:10] == b"ABCDEFGH" for d in sink.data)


def test_random_ids_do_not_collide():
    source = RandomIdSource()
    ids = {source.next_id() for _ in range(20000)}
    assert len(ids) == 20000


def test_deterministic_ids_repeat_per_seed():
    a = DeterministicIdSource(b"seed-1")
    b = DeterministicIdSource(b"seed-1")
    c = DeterministicIdSource(b"seed-2")
    seq_a = [a.next_id() for _ in range(50)]
    assert seq_a == [b.next_id() for _ in range(50)]
    assert seq_a[0] != c.next_id()
    assert len(set(seq_a)) == 50
    assert all(len(i) == 8 for i in seq_a)


def test_separate_calls_get_separate_ids():
    sink = _RecordingSink()
    emitter = ChunkedFrameEmitter(sink, 4, DeterministicIdSource(b"k"))
    emitter.emit(0, SAMPLE)
    emitter.emit(0, SAMPLE)
    assert sink.data[0][2:10] != sink.data[3][2:10]


def test_frame_message():
    assert frame_message(MODE_GZIPPED, b"z") == bytes([MAGIC, MODE_GZIPPED]) + b"z"


def test_parse_message_rejects_garbage():
    with pytest.raises(MalformedMessage):
        parse_message(b"\xaa")
    with pytest.raises(MalformedMessage):
        parse_message(b"\x00\x00abc")
    with pytest.raises(MalformedMessage):
        parse_message(bytes([MAGIC, MODE_CHUNKED]) + b"\x00" * 5)
    with pytest.raises(MalformedMessage):
        parse_message(bytes([MAGIC, MODE_CHUNKED]) + b"\x00" * 8 + bytes([2, 2]))


class _ShortSink(_RecordingSink):
    def write(self, p):
        super().write(p[:-1])
        return len(p) - 1


def test_short_sink_write_is_an_error():
    with pytest.raises(SinkWriteFailure) as exc:
        ChunkedFrameEmitter(_ShortSink(), 4).emit(0, SAMPLE)
    assert exc.value.chunk_index == 0
    assert "short sink write" in str(exc.value)


def test_sink_without_write_count():
    class _Quiet(_RecordingSink):
        def write(self, p):
            super().write(p)

    sink = _Quiet()
    ChunkedFrameEmitter(sink, 4).emit(0, SAMPLE)
    assert len(sink.data) == 3
