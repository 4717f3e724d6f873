import io

import pytest

from fcgikit.protocol import (
    CHUNK_SIZE,
    HEADER_SIZE,
    MAX_CONTENT_LENGTH,
    VERSION,
    Header,
    RecordType,
    RequestId,
)
from fcgikit.stream import BUFFER_SIZE, FcgiStream


class Collector:
    def __init__(self):
        self.sent = []

    def __call__(self, socket, record):
        self.sent.append((socket, record))

    def records(self):
        result = []
        for _, record in self.sent:
            header = Header.unpack(record)
            content = record[HEADER_SIZE:HEADER_SIZE + header.content_length]
            result.append((header, content, record))
        return result

    def payload(self):
        return b"".join(content for _, content, _ in self.records())


def make_stream(record_type=RecordType.OUT, socket="sock", fcgi_id=1):
    collector = Collector()
    stream = FcgiStream(RequestId(socket, fcgi_id), record_type, collector)
    return stream, collector


def test_small_write_wire_bytes():
    stream, collector = make_stream()
    stream.write(b"Hi")
    stream.flush()
    assert collector.sent == [
        ("sock", b"\x01\x06\x00\x01\x00\x02\x06\x00Hi" + bytes(6))
    ]


def test_nothing_sent_until_flush():
    stream, collector = make_stream()
    stream.write("hello")
    assert collector.sent == []
    stream.flush()
    assert collector.payload() == b"hello"


def test_empty_flush_sends_nothing():
    stream, collector = make_stream()
    stream.flush()
    stream.dump(b"")
    assert collector.sent == []


def test_text_is_utf8_encoded():
    stream, collector = make_stream()
    text = "Привет мир 世界您好"
    stream.write(text)
    stream.flush()
    assert collector.payload().decode("utf-8") == text


def test_header_fields_and_padding():
    stream, collector = make_stream(RecordType.ERR, socket=7, fcgi_id=300)
    stream.write(b"abcde")
    stream.flush()
    (header, content, record), = collector.records()
    assert header.version == VERSION
    assert header.type == RecordType.ERR
    assert header.fcgi_id == 300
    assert content == b"abcde"
    assert len(record) % CHUNK_SIZE == 0
    assert len(record) == HEADER_SIZE + header.content_length + header.padding_length
    assert collector.sent[0][0] == 7


def test_full_buffer_is_sent_automatically():
    stream, collector = make_stream()
    data = bytes(range(256)) * (BUFFER_SIZE // 256 * 2 + 1)
    stream.write(data)
    assert collector.sent
    for header, _, _ in collector.records():
        assert header.content_length == BUFFER_SIZE
    stream.flush()
    assert collector.payload() == data


def test_dump_splits_large_data():
    stream, collector = make_stream()
    data = bytes(i % 251 for i in range(MAX_CONTENT_LENGTH + 10))
    stream.dump(data)
    lengths = [header.content_length for header, _, _ in collector.records()]
    assert lengths == [MAX_CONTENT_LENGTH, 10]
    assert collector.payload() == data
    for _, _, record in collector.records():
        assert len(record) % CHUNK_SIZE == 0


def test_dump_flushes_buffer_first():
    stream, collector = make_stream()
    stream.write("text ")
    stream.dump(b"\x00\xffbinary")
    contents = [content for _, content, _ in collector.records()]
    assert contents == [b"text ", b"\x00\xffbinary"]


def test_dump_stream_round_trip():
    stream, collector = make_stream()
    data = bytes(i % 253 for i in range(2 * MAX_CONTENT_LENGTH + 3))
    stream.write(b"head")
    stream.dump_stream(io.BytesIO(data))
    records = collector.records()
    assert records[0][1] == b"head"
    assert [h.content_length for h, _, _ in records[1:]] == [
        MAX_CONTENT_LENGTH,
        MAX_CONTENT_LENGTH,
        3,
    ]
    assert collector.payload() == b"head" + data


def test_close_flushes_and_blocks_writes():
    stream, collector = make_stream()
    stream.write("bye")
    stream.close()
    assert stream.closed
    assert collector.payload() == b"bye"
    with pytest.raises(ValueError):
        stream.write("more")
    with pytest.raises(ValueError):
        stream.dump(b"more")


def test_context_manager_closes():
    collector = Collector()
    with FcgiStream(RequestId("s", 2), RecordType.OUT, collector) as stream:
        stream.write(b"inside")
    assert stream.closed
    assert collector.payload() == b"inside"


def test_write_returns_length_and_rejects_other_types():
    stream, _ = make_stream()
    assert stream.write("héllo") == 5
    assert stream.write(b"abc") == 3
    with pytest.raises(TypeError):
        stream.write(42)