import threading
import time

import pytest

from errors import InvalidState, OffsetOutOfRange
from output_buffer import OutputBuffer


def test_read_returns_everything_after_offset():
    buf = OutputBuffer()
    buf.append(b"hello ")
    buf.append(b"world\n")

    chunk = buf.read_from(0)
    assert chunk.data == b"hello world\n"
    assert chunk.new_offset == 12
    assert not chunk.is_final

    chunk = buf.read_from(6)
    assert chunk.data == b"world\n"
    assert chunk.offset == 6


def test_prefix_is_stable_while_growing():
    buf = OutputBuffer()
    buf.append(b"abc")
    first = buf.read_from(1)
    buf.append(b"def")
    second = buf.read_from(1)

    assert second.data.startswith(first.data)
    assert second.data == b"bcdef"


def test_final_only_at_end_of_finalized_buffer():
    buf = OutputBuffer()
    buf.append(b"xyz")
    buf.finalize()

    assert not buf.read_from(0, max_bytes=2).is_final
    assert buf.read_from(0).is_final

    end = buf.read_from(3)
    assert end.data == b""
    assert end.new_offset == 3
    assert end.is_final


def test_append_after_finalize_is_rejected():
    buf = OutputBuffer()
    buf.finalize()
    with pytest.raises(InvalidState):
        buf.append(b"late")
    assert len(buf) == 0


def test_offsets_outside_buffer_are_rejected():
    buf = OutputBuffer()
    buf.append(b"12")
    with pytest.raises(OffsetOutOfRange):
        buf.read_from(-1)
    with pytest.raises(OffsetOutOfRange):
        buf.read_from(3)


def test_max_bytes_limits_chunk():
    buf = OutputBuffer()
    buf.append(b"0123456789")
    chunk = buf.read_from(2, max_bytes=3)
    assert chunk.data == b"234"
    assert chunk.new_offset == 5


def test_wait_is_bounded_when_nothing_arrives():
    buf = OutputBuffer()
    start = time.monotonic()
    chunk = buf.read_from(0, wait=0.2)
    assert chunk.data == b""
    assert 0.15 <= time.monotonic() - start < 2.0


def test_wait_returns_early_on_append():
    buf = OutputBuffer()
    timer = threading.Timer(0.1, buf.append, args=(b"late",))
    timer.start()
    start = time.monotonic()
    chunk = buf.read_from(0, wait=5.0)
    timer.join()
    assert chunk.data == b"late"
    assert time.monotonic() - start < 4.0


def test_concurrent_readers_see_consistent_prefixes():
    buf = OutputBuffer()
    payload = bytes(range(256)) * 64
    seen = []

    def reader():
        for _ in range(200):
            seen.append(buf.read_from(0).data)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    for i in range(0, len(payload), 97):
        buf.append(payload[i:i + 97])
    for t in readers:
        t.join()

    assert all(payload.startswith(data) for data in seen)


def test_wait_final():
    buf = OutputBuffer()
    assert not buf.wait_final(timeout=0.05)
    threading.Timer(0.1, buf.finalize).start()
    assert buf.wait_final(timeout=5.0)
    assert buf.is_final
