# output_buffer.py
import threading

from errors import InvalidState, OffsetOutOfRange
from models import OutputChunk


class OutputBuffer:
    """
    Append-only byte log for one job's output.

    Only the job's drain task appends; any number of readers may call
    read_from() concurrently. Everything below the current length is
    immutable, so a reader retrying from an old offset always sees the same
    prefix.
    """

    def __init__(self):
        self._data = bytearray()
        self._final = False
        self._cond = threading.Condition()

    def __len__(self):
        with self._cond:
            return len(self._data)

    @property
    def is_final(self) -> bool:
        with self._cond:
            return self._final

    def append(self, chunk: bytes) -> int:
        with self._cond:
            if self._final:
                raise InvalidState("append to an output buffer that was already finalized")
            if chunk:
                self._data += chunk
                self._cond.notify_all()
            return len(self._data)

    def finalize(self):
        with self._cond:
            self._final = True
            self._cond.notify_all()

    def read_from(self, offset: int, wait: float = 0.0, max_bytes=None) -> OutputChunk:
        """
        Return the bytes at and after `offset`.

        If nothing is available yet, waits at most `wait` seconds for more
        output or for the end of the stream. Never blocks longer than that.
        """
        if offset < 0:
            raise OffsetOutOfRange(f"offset must be non-negative, got {offset}")
        with self._cond:
            if offset > len(self._data):
                raise OffsetOutOfRange(f"offset {offset} is past the end of the output ({len(self._data)} bytes)")
            if wait > 0:
                self._cond.wait_for(lambda: len(self._data) > offset or self._final, timeout=wait)
            end = len(self._data)
            if max_bytes is not None and max_bytes > 0:
                end = min(end, offset + max_bytes)
            data = bytes(self._data[offset:end])
            return OutputChunk(data, offset, end, self._final and end == len(self._data))

    def wait_final(self, timeout=None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._final, timeout=timeout)
