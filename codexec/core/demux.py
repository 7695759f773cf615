"""
Output Stream Demultiplexer — splits the container's attached output
channel into separate stdout and stderr accumulators.

The Docker attach stream (demux=True) yields (stdout_chunk, stderr_chunk)
pairs where one side is usually None. Chunks arrive in arbitrary sizes;
they are appended to the matching buffer in arrival order. Each buffer is
capped: bytes past the cap are dropped and the buffer is flagged as
truncated.

consume() blocks until the channel reaches end-of-stream, so it runs on a
drain thread of its own while the event loop races it against the
deadline.
"""

import threading
from typing import Iterable, Optional, Union

from codexec.core.config import DEFAULT_MAX_OUTPUT_BYTES

Frame = Union[bytes, tuple[Optional[bytes], Optional[bytes]]]


class BoundedBuffer:
    """Append-only byte accumulator with a hard size cap."""

    def __init__(self, limit: int = DEFAULT_MAX_OUTPUT_BYTES):
        self.limit = limit
        self.size = 0
        self.truncated = False
        self._chunks: list[bytes] = []

    def append(self, chunk: bytes) -> None:
        if not chunk:
            return
        room = self.limit - self.size
        if room <= 0:
            self.truncated = True
            return
        if len(chunk) > room:
            chunk = chunk[:room]
            self.truncated = True
        self._chunks.append(chunk)
        self.size += len(chunk)

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)

    def text(self) -> str:
        # Decoded once, at read time, so multi-byte characters split across
        # chunks come out intact.
        return self.getvalue().decode("utf-8", errors="replace")


class OutputDemultiplexer:
    """Routes attach-stream frames into stdout / stderr buffers."""

    def __init__(self, max_bytes: int = DEFAULT_MAX_OUTPUT_BYTES):
        self.stdout = BoundedBuffer(max_bytes)
        self.stderr = BoundedBuffer(max_bytes)
        self._lock = threading.Lock()
        self._finished = threading.Event()

    @property
    def finished(self) -> bool:
        """True once the channel has signalled end-of-stream."""
        return self._finished.is_set()

    def feed(self, frame: Frame) -> None:
        # A bare bytes frame comes from a non-demuxed (tty) stream: stdout only.
        if isinstance(frame, (bytes, bytearray)):
            out, err = bytes(frame), None
        else:
            out, err = frame
        with self._lock:
            if out:
                self.stdout.append(out)
            if err:
                self.stderr.append(err)

    def consume(self, stream: Iterable[Frame]) -> None:
        """Drain stream until end-of-stream. Blocking."""
        try:
            for frame in stream:
                self.feed(frame)
        finally:
            self._finished.set()

    def snapshot(self) -> tuple[str, str]:
        """Decoded (stdout, stderr) as captured so far."""
        with self._lock:
            return self.stdout.text(), self.stderr.text()

    @property
    def stdout_truncated(self) -> bool:
        return self.stdout.truncated

    @property
    def stderr_truncated(self) -> bool:
        return self.stderr.truncated
