import io
from typing import IO, Iterator, Optional


class ChainedStream(io.RawIOBase):
    """Reads a sequence of streams back to back as one forward-only stream.

    The next stream is pulled from ``streams`` only once the current one
    reports end of data, so no stream is opened before it is needed.
    """

    def __init__(self, streams: Iterator[IO[bytes]]) -> None:
        self._current: Optional[IO[bytes]] = None
        self._streams: Optional[Iterator[IO[bytes]]] = streams

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def readinto(self, buffer: bytearray) -> int:  # type: ignore[override]
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        view = memoryview(buffer)
        while view.nbytes:
            if self._current is None and not self._advance():
                return 0
            assert self._current is not None
            data = self._current.read(view.nbytes)
            if data:
                size = len(data)
                view[:size] = data
                return size
            self._current.close()
            self._current = None
        return 0

    def _advance(self) -> bool:
        if self._streams is None:
            return False
        self._current = next(self._streams, None)
        if self._current is None:
            self._streams = None
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        try:
            if self._current is not None:
                self._current.close()
                self._current = None
        finally:
            streams, self._streams = self._streams, None
            if hasattr(streams, "close"):
                streams.close()  # type: ignore[union-attr]
            super().close()
