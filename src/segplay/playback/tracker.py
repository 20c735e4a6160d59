import logging
import os
from time import monotonic
from types import TracebackType
from typing import IO, Callable, Iterator, List, Optional

from segplay.container import ogg

from .chained import ChainedStream
from .hls import Segment

READ_BUFFER_SIZE = int(os.getenv("SEGPLAY_READ_BUFFER_SIZE", "8192"))

_logger = logging.getLogger("segplay")


class SegmentTracker:
    """Follows the read position of a track split into HLS segments.

    The segment list is mutated in place by refreshes which run on the
    reading thread, so a tracker must only ever be used from one thread.
    """

    refresh_interval = int(os.getenv("SEGPLAY_REFRESH_INTERVAL_SECONDS", "600"))

    def __init__(
        self,
        identifier: str,
        segments: List[Segment],
        loader: Callable[[str], List[Segment]],
        fetcher: Callable[[str], IO[bytes]],
    ) -> None:
        self.identifier = identifier
        self.segments = segments
        self.segment_index = 0
        self.stream_start_position = 0
        self.desired_position = 0
        self._fetcher = fetcher
        self._last_refresh = monotonic()
        self._loader = loader
        self._stream: Optional[ogg.OggPacketStream] = None

    def current_stream(self) -> ogg.OggPacketStream:
        if self._stream is None:
            chain = ChainedStream(self._segment_streams())
            self._stream = ogg.OggPacketStream(chain, READ_BUFFER_SIZE)
        return self._stream

    def next_stream(self) -> Optional[IO[bytes]]:
        if self.segment_index >= len(self.segments):
            return None
        index = self.segment_index
        self.segment_index += 1
        self._check_refresh()
        segment = self.segments[index]
        _logger.debug("For %s, fetching segment %d", self.identifier, index)
        return self._fetcher(segment.url)

    def _segment_streams(self) -> Iterator[IO[bytes]]:
        while (stream := self.next_stream()) is not None:
            yield stream

    def seek(self, timecode: int) -> None:
        segment_timecode = 0
        for index, segment in enumerate(self.segments):
            if segment.duration is None:
                break
            next_timecode = segment_timecode + segment.duration
            if segment_timecode <= timecode < next_timecode:
                self._seek_to_segment(index, timecode, segment_timecode)
                return
            segment_timecode = next_timecode
        self._seek_to_end()

    def _seek_to_segment(
        self, index: int, timecode: int, segment_timecode: int
    ) -> None:
        _logger.debug(
            "For %s, seeking to %d in segment %d", self.identifier, timecode, index
        )
        self._reset_stream()
        self.segment_index = index
        self.desired_position = timecode
        self.stream_start_position = segment_timecode
        stream = self.current_stream()
        # Only the first segment carries the stream headers.
        if self.stream_start_position == 0:
            ogg.detect_header(stream)
        else:
            stream.start_new_track()

    def _seek_to_end(self) -> None:
        _logger.debug("For %s, seeking past the known segments", self.identifier)
        self._reset_stream()
        self.segment_index = len(self.segments)

    def _reset_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()

    def _check_refresh(self) -> None:
        now = monotonic()
        delta = now - self._last_refresh
        if delta > self.refresh_interval:
            _logger.debug(
                "For %s, %.0fs passed since the last segment update, updating",
                self.identifier,
                delta,
            )
            if self._refresh():
                self._last_refresh = now

    def _refresh(self) -> bool:
        try:
            candidates = self._loader(self.identifier)
        except Exception:
            _logger.error(
                "For %s, failed to update segment list, skipping",
                self.identifier,
                exc_info=True,
            )
            return False
        if len(candidates) != len(self.segments):
            _logger.error(
                "For %s, received a different number of segments on update, skipping",
                self.identifier,
            )
            return False
        for index, (segment, candidate) in enumerate(zip(self.segments, candidates)):
            if segment.duration != candidate.duration:
                _logger.error(
                    "For %s, segment %d has a different length than before, skipping",
                    self.identifier,
                    index,
                )
                return False
        self.segments[:] = candidates
        return True

    def close(self) -> None:
        self._reset_stream()

    def __enter__(self) -> "SegmentTracker":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()
