import logging
from threading import Event, Lock
from typing import IO, Callable, List, Optional

from segplay.container.ogg import AudioFrame, detect_header

from .hls import Segment
from .tracker import SegmentTracker

_logger = logging.getLogger("segplay")


class PlaybackError(Exception):
    pass


class PlaybackController:
    """Hands frames to a sink and applies seek requests between sessions.

    ``seek`` and ``stop`` may be called from any thread; everything else
    runs on the playback thread.
    """

    def __init__(self, sink: Optional[Callable[[AudioFrame], None]] = None) -> None:
        self._abort_hooks: List[Callable[[], None]] = []
        self._lock = Lock()
        self._pending_seek: Optional[int] = None
        self._sink = sink
        self._stopped = Event()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def interrupted(self) -> bool:
        with self._lock:
            return self._pending_seek is not None or self._stopped.is_set()

    def seek(self, timecode: int) -> None:
        if timecode < 0:
            raise ValueError(f"Invalid timecode: {timecode}")
        with self._lock:
            self._pending_seek = timecode

    def stop(self) -> None:
        # No lock here: stop may run in a signal handler that interrupted
        # the playback thread while it held the lock.
        self._stopped.set()
        for hook in list(self._abort_hooks):
            hook()

    def add_abort_hook(self, hook: Callable[[], None]) -> None:
        with self._lock:
            self._abort_hooks.append(hook)

    def emit(self, frame: AudioFrame) -> bool:
        if self._sink is not None:
            self._sink(frame)
        return not self.interrupted

    def _take_seek(self) -> Optional[int]:
        with self._lock:
            timecode, self._pending_seek = self._pending_seek, None
        return timecode

    def execute_processing_loop(
        self, session: Callable[[], None], seek_handler: Callable[[int], None]
    ) -> None:
        while not self.stopped:
            timecode = self._take_seek()
            if timecode is not None:
                seek_handler(timecode)
            session()
            with self._lock:
                if self._pending_seek is None:
                    break


class SegmentedPlayback:
    """Plays an Ogg Opus track served as a list of HLS segments."""

    def __init__(
        self,
        identifier: str,
        loader: Callable[[str], List[Segment]],
        fetcher: Callable[[str], IO[bytes]],
    ) -> None:
        self.identifier = identifier
        self._fetcher = fetcher
        self._loader = loader

    def process(self, controller: PlaybackController) -> None:
        segments = self._loader(self.identifier)
        _logger.info("Playing %s (%d segments)", self.identifier, len(segments))
        if abort := getattr(self._fetcher, "abort", None):
            controller.add_abort_hook(abort)
        with SegmentTracker(
            self.identifier, segments, self._loader, self._fetcher
        ) as tracker:
            try:
                self._play(controller, tracker)
            except Exception:
                if not controller.stopped:
                    raise
                _logger.info("Stopped %s", self.identifier, exc_info=True)

    def _play(self, controller: PlaybackController, tracker: SegmentTracker) -> None:
        blueprint = detect_header(tracker.current_stream())
        if blueprint is None:
            raise PlaybackError("No Ogg Opus track detected in the stream")

        def decode_session() -> None:
            with blueprint.load_track_handler(tracker.current_stream()) as handler:
                handler.initialise(
                    tracker.stream_start_position, tracker.desired_position
                )
                handler.provide_frames(controller)

        controller.execute_processing_loop(decode_session, tracker.seek)
        _logger.info("Finished %s", self.identifier)
