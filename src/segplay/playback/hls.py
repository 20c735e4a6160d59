import io
import logging
import os
from threading import RLock
from typing import List, NamedTuple, Optional

import requests
from streamlink.stream.hls.m3u8 import parse_m3u8  # type: ignore

from segplay import __version__

# See rfc8216 and https://developer.apple.com/documentation/http_live_streaming

HTTP_TIMEOUT_SECONDS = int(os.getenv("SEGPLAY_HTTP_TIMEOUT_SECONDS", "30"))
USER_AGENT = os.getenv("SEGPLAY_USER_AGENT", f"segplay/{__version__}")

_logger = logging.getLogger("segplay")


class Segment(NamedTuple):
    url: str
    # Milliseconds; None for the trailing segment of a live playlist
    duration: Optional[int] = None


def create_session() -> requests.Session:
    session = requests.Session()
    session.headers["user-agent"] = USER_AGENT
    return session


class HlsSegmentListLoader:
    """Loads the media segments of an HLS playlist.

    With ``resolve_lookup`` the identifier is a lookup URL whose JSON
    response names the playlist in its ``url`` member; otherwise the
    identifier is the playlist URL itself.
    """

    def __init__(
        self, session: requests.Session, resolve_lookup: bool = False
    ) -> None:
        self._session = session
        self._resolve_lookup = resolve_lookup

    def __call__(self, identifier: str) -> List[Segment]:
        playlist_url = identifier
        if self._resolve_lookup:
            playlist_url = self._playback_url(identifier)
        response = self._session.get(playlist_url, timeout=HTTP_TIMEOUT_SECONDS)
        response.raise_for_status()
        return parse_segments(response.text, base_uri=response.url)

    def _playback_url(self, lookup_url: str) -> str:
        response = self._session.get(lookup_url, timeout=HTTP_TIMEOUT_SECONDS)
        response.raise_for_status()
        try:
            return response.json()["url"]
        except (KeyError, TypeError) as error:
            raise ValueError(f"No playback URL in lookup response: {error}") from error


def parse_segments(text: str, base_uri: Optional[str] = None) -> List[Segment]:
    playlist = parse_m3u8(text, base_uri=base_uri)
    if playlist.is_master:
        raise ValueError("Expected a media playlist, got a master playlist")
    return [
        Segment(segment.uri, _milliseconds(segment.duration))
        for segment in playlist.segments
    ]


def _milliseconds(seconds: Optional[float]) -> Optional[int]:
    if seconds is None or seconds < 0:
        return None
    return round(seconds * 1000)


class _ResponseStream(io.RawIOBase):
    def __init__(self, response: requests.Response) -> None:
        self._response = response

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray) -> int:  # type: ignore[override]
        data = self._response.raw.read(len(buffer))
        size = len(data)
        buffer[:size] = data
        return size

    def close(self) -> None:
        if not self.closed:
            self._response.close()
        super().close()


class SegmentFetcher:
    """Fetches whole segments, one in flight at a time.

    ``abort`` may be called from another thread to unblock a read that is
    waiting on the network.
    """

    def __init__(self, session: requests.Session) -> None:
        self._aborted = False
        # Reentrant: abort may run from a signal handler on the reading thread
        self._lock = RLock()
        self._response: Optional[requests.Response] = None
        self._session = session

    def __call__(self, url: str) -> io.RawIOBase:
        with self._lock:
            if self._aborted:
                raise requests.ConnectionError(f"Segment request aborted: {url}")
        response = self._session.get(url, stream=True, timeout=HTTP_TIMEOUT_SECONDS)
        with self._lock:
            if self._aborted:
                response.close()
                raise requests.ConnectionError(f"Segment request aborted: {url}")
            self._response = response
        response.raise_for_status()
        response.raw.decode_content = True
        return _ResponseStream(response)

    def abort(self) -> None:
        with self._lock:
            self._aborted = True
            if self._response is not None:
                _logger.debug("Aborting segment request %s", self._response.url)
                self._response.close()
                self._response = None
