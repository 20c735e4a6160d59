import io
import struct

import pytest

from segplay.playback import Segment

# CELT, 20 ms, one frame per packet
AUDIO_TOC = 0xF8


def make_page(packets, flags=0, lacing=None):
    body = b"".join(packets)
    if lacing is None:
        lacing = []
        for packet in packets:
            lacing += [255] * (len(packet) // 255) + [len(packet) % 255]
    header = struct.pack("<4sBBqIIIB", b"OggS", 0, flags, 0, 1, 0, 0, len(lacing))
    return header + bytes(lacing) + body


def opus_head(channels=2, pre_skip=312):
    return struct.pack("<8sBBHIhB", b"OpusHead", 1, channels, pre_skip, 48000, 0, 0)


def audio_packets(count, start=0):
    return [bytes([AUDIO_TOC, (start + i) % 256]) for i in range(count)]


class FakeFetcher:
    def __init__(self, contents):
        self.contents = contents
        self.fetched = []
        self.streams = []

    def __call__(self, url):
        self.fetched.append(url)
        # Re-signed URLs only differ in their query
        stream = io.BytesIO(self.contents[url.partition("?")[0]])
        self.streams.append(stream)
        return stream


@pytest.fixture
def page():
    return make_page


@pytest.fixture
def opus_head_packet():
    return opus_head()


@pytest.fixture
def audio():
    return audio_packets


@pytest.fixture
def track_contents():
    # Three segments of five 20 ms packets each, headers in the first one.
    return {
        "https://example.org/0.opus": make_page([opus_head()], flags=0x02)
        + make_page([b"OpusTags" + bytes(8)])
        + make_page(audio_packets(5)),
        "https://example.org/1.opus": make_page(audio_packets(5, start=5)),
        "https://example.org/2.opus": make_page(audio_packets(5, start=10)),
    }


@pytest.fixture
def track_segments():
    return [
        Segment("https://example.org/0.opus", 100),
        Segment("https://example.org/1.opus", 100),
        Segment("https://example.org/2.opus", None),
    ]


@pytest.fixture
def fetcher(track_contents):
    return FakeFetcher(track_contents)


@pytest.fixture
def loader(track_segments):
    def _loader(identifier):
        return list(track_segments)

    return _loader
