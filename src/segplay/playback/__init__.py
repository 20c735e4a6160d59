import logging
import sys

from .hls import HlsSegmentListLoader, Segment, SegmentFetcher
from .player import AudioFrame, PlaybackController, PlaybackError, SegmentedPlayback
from .tracker import SegmentTracker

logger = logging.getLogger("segplay")
logger.setLevel(logging.INFO)
logger.addHandler(logging.StreamHandler(sys.stdout))

__all__ = [
    "AudioFrame",
    "HlsSegmentListLoader",
    "PlaybackController",
    "PlaybackError",
    "Segment",
    "SegmentFetcher",
    "SegmentTracker",
    "SegmentedPlayback",
]
