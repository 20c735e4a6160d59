import io
import logging
import struct
from types import TracebackType
from typing import IO, TYPE_CHECKING, List, NamedTuple, Optional

if TYPE_CHECKING:
    from segplay.playback.player import PlaybackController

# See rfc3533 (Ogg), rfc7845 (Ogg Opus) and rfc6716 (Opus)

_PAGE_HEADER = struct.Struct("<4sBBqIIIB")
_OPUS_HEAD = struct.Struct("<8sBBHIhB")

CAPTURE_PATTERN = b"OggS"
FLAG_CONTINUED = 0x01
OPUS_SAMPLE_RATE = 48000

_logger = logging.getLogger("segplay")


class OggFormatError(ValueError):
    pass


class AudioFrame(NamedTuple):
    timecode: int
    data: bytes


class OggPacketStream:
    """Splits an Ogg bitstream into packets.

    Owns ``raw`` and closes it on ``close``.
    """

    def __init__(self, raw: IO[bytes], buffer_size: int = io.DEFAULT_BUFFER_SIZE):
        self._input = io.BufferedReader(raw, buffer_size)  # type: ignore[arg-type]
        self._lacing: List[int] = []
        self._partial = bytearray()
        self._drop_continuation = False

    def start_new_track(self) -> None:
        """Resynchronise on a page boundary in the middle of a bitstream.

        Any partially assembled packet is discarded, and so is the leading
        continuation of the next page since its start was never seen.
        """
        self._lacing = []
        self._partial.clear()
        self._drop_continuation = True

    def read_packet(self) -> Optional[bytes]:
        while True:
            if not self._lacing and not self._next_page():
                if self._partial:
                    _logger.warning(
                        "Dropping %d byte(s) of a truncated packet", len(self._partial)
                    )
                    self._partial.clear()
                return None
            while self._lacing:
                size = self._lacing.pop(0)
                self._partial += self._read_exact(size)
                if size < 255:
                    packet = bytes(self._partial)
                    self._partial.clear()
                    if self._drop_continuation:
                        self._drop_continuation = False
                        continue
                    return packet

    def _next_page(self) -> bool:
        header = self._input.read(_PAGE_HEADER.size)
        if not header:
            return False
        if len(header) < _PAGE_HEADER.size:
            raise OggFormatError("Truncated Ogg page header")
        capture, version, flags, _granule, _serial, _seq, _crc, count = (
            _PAGE_HEADER.unpack(header)
        )
        if capture != CAPTURE_PATTERN or version != 0:
            raise OggFormatError("Invalid Ogg page header")
        self._lacing = list(self._read_exact(count))
        if not flags & FLAG_CONTINUED:
            if self._partial:
                _logger.debug(
                    "Discarding unterminated packet of %d byte(s)", len(self._partial)
                )
                self._partial.clear()
            self._drop_continuation = False
        elif not self._drop_continuation and not self._partial:
            # A continuation with nothing to continue; skip its tail.
            self._drop_continuation = True
        return True

    def _read_exact(self, size: int) -> bytes:
        data = self._input.read(size)
        if len(data) != size:
            raise OggFormatError(f"Expected {size} byte(s), got {len(data)}")
        return data

    def close(self) -> None:
        self._input.close()


class OpusBlueprint(NamedTuple):
    channels: int
    pre_skip: int
    input_sample_rate: int
    output_gain: int

    def load_track_handler(self, packets: OggPacketStream) -> "OpusTrackHandler":
        return OpusTrackHandler(self, packets)


def detect_header(packets: OggPacketStream) -> Optional[OpusBlueprint]:
    """Reads the identification and comment headers of an Ogg Opus stream."""
    head = packets.read_packet()
    if head is None or len(head) < _OPUS_HEAD.size or head[:8] != b"OpusHead":
        return None
    _magic, version, channels, pre_skip, sample_rate, gain, _family = (
        _OPUS_HEAD.unpack_from(head)
    )
    if version >> 4 != 0 or channels == 0:
        return None
    tags = packets.read_packet()
    if tags is None or not tags.startswith(b"OpusTags"):
        return None
    return OpusBlueprint(channels, pre_skip, sample_rate, gain)


# Frame sizes in 48 kHz samples by TOC configuration number
_SILK_SAMPLES = (480, 960, 1920, 2880)
_HYBRID_SAMPLES = (480, 960)
_CELT_SAMPLES = (120, 240, 480, 960)


def packet_samples(packet: bytes) -> int:
    if not packet:
        return 0
    toc = packet[0]
    config = toc >> 3
    if config < 12:
        frame_samples = _SILK_SAMPLES[config % 4]
    elif config < 16:
        frame_samples = _HYBRID_SAMPLES[config % 2]
    else:
        frame_samples = _CELT_SAMPLES[config % 4]
    code = toc & 0x03
    if code == 0:
        frames = 1
    elif code in (1, 2):
        frames = 2
    elif len(packet) > 1:
        frames = packet[1] & 0x3F
    else:
        raise OggFormatError("Opus packet is missing its frame count byte")
    return frame_samples * frames


class OpusTrackHandler:
    def __init__(self, blueprint: OpusBlueprint, packets: OggPacketStream) -> None:
        self.blueprint = blueprint
        self._packets = packets
        self._samples = 0
        self._start_position = 0
        self.desired_position = 0

    def initialise(self, start_position: int, desired_position: int) -> None:
        self._samples = 0
        self._start_position = start_position
        self.desired_position = desired_position

    @property
    def timecode(self) -> int:
        return self._start_position + self._samples * 1000 // OPUS_SAMPLE_RATE

    def provide_frames(self, controller: "PlaybackController") -> None:
        """Emits frames until end of data or until the controller interrupts."""
        while (packet := self._packets.read_packet()) is not None:
            timecode = self.timecode
            self._samples += packet_samples(packet)
            if timecode < self.desired_position:
                continue
            if not controller.emit(AudioFrame(timecode, packet)):
                return

    def __enter__(self) -> "OpusTrackHandler":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        # The packet stream belongs to the segment tracker.
        self._packets = None  # type: ignore[assignment]
