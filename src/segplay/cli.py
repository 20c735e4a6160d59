import signal
from typing import Any, BinaryIO, Optional

import click

import segplay
from segplay.container import AudioFrame
from segplay.playback import (
    HlsSegmentListLoader,
    PlaybackController,
    SegmentedPlayback,
    SegmentFetcher,
)
from segplay.playback.hls import create_session


def validate_timecode(ctx: click.core.Context, param: str, value: int) -> int:
    if value < 0:
        raise click.BadParameter("must not be negative")
    return value


@click.group("segplay")
@click.version_option(segplay.__version__)
def main() -> None:
    """Play segmented Ogg Opus tracks."""


@main.command("play")
@click.argument("url")
@click.option(
    "--seek",
    "seek_to",
    help="Start position in milliseconds",
    default=0,
    show_default=True,
    callback=validate_timecode,
)
@click.option("--lookup", is_flag=True, help="URL returns JSON naming the playlist")
@click.option(
    "-o", "--output", type=click.File("wb"), help="Write raw Opus packets to a file"
)
def play(url: str, seek_to: int, lookup: bool, output: Optional[BinaryIO]) -> None:
    """Play a track from an HLS playlist URL."""

    def close_playback(*_args: Any) -> None:
        controller.stop()

    frames = 0
    last_timecode = 0

    def count_frame(frame: AudioFrame) -> None:
        nonlocal frames, last_timecode
        frames += 1
        last_timecode = frame.timecode
        if output is not None:
            output.write(frame.data)

    with create_session() as session:
        loader = HlsSegmentListLoader(session, resolve_lookup=lookup)
        playback = SegmentedPlayback(url, loader, SegmentFetcher(session))
        controller = PlaybackController(sink=count_frame)
        if seek_to:
            controller.seek(seek_to)
        signal.signal(signal.SIGINT, close_playback)
        signal.signal(signal.SIGTERM, close_playback)
        try:
            playback.process(controller)
        except Exception as error:
            raise click.ClickException(f"Playback failed: {error}") from error
    click.echo(f"Frames: {frames}")
    click.echo(f"Position: {last_timecode}ms")
