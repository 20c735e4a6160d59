import io

import pytest

from segplay.playback.chained import ChainedStream


def test_read_joins_streams():
    streams = [io.BytesIO(b"ab"), io.BytesIO(b""), io.BytesIO(b"cde")]
    chain = ChainedStream(iter(streams))

    assert chain.read() == b"abcde"
    assert chain.read(1) == b""


def test_read_stops_at_stream_boundary():
    chain = ChainedStream(iter([io.BytesIO(b"ab"), io.BytesIO(b"cde")]))

    assert chain.read(10) == b"ab"
    assert chain.read(10) == b"cde"
    assert chain.read(10) == b""


def test_streams_are_pulled_lazily():
    pulled = []

    def streams():
        for data in (b"ab", b"cd"):
            pulled.append(data)
            yield io.BytesIO(data)

    chain = ChainedStream(streams())
    assert not pulled

    chain.read(2)
    assert pulled == [b"ab"]

    chain.read(2)
    assert pulled == [b"ab", b"cd"]


def test_exhausted_streams_are_closed():
    first, second = io.BytesIO(b"a"), io.BytesIO(b"b")
    chain = ChainedStream(iter([first, second]))

    assert chain.read(1) == b"a"
    assert chain.read(1) == b"b"
    assert first.closed
    assert not second.closed


def test_close_releases_current_stream_and_supplier():
    closed = []

    def streams():
        try:
            yield current
            yield io.BytesIO(b"unused")
        finally:
            closed.append("supplier")

    current = io.BytesIO(b"abc")
    chain = ChainedStream(streams())
    chain.read(1)
    chain.close()
    chain.close()

    assert current.closed
    assert closed == ["supplier"]
    with pytest.raises(ValueError):
        chain.read(1)


def test_not_seekable():
    chain = ChainedStream(iter([]))

    assert chain.readable()
    assert not chain.seekable()
    assert chain.read() == b""
