"""
Tests for the streaming GIF encoder.
"""

from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from gifbuild import RecordingSink
from gifsig.decoder import GifDecoder, decompress_frame
from gifsig.encoder import GifEncoder, clamp_delay
from gifsig.exceptions import SinkWriteError
from gifsig.types import DisposalMethod, OutputFrame

RED_BLUE = ((255, 0, 0), (0, 0, 255))


def _frame(width=8, height=6, index=0, delay_cs=10, palette=RED_BLUE, **kwargs) -> OutputFrame:
    indices = np.full((height, width), index, dtype=np.uint8)
    return OutputFrame(indices=indices, palette=palette, delay_cs=delay_cs, **kwargs)


def _encode(frames, loop_count=0, global_palette=None, min_delay_cs=2) -> bytes:
    buf = io.BytesIO()
    enc = GifEncoder(buf, min_delay_cs=min_delay_cs)
    enc.write_header(8, 6, global_palette=global_palette, loop_count=loop_count)
    for frame in frames:
        enc.write_frame(frame)
    enc.write_trailer()
    return buf.getvalue()


class TestClampDelay:
    @pytest.mark.parametrize("delay, expected", [(0, 2), (1, 2), (2, 2), (5, 5), (100, 100)])
    def test_minimum(self, delay, expected):
        assert clamp_delay(delay, 2) == expected

    def test_upper_bound(self):
        assert clamp_delay(70_000, 2) == 0xFFFF

    def test_never_shortens(self):
        for delay in range(0, 50):
            assert clamp_delay(delay, 6) >= delay


class TestOutput:
    def test_pillow_reads_animation(self):
        data = _encode([_frame(index=0), _frame(index=1, delay_cs=25)], loop_count=0)
        with Image.open(io.BytesIO(data)) as im:
            assert im.format == "GIF"
            assert im.size == (8, 6)
            assert im.n_frames == 2
            assert im.info.get("loop") == 0
            assert im.info["duration"] == 100
            im.seek(1)
            assert im.info["duration"] == 250
            assert im.convert("RGB").getpixel((0, 0)) == (0, 0, 255)

    def test_round_trip_through_decoder(self):
        rng = np.random.default_rng(3)
        indices = rng.integers(0, 2, size=(6, 8), dtype=np.uint8)
        data = _encode([OutputFrame(indices, RED_BLUE, 0, DisposalMethod.DO_NOT_DISPOSE)])
        dec = GifDecoder(data)
        frame = next(dec.frames())
        assert frame.delay_cs == 2
        assert frame.disposal is DisposalMethod.DO_NOT_DISPOSE
        assert frame.local_palette[:2] == RED_BLUE
        assert (decompress_frame(frame) == indices).all()

    def test_global_palette_skips_local_table(self):
        data = _encode([_frame()], global_palette=RED_BLUE)
        dec = GifDecoder(data)
        assert dec.screen.global_palette[:2] == RED_BLUE
        assert next(dec.frames()).local_palette is None

    def test_transparency_flag(self):
        data = _encode([_frame(index=1, transparent_index=1,
                               disposal=DisposalMethod.RESTORE_BACKGROUND)])
        frame = next(GifDecoder(data).frames())
        assert frame.transparent_index == 1
        assert frame.disposal is DisposalMethod.RESTORE_BACKGROUND

    def test_loop_block_optional(self):
        data = _encode([_frame()], loop_count=None)
        assert b"NETSCAPE2.0" not in data
        assert GifDecoder(data).screen.loop_count is None

    def test_ends_with_trailer(self):
        assert _encode([_frame()])[-1] == 0x3B

    @pytest.mark.parametrize("colors, expected", [(1, 2), (2, 2), (5, 3), (256, 8)])
    def test_minimum_code_size(self, colors, expected):
        palette = tuple((i, i, i) for i in range(colors))
        data = _encode([_frame(palette=palette)])
        frame = next(GifDecoder(data).frames())
        assert frame.lzw_min_code_size == expected

    def test_large_palette(self):
        palette = tuple((i, 255 - i, i // 2) for i in range(256))
        indices = np.arange(48, dtype=np.uint8).reshape(6, 8) * 5
        data = _encode([OutputFrame(indices, palette, 10)])
        assert (decompress_frame(next(GifDecoder(data).frames())) == indices).all()


class TestStreaming:
    def test_one_write_per_frame(self, sink):
        enc = GifEncoder(sink)
        enc.write_header(8, 6)
        enc.write_frame(_frame())
        enc.write_frame(_frame(index=1))
        enc.write_trailer()
        assert len(sink.writes) == 4
        assert enc.frames_written == 2
        assert enc.total_delay_cs == 20
        assert enc.bytes_written == len(sink.data)

    def test_sink_failure_poisons_encoder(self):
        sink = RecordingSink(fail_on=2)
        enc = GifEncoder(sink)
        enc.write_header(8, 6)
        with pytest.raises(SinkWriteError):
            enc.write_frame(_frame())
        with pytest.raises(SinkWriteError):
            enc.write_frame(_frame())
        assert len(sink.writes) == 1
        assert enc.frames_written == 0

    def test_any_sink_exception_is_wrapped(self):
        class ClosedTransport:
            def __init__(self):
                self.calls = 0

            def write(self, data):
                self.calls += 1
                if self.calls >= 2:
                    raise RuntimeError("transport closed")
                return len(data)

        transport = ClosedTransport()
        enc = GifEncoder(transport)
        enc.write_header(8, 6)
        with pytest.raises(SinkWriteError) as info:
            enc.write_frame(_frame())
        assert isinstance(info.value.__cause__, RuntimeError)
        with pytest.raises(SinkWriteError):
            enc.write_trailer()
        assert transport.calls == 2


class TestOrdering:
    def test_frame_before_header(self, sink):
        with pytest.raises(RuntimeError):
            GifEncoder(sink).write_frame(_frame())

    def test_frame_after_trailer(self, sink):
        enc = GifEncoder(sink)
        enc.write_header(8, 6)
        enc.write_trailer()
        with pytest.raises(RuntimeError):
            enc.write_frame(_frame())

    def test_header_twice(self, sink):
        enc = GifEncoder(sink)
        enc.write_header(8, 6)
        with pytest.raises(RuntimeError):
            enc.write_header(8, 6)

    def test_frame_larger_than_screen(self, sink):
        enc = GifEncoder(sink)
        enc.write_header(4, 4)
        with pytest.raises(ValueError):
            enc.write_frame(_frame())
