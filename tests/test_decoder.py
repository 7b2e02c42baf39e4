"""
Tests for the GIF bitstream decoder.
"""

from __future__ import annotations

import numpy as np
import pytest

from gifbuild import BLUE, GREEN, PALETTE, RED, RawFrame, build_gif, solid
from gifsig.decoder import GifDecoder, decompress_frame, deinterlace, interlace_order
from gifsig.exceptions import FormatError, ResourceLimitExceeded
from gifsig.types import DisposalMethod, PipelineConfig


def _gradient(width: int, height: int) -> bytes:
    return bytes((x + y) % 4 for y in range(height) for x in range(width))


# ---------------------------------------------------------------------------
# Header and metadata
# ---------------------------------------------------------------------------

class TestScreen:
    def test_logical_screen(self, three_frame_gif):
        dec = GifDecoder(three_frame_gif)
        assert dec.screen.width == 100
        assert dec.screen.height == 100
        assert dec.screen.global_palette == PALETTE
        assert dec.screen.version == "89a"
        assert len(dec) == 3

    def test_loop_count(self):
        data = build_gif(4, 4, [solid(4, 4, 1)], loop=3)
        assert GifDecoder(data).screen.loop_count == 3

    def test_no_loop_block(self):
        data = build_gif(4, 4, [solid(4, 4, 1)], loop=None)
        assert GifDecoder(data).screen.loop_count is None

    def test_comment_collected(self):
        data = build_gif(4, 4, [solid(4, 4, 1)], comment="hello")
        assert GifDecoder(data).comments == ["hello"]

    def test_gif87a_accepted(self):
        data = build_gif(4, 4, [solid(4, 4, 1, with_control=False)],
                         loop=None, signature=b"GIF87a")
        assert GifDecoder(data).screen.version == "87a"


class TestFrameMetadata:
    def test_graphic_control_fields(self, three_frame_gif):
        frames = list(GifDecoder(three_frame_gif).frames())
        assert [f.disposal for f in frames] == [
            DisposalMethod.RESTORE_BACKGROUND,
            DisposalMethod.DO_NOT_DISPOSE,
            DisposalMethod.NONE,
        ]
        assert [f.delay_cs for f in frames] == [10, 10, 10]
        assert frames[1].rect == (25, 25, 75, 75)
        assert [f.index for f in frames] == [0, 1, 2]

    def test_missing_graphic_control_defaults(self):
        data = build_gif(4, 4, [solid(4, 4, 1, with_control=False)])
        frame = next(GifDecoder(data).frames())
        assert frame.disposal is DisposalMethod.NONE
        assert frame.delay_cs == 0
        assert frame.transparent_index is None

    def test_transparent_index(self):
        data = build_gif(4, 4, [solid(4, 4, 1, transparent=0)])
        frame = next(GifDecoder(data).frames())
        assert frame.transparent_index == 0

    def test_control_applies_to_next_image_only(self):
        data = build_gif(4, 4, [
            solid(4, 4, 1, delay_cs=50, transparent=2, disposal=3),
            solid(4, 4, 2, with_control=False),
        ])
        first, second = GifDecoder(data).frames()
        assert first.delay_cs == 50
        assert second.delay_cs == 0
        assert second.transparent_index is None

    def test_reserved_disposal_treated_as_none(self):
        data = build_gif(4, 4, [solid(4, 4, 1, disposal=5)])
        assert next(GifDecoder(data).frames()).disposal is DisposalMethod.NONE

    def test_local_palette(self):
        local = (BLUE, GREEN)
        data = build_gif(4, 4, [solid(4, 4, 1, local_palette=local)])
        assert next(GifDecoder(data).frames()).local_palette == local


# ---------------------------------------------------------------------------
# Pixel data
# ---------------------------------------------------------------------------

class TestDecompress:
    def test_pixels_match(self):
        indices = _gradient(7, 5)
        data = build_gif(7, 5, [RawFrame(7, 5, indices)])
        pixels = decompress_frame(next(GifDecoder(data).frames()))
        assert pixels.shape == (5, 7)
        assert pixels.tobytes() == indices

    def test_interlaced_rows_restored(self):
        indices = bytes(y % 4 for y in range(19) for _ in range(3))
        data = build_gif(3, 19, [RawFrame(3, 19, indices, interlaced=True)])
        frame = next(GifDecoder(data).frames())
        assert frame.interlaced
        assert decompress_frame(frame).tobytes() == indices

    def test_interlace_order_covers_every_row(self):
        for height in (1, 2, 5, 8, 9, 17, 100):
            assert sorted(interlace_order(height)) == list(range(height))

    def test_deinterlace_small(self):
        stored = np.array([[0], [4], [2], [6], [1], [3], [5], [7]], dtype=np.uint8)
        assert deinterlace(stored).ravel().tolist() == list(range(8))


# ---------------------------------------------------------------------------
# Malformed input
# ---------------------------------------------------------------------------

class TestFormatErrors:
    def test_bad_signature(self):
        with pytest.raises(FormatError) as info:
            GifDecoder(b"PNG89a" + bytes(20))
        assert info.value.reason == "BadSignature"

    def test_too_short(self):
        with pytest.raises(FormatError):
            GifDecoder(b"GIF")

    def test_truncated_final_block(self, three_frame_gif):
        # Drop the trailer and the last sub-block terminator plus payload.
        with pytest.raises(FormatError) as info:
            GifDecoder(three_frame_gif[:-6])
        assert info.value.reason == "Truncated"

    def test_missing_trailer(self):
        data = build_gif(4, 4, [solid(4, 4, 1)], trailer=False)
        with pytest.raises(FormatError) as info:
            GifDecoder(data)
        assert info.value.reason == "MissingTrailer"

    def test_frame_out_of_bounds(self):
        data = build_gif(10, 10, [solid(8, 8, 1, left=5, top=0)])
        with pytest.raises(FormatError) as info:
            GifDecoder(data)
        assert info.value.reason == "FrameOutOfBounds"

    def test_no_frames(self):
        data = build_gif(4, 4, [])
        with pytest.raises(FormatError) as info:
            GifDecoder(data)
        assert info.value.reason == "NoFrames"

    def test_missing_palette(self):
        data = build_gif(4, 4, [solid(4, 4, 1)], palette=())
        with pytest.raises(FormatError) as info:
            GifDecoder(data)
        assert info.value.reason == "MissingPalette"

    def test_unknown_block(self, three_frame_gif):
        data = three_frame_gif[:-1] + b"\x99;"
        with pytest.raises(FormatError) as info:
            GifDecoder(data)
        assert info.value.reason == "BadBlock"


class TestResourceLimits:
    def test_frame_count(self):
        data = build_gif(4, 4, [solid(4, 4, 1) for _ in range(6)])
        with pytest.raises(ResourceLimitExceeded) as info:
            GifDecoder(data, PipelineConfig(max_frames=5))
        assert info.value.limit == "frame count"

    def test_screen_dimension(self):
        data = build_gif(300, 4, [solid(4, 4, 1)])
        with pytest.raises(ResourceLimitExceeded):
            GifDecoder(data, PipelineConfig(max_dimension=256))

    def test_pixel_volume(self):
        data = build_gif(10, 10, [solid(10, 10, 1) for _ in range(3)])
        with pytest.raises(ResourceLimitExceeded) as info:
            GifDecoder(data, PipelineConfig(max_pixels=250))
        assert info.value.value == 300

    def test_within_limits(self):
        data = build_gif(10, 10, [solid(10, 10, 1) for _ in range(3)])
        assert len(GifDecoder(data, PipelineConfig(max_frames=3, max_pixels=300))) == 3


class TestFrameStream:
    def test_stream_is_single_use(self, three_frame_gif):
        dec = GifDecoder(three_frame_gif)
        assert len(list(dec.frames())) == 3
        with pytest.raises(RuntimeError):
            dec.frames()

    def test_colours_reference_palette(self):
        data = build_gif(2, 1, [RawFrame(2, 1, bytes([1, 3]))])
        frame = next(GifDecoder(data).frames())
        pal = frame.local_palette or GifDecoder(data).screen.global_palette
        assert [pal[i] for i in decompress_frame(frame).ravel()] == [RED, BLUE]
