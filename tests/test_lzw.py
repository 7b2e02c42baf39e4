"""
Tests for the GIF LZW codec and sub-block framing.
"""

from __future__ import annotations

import random

import pytest

from gifsig import lzw
from gifsig.exceptions import FormatError


# The 10x10 sample image from the GIF89a walkthrough by Matthew Flickinger.
SAMPLE_INDICES = bytes(
    [1, 1, 1, 1, 1, 2, 2, 2, 2, 2] * 3
    + [1, 1, 1, 0, 0, 0, 0, 2, 2, 2] * 2
    + [2, 2, 2, 0, 0, 0, 0, 1, 1, 1] * 2
    + [2, 2, 2, 2, 2, 1, 1, 1, 1, 1] * 3
)
SAMPLE_CODED = bytes.fromhex(
    "8C2D99872A1CDC33A00275EC95FAA8DE608C04914C01"
)


# ---------------------------------------------------------------------------
# Known vector
# ---------------------------------------------------------------------------

class TestKnownVector:
    def test_decode_sample(self):
        assert bytes(lzw.decode(SAMPLE_CODED, 2, 100)) == SAMPLE_INDICES

    def test_encode_sample(self):
        assert lzw.encode(SAMPLE_INDICES, 2) == SAMPLE_CODED


# ---------------------------------------------------------------------------
# Encode / decode
# ---------------------------------------------------------------------------

class TestCodec:
    def test_noise_survives(self):
        rng = random.Random(7)
        data = bytes(rng.randrange(256) for _ in range(20_000))
        coded = lzw.encode(data, 8)
        assert bytes(lzw.decode(coded, 8, len(data))) == data

    def test_table_reset_on_long_input(self):
        # Enough distinct strings to fill the 4096-entry table several times.
        rng = random.Random(3)
        data = bytes(rng.randrange(4) for _ in range(60_000))
        coded = lzw.encode(data, 2)
        assert bytes(lzw.decode(coded, 2, len(data))) == data

    def test_uniform_run_compresses(self):
        data = bytes(50_000)
        coded = lzw.encode(data, 2)
        assert len(coded) < 1000
        assert bytes(lzw.decode(coded, 2, len(data))) == data

    def test_single_pixel(self):
        coded = lzw.encode(b"\x03", 2)
        assert bytes(lzw.decode(coded, 2, 1)) == b"\x03"

    def test_empty_input(self):
        coded = lzw.encode(b"", 2)
        assert bytes(lzw.decode(coded, 2, 0)) == b""

    def test_index_too_large_for_code_size(self):
        with pytest.raises(ValueError):
            lzw.encode(bytes([4]), 2)

    def test_bad_min_code_size(self):
        with pytest.raises(ValueError):
            lzw.encode(b"\x00", 9)


class TestDecodeEdges:
    def test_stops_at_end_of_information(self):
        coded = lzw.encode(bytes([1, 2, 3]), 2)
        # Garbage after the EOI code must be ignored.
        assert bytes(lzw.decode(coded + b"\xFF\xFF", 2, 3)) == bytes([1, 2, 3])

    def test_short_data_is_padded(self):
        coded = lzw.encode(bytes([1] * 10), 2)
        out = lzw.decode(coded, 2, 20)
        assert len(out) == 20
        assert bytes(out[:10]) == bytes([1] * 10)
        assert bytes(out[10:]) == bytes(10)

    def test_excess_pixels_are_cut(self):
        coded = lzw.encode(bytes([2] * 30), 2)
        assert bytes(lzw.decode(coded, 2, 12)) == bytes([2] * 12)

    def test_invalid_code_raises(self):
        # clear(4), then code 7 while the table only reaches 6.
        bits = 4 | (7 << 3)
        with pytest.raises(FormatError) as info:
            lzw.decode(bits.to_bytes(1, "little"), 2, 4)
        assert info.value.reason == "InvalidCode"

    def test_min_code_size_out_of_range(self):
        with pytest.raises(FormatError):
            lzw.decode(b"\x00", 12, 1)


# ---------------------------------------------------------------------------
# Sub-blocks
# ---------------------------------------------------------------------------

class TestSubBlocks:
    def test_pack_splits_at_255(self):
        packed = lzw.pack_sub_blocks(bytes(600))
        assert packed[0] == 255
        assert packed[256] == 255
        assert packed[512] == 90
        assert packed[-1] == 0
        assert len(packed) == 600 + 3 + 1

    def test_pack_empty(self):
        assert lzw.pack_sub_blocks(b"") == b"\x00"

    def test_read_reassembles(self):
        payload = bytes(range(256)) * 3
        packed = b"junk" + lzw.pack_sub_blocks(payload) + b"tail"
        data, pos = lzw.read_sub_blocks(packed, 4)
        assert data == payload
        assert packed[pos:] == b"tail"

    def test_read_truncated_block(self):
        with pytest.raises(FormatError) as info:
            lzw.read_sub_blocks(b"\x05abc", 0)
        assert info.value.reason == "Truncated"

    def test_read_missing_terminator(self):
        with pytest.raises(FormatError):
            lzw.read_sub_blocks(b"\x03abc", 0)


def test_min_code_size_for():
    assert lzw.min_code_size_for(2) == 2
    assert lzw.min_code_size_for(4) == 2
    assert lzw.min_code_size_for(5) == 3
    assert lzw.min_code_size_for(256) == 8
