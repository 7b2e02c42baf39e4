"""
Streaming GIF89a encoder.

The encoder writes straight into a byte sink in three phases::

    encoder = GifEncoder(sink, min_delay_cs=2)
    encoder.write_header(635, 215, global_palette=None, loop_count=0)
    for frame in frames:
        encoder.write_frame(frame)      # one sink.write() per frame
    encoder.write_trailer()

Nothing is buffered beyond the frame being written.  Each frame gets a
graphic-control extension (disposal, delay, transparency), an image
descriptor, a local colour table when its palette differs from the
global one, and freshly LZW-compressed sub-blocks.

Delay policy
------------
Many viewers replace delays of 0 or 1 centiseconds with their own
default (often 10 cs), so delays below ``min_delay_cs`` are raised to
it.  Delays at or above the minimum pass through unchanged.

Failure
-------
Any exception raised by ``sink.write`` surfaces as ``SinkWriteError``
and poisons the encoder; bytes already written stay written.
"""

from __future__ import annotations

import logging
import struct
from typing import Any, Protocol

from gifsig import lzw
from gifsig.exceptions import SinkWriteError
from gifsig.types import OutputFrame

logger = logging.getLogger(__name__)

MAX_DELAY_CS = 0xFFFF


class ByteSink(Protocol):
    """Anything with a ``write(bytes)`` method: files, sockets, buffers."""

    def write(self, data: bytes) -> Any: ...


def clamp_delay(delay_cs: int, min_delay_cs: int) -> int:
    """Raise delays below the minimum; cap at the 16-bit field limit."""
    return min(max(delay_cs, min_delay_cs), MAX_DELAY_CS)


def _color_table(palette: tuple[tuple[int, int, int], ...]) -> tuple[int, bytes]:
    """Return (size exponent, padded RGB table bytes) for *palette*."""
    if not 1 <= len(palette) <= 256:
        raise ValueError(f"palette must have 1..256 entries, got {len(palette)}")
    size_exp = max(1, (len(palette) - 1).bit_length())
    table = bytearray()
    for r, g, b in palette:
        table += bytes((r, g, b))
    table += bytes(3 * (1 << size_exp) - len(table))
    return size_exp, bytes(table)


class GifEncoder:
    """Incremental GIF writer bound to one output sink."""

    def __init__(self, sink: ByteSink, min_delay_cs: int = 2) -> None:
        self.sink = sink
        self.min_delay_cs = min_delay_cs
        self.width = 0
        self.height = 0
        self.global_palette: tuple[tuple[int, int, int], ...] | None = None
        self.bytes_written = 0
        self.frames_written = 0
        self.total_delay_cs = 0
        self._header_done = False
        self._finished = False
        self._failed = False

    # ---- sink access -----------------------------------------------------

    def _write(self, data: bytes) -> None:
        if self._failed:
            raise SinkWriteError("output sink already failed; stream is incomplete")
        try:
            self.sink.write(data)
        except Exception as exc:
            self._failed = True
            raise SinkWriteError(
                f"output sink failed after {self.bytes_written} bytes: {exc}"
            ) from exc
        self.bytes_written += len(data)

    # ---- public phases ---------------------------------------------------

    def write_header(self, width: int, height: int,
                     global_palette: tuple[tuple[int, int, int], ...] | None = None,
                     loop_count: int | None = 0,
                     background_index: int = 0) -> None:
        """Signature, logical screen descriptor, global table, loop block."""
        if self._header_done:
            raise RuntimeError("header already written")
        if not (0 < width <= 0xFFFF and 0 < height <= 0xFFFF):
            raise ValueError(f"invalid screen size {width}x{height}")
        self.width, self.height = width, height
        self.global_palette = tuple(global_palette) if global_palette else None

        out = bytearray(b"GIF89a")
        if self.global_palette is not None:
            size_exp, table = _color_table(self.global_palette)
            packed = 0x80 | 0x70 | (size_exp - 1)
        else:
            table = b""
            packed = 0x70
        out += struct.pack("<HHBBB", width, height, packed, background_index, 0)
        out += table
        if loop_count is not None:
            out += b"\x21\xFF\x0BNETSCAPE2.0\x03\x01"
            out += struct.pack("<H", loop_count & 0xFFFF)
            out += b"\x00"
        self._write(bytes(out))
        self._header_done = True

    def write_frame(self, frame: OutputFrame) -> None:
        """Encode one indexed frame at the top-left corner of the screen."""
        if not self._header_done:
            raise RuntimeError("write_header() must be called before write_frame()")
        if self._finished:
            raise RuntimeError("trailer already written")
        if frame.width > self.width or frame.height > self.height:
            raise ValueError(
                f"frame {frame.width}x{frame.height} larger than screen "
                f"{self.width}x{self.height}"
            )

        delay = clamp_delay(frame.delay_cs, self.min_delay_cs)
        if delay != frame.delay_cs:
            logger.debug("Clamped frame delay %d cs -> %d cs", frame.delay_cs, delay)

        out = bytearray()
        flags = (int(frame.disposal) & 0b111) << 2
        transparent = 0
        if frame.transparent_index is not None:
            flags |= 0b1
            transparent = frame.transparent_index
        out += struct.pack("<BBBBHBB", 0x21, 0xF9, 4, flags, delay, transparent, 0)

        palette = tuple(frame.palette)
        use_local = palette != self.global_palette
        if use_local:
            size_exp, table = _color_table(palette)
            packed = 0x80 | (size_exp - 1)
        else:
            packed = 0
            table = b""
        out += struct.pack("<BHHHHB", 0x2C, 0, 0, frame.width, frame.height, packed)
        out += table

        min_code_size = lzw.min_code_size_for(len(palette))
        compressed = lzw.encode(frame.indices.tobytes(), min_code_size)
        out.append(min_code_size)
        out += lzw.pack_sub_blocks(compressed)

        self._write(bytes(out))
        self.frames_written += 1
        self.total_delay_cs += delay

    def write_trailer(self) -> None:
        if not self._header_done:
            raise RuntimeError("write_header() must be called before write_trailer()")
        if self._finished:
            return
        self._write(b"\x3B")
        self._finished = True
