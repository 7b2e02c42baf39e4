"""
GIF bitstream decoder.

Parsing happens in two stages:

    bytes  -->  [structural pass]  -->  SourceFrame descriptors
    SourceFrame  -->  [decompress_frame]  -->  (height, width) index array

The structural pass walks every block when the decoder is constructed.
Sub-blocks are reassembled, graphic-control metadata is attached to the
image it precedes, and the size guards of ``PipelineConfig`` are applied.
A bad signature, a truncated block, a missing trailer or an out-of-bounds
frame is therefore reported before a single frame is handed out.

LZW decompression is deferred until the compositor asks for a frame's
pixels, so only one frame's indices are alive at a time.  The frame
stream itself is single-use: re-decoding requires a new decoder built
from the source bytes.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterator

import numpy as np

from gifsig import lzw
from gifsig.exceptions import FormatError, ResourceLimitExceeded
from gifsig.types import DisposalMethod, PipelineConfig, ScreenInfo, SourceFrame

logger = logging.getLogger(__name__)

GIF_SIGNATURES = (b"GIF87a", b"GIF89a")

EXTENSION_INTRODUCER = 0x21
IMAGE_SEPARATOR = 0x2C
TRAILER = 0x3B

PLAIN_TEXT_LABEL = 0x01
GRAPHIC_CONTROL_LABEL = 0xF9
COMMENT_LABEL = 0xFE
APPLICATION_LABEL = 0xFF

LOOP_APPLICATIONS = (b"NETSCAPE2.0", b"ANIMEXTS1.0")


class _Reader:
    """Little-endian cursor over the source bytes."""

    def __init__(self, data: bytes | memoryview) -> None:
        self.buf = memoryview(data)
        self.pos = 0

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.buf)

    def take(self, n: int, what: str) -> memoryview:
        end = self.pos + n
        if end > len(self.buf):
            raise FormatError(
                f"{what} needs {n} bytes at offset {self.pos}, "
                f"{len(self.buf) - self.pos} left", "Truncated",
            )
        chunk = self.buf[self.pos:end]
        self.pos = end
        return chunk

    def u8(self, what: str) -> int:
        return self.take(1, what)[0]

    def u16(self, what: str) -> int:
        lo, hi = self.take(2, what)
        return lo | (hi << 8)

    def sub_blocks(self) -> bytes:
        data, self.pos = lzw.read_sub_blocks(self.buf, self.pos)
        return data

    def palette(self, size_exp: int, what: str) -> tuple[tuple[int, int, int], ...]:
        count = 1 << (size_exp + 1)
        raw = self.take(3 * count, what)
        return tuple(
            (raw[i], raw[i + 1], raw[i + 2]) for i in range(0, 3 * count, 3)
        )


class _GraphicControl:
    """Pending graphic-control extension, consumed by the next image."""
    __slots__ = ("disposal", "delay_cs", "transparent_index")

    def __init__(self, packed: int, delay_cs: int, transparent: int) -> None:
        self.disposal = DisposalMethod.from_code((packed >> 2) & 0b111)
        self.delay_cs = delay_cs
        self.transparent_index = transparent if packed & 0b1 else None


class GifDecoder:
    """Decode a GIF byte string into screen metadata and a frame stream.

    Usage::

        decoder = GifDecoder(source_bytes, config)
        decoder.screen.width, decoder.screen.loop_count
        for frame in decoder.frames():
            indices = decompress_frame(frame)
    """

    def __init__(self, data: bytes, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()
        self.comments: list[str] = []
        self._pending: deque[SourceFrame] = deque()
        self._consumed = False
        self.screen = self._parse(_Reader(data))

    def __len__(self) -> int:
        return self.screen.frame_count

    def frames(self) -> Iterator[SourceFrame]:
        """Return the one-shot, in-order stream of source frames."""
        if self._consumed:
            raise RuntimeError("frame stream already consumed; decode the source again")
        self._consumed = True
        return self._drain()

    def _drain(self) -> Iterator[SourceFrame]:
        while self._pending:
            yield self._pending.popleft()

    # ---- structural pass -------------------------------------------------

    def _parse(self, reader: _Reader) -> ScreenInfo:
        header = bytes(reader.buf[:6])
        if header not in GIF_SIGNATURES:
            raise FormatError(f"unrecognised header {header!r}", "BadSignature")
        reader.pos = 6

        width = reader.u16("logical screen width")
        height = reader.u16("logical screen height")
        packed = reader.u8("logical screen flags")
        background_index = reader.u8("background colour index")
        reader.u8("pixel aspect ratio")
        if width == 0 or height == 0:
            raise FormatError(f"empty logical screen {width}x{height}", "BadScreen")
        longest = max(width, height)
        if longest > self.config.max_dimension:
            raise ResourceLimitExceeded(
                "screen dimension", longest, self.config.max_dimension,
            )

        global_palette = None
        if packed & 0x80:
            global_palette = reader.palette(packed & 0b111, "global colour table")

        loop_count: int | None = None
        control: _GraphicControl | None = None
        total_pixels = 0

        while True:
            if reader.at_end:
                raise FormatError("stream ended without a trailer", "MissingTrailer")
            introducer = reader.u8("block introducer")

            if introducer == TRAILER:
                break

            if introducer == EXTENSION_INTRODUCER:
                label = reader.u8("extension label")
                if label == GRAPHIC_CONTROL_LABEL:
                    control = self._read_graphic_control(reader)
                elif label == APPLICATION_LABEL:
                    found = self._read_application(reader)
                    if found is not None:
                        loop_count = found
                elif label == COMMENT_LABEL:
                    self.comments.append(
                        reader.sub_blocks().decode("latin-1", errors="replace")
                    )
                else:
                    if label == PLAIN_TEXT_LABEL:
                        control = None
                    reader.sub_blocks()
                continue

            if introducer == IMAGE_SEPARATOR:
                frame = self._read_image(reader, len(self._pending), control,
                                         width, height)
                control = None
                if frame.local_palette is None and global_palette is None:
                    raise FormatError(
                        f"frame {frame.index} has no colour table", "MissingPalette",
                    )
                if len(self._pending) + 1 > self.config.max_frames:
                    raise ResourceLimitExceeded(
                        "frame count", len(self._pending) + 1, self.config.max_frames,
                    )
                total_pixels += frame.pixel_count
                if total_pixels > self.config.max_pixels:
                    raise ResourceLimitExceeded(
                        "decoded pixel volume", total_pixels, self.config.max_pixels,
                    )
                self._pending.append(frame)
                continue

            raise FormatError(
                f"unknown block 0x{introducer:02X} at offset {reader.pos - 1}",
                "BadBlock",
            )

        if not self._pending:
            raise FormatError("stream contains no image blocks", "NoFrames")

        logger.debug(
            "Parsed GIF %dx%d: %d frames, loop=%s, %d total pixels",
            width, height, len(self._pending), loop_count, total_pixels,
        )
        return ScreenInfo(
            width=width,
            height=height,
            global_palette=global_palette,
            background_index=background_index,
            loop_count=loop_count,
            version=header[3:].decode("ascii"),
            frame_count=len(self._pending),
        )

    @staticmethod
    def _read_graphic_control(reader: _Reader) -> _GraphicControl:
        size = reader.u8("graphic control size")
        if size != 4:
            raise FormatError(f"graphic control block size {size}", "BadExtension")
        packed = reader.u8("graphic control flags")
        delay = reader.u16("frame delay")
        transparent = reader.u8("transparent index")
        if reader.u8("graphic control terminator") != 0:
            # Some encoders append stray sub-blocks; skip them.
            reader.pos -= 1
            reader.sub_blocks()
        return _GraphicControl(packed, delay, transparent)

    @staticmethod
    def _read_application(reader: _Reader) -> int | None:
        size = reader.u8("application block size")
        identifier = bytes(reader.take(size, "application identifier"))
        data = reader.sub_blocks()
        if identifier in LOOP_APPLICATIONS and len(data) >= 3 and data[0] == 1:
            return data[1] | (data[2] << 8)
        return None

    @staticmethod
    def _read_image(reader: _Reader, index: int, control: _GraphicControl | None,
                    screen_w: int, screen_h: int) -> SourceFrame:
        left = reader.u16("image left")
        top = reader.u16("image top")
        width = reader.u16("image width")
        height = reader.u16("image height")
        packed = reader.u8("image flags")
        if left + width > screen_w or top + height > screen_h:
            raise FormatError(
                f"frame {index} rect ({left},{top},{width}x{height}) exceeds "
                f"logical screen {screen_w}x{screen_h}", "FrameOutOfBounds",
            )
        local_palette = None
        if packed & 0x80:
            local_palette = reader.palette(packed & 0b111, "local colour table")
        min_code_size = reader.u8("LZW minimum code size")
        compressed = reader.sub_blocks()

        if control is None:
            disposal, delay, transparent = DisposalMethod.NONE, 0, None
        else:
            disposal = control.disposal
            delay = control.delay_cs
            transparent = control.transparent_index

        return SourceFrame(
            index=index,
            width=width,
            height=height,
            offset_x=left,
            offset_y=top,
            disposal=disposal,
            delay_cs=delay,
            transparent_index=transparent,
            interlaced=bool(packed & 0x40),
            local_palette=local_palette,
            lzw_min_code_size=min_code_size,
            compressed=compressed,
        )


# ---------------------------------------------------------------------------
# Pixel data
# ---------------------------------------------------------------------------

def interlace_order(height: int) -> list[int]:
    """Row numbers in the order an interlaced image stores them."""
    return (list(range(0, height, 8)) + list(range(4, height, 8))
            + list(range(2, height, 4)) + list(range(1, height, 2)))


def deinterlace(rows: np.ndarray) -> np.ndarray:
    """Reorder rows stored in the four-pass interlaced sequence."""
    out = np.empty_like(rows)
    out[interlace_order(rows.shape[0])] = rows
    return out


def decompress_frame(frame: SourceFrame) -> np.ndarray:
    """Return the frame's palette indices as a (height, width) uint8 array."""
    raw = lzw.decode(frame.compressed, frame.lzw_min_code_size, frame.pixel_count)
    pixels = np.frombuffer(bytes(raw), dtype=np.uint8).reshape(
        frame.height, frame.width,
    )
    if frame.interlaced:
        pixels = deinterlace(pixels)
    return pixels
