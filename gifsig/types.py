"""
Core data structures shared by the decoder, compositor, renderer,
quantizer and encoder.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

import numpy as np


class DisposalMethod(enum.IntEnum):
    """What happens to a frame's rectangle before the next frame paints."""
    NONE = 0              # Unspecified; treated like DO_NOT_DISPOSE.
    DO_NOT_DISPOSE = 1
    RESTORE_BACKGROUND = 2
    RESTORE_PREVIOUS = 3

    @classmethod
    def from_code(cls, code: int) -> DisposalMethod:
        """Map the 3-bit field to a member; reserved codes 4-7 act as NONE."""
        try:
            return cls(code)
        except ValueError:
            return cls.NONE


class Variant(enum.Enum):
    """Signature flavours offered to clients."""
    STANDARD = "standard"
    WITH_QR = "with_qr"     # Requires a QR raster; darker theme.


@dataclass(frozen=True)
class ScreenInfo:
    """Global metadata of a decoded GIF stream."""
    width: int
    height: int
    global_palette: tuple[tuple[int, int, int], ...] | None = None
    background_index: int = 0
    loop_count: int | None = None   # None = no NETSCAPE2.0 block; 0 = forever
    version: str = "89a"
    frame_count: int = 0


@dataclass(frozen=True)
class SourceFrame:
    """One image block of the source stream, still LZW-compressed."""
    index: int
    width: int
    height: int
    offset_x: int = 0
    offset_y: int = 0
    disposal: DisposalMethod = DisposalMethod.NONE
    delay_cs: int = 0
    transparent_index: int | None = None
    interlaced: bool = False
    local_palette: tuple[tuple[int, int, int], ...] | None = None
    lzw_min_code_size: int = 8
    compressed: bytes = b""

    @property
    def rect(self) -> tuple[int, int, int, int]:
        """(left, top, right, bottom) in logical-screen coordinates."""
        return (self.offset_x, self.offset_y,
                self.offset_x + self.width, self.offset_y + self.height)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


@dataclass
class OutputFrame:
    """An indexed frame ready for the encoder."""
    indices: np.ndarray                 # (height, width) uint8
    palette: tuple[tuple[int, int, int], ...]
    delay_cs: int = 0
    disposal: DisposalMethod = DisposalMethod.NONE
    transparent_index: int | None = None

    @property
    def width(self) -> int:
        return int(self.indices.shape[1])

    @property
    def height(self) -> int:
        return int(self.indices.shape[0])


@dataclass(frozen=True)
class OverlayPayload:
    """Content painted next to the animated logo."""
    display_name: str
    title: str
    phone: str
    department: str = ""
    email: str = ""
    address: str = ""
    qr_image: Any = None            # PIL.Image.Image or None
    width: int = 635
    height: int = 215

    def text_fields(self) -> list[tuple[str, str]]:
        """(field name, text) pairs in drawing order, empty ones skipped."""
        ordered = [
            ("display_name", self.display_name),
            ("department", self.department),
            ("title", self.title),
            ("phone", self.phone),
            ("email", self.email),
            ("address", self.address),
        ]
        return [(name, text) for name, text in ordered if text and text.strip()]


@dataclass
class PipelineConfig:
    """Tuning and safety limits for one rendering pipeline."""
    quality: int = 10               # Sampling factor 1 (best) -- 30 (fastest)
    min_delay_cs: int = 2           # Delays below this are clamped upward
    reuse_palette: bool = False     # One global palette from the first frame
    max_colors: int = 256           # Palette budget, 2 -- 256
    max_frames: int = 500
    max_pixels: int = 50_000_000    # Sum of decoded frame rectangle areas
    max_dimension: int = 4096       # Longest allowed logical-screen side
    loop_count: int | None = None   # None = keep the source's loop count

    def __post_init__(self) -> None:
        if not 1 <= self.quality <= 30:
            raise ValueError("quality must be between 1 and 30")
        if not 2 <= self.max_colors <= 256:
            raise ValueError("max_colors must be between 2 and 256")
        if self.min_delay_cs < 0:
            raise ValueError("min_delay_cs must be >= 0")
