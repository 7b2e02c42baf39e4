"""
Persistent RGBA canvas driven by per-frame disposal methods.

The canvas covers the whole logical screen and evolves strictly in frame
order.  ``Canvas.apply`` is its only transition:

    1. undo the previous frame according to *that* frame's disposal method
    2. remember the target rectangle if this frame asks to be restored later
    3. paint the frame's pixels, leaving transparent-index pixels untouched
    4. hand back a full-size copy of the result

Restoring to background clears the rectangle to fully transparent.  At
most one saved rectangle is kept for RESTORE_PREVIOUS.
"""

from __future__ import annotations

import numpy as np

from gifsig.decoder import decompress_frame
from gifsig.types import DisposalMethod, ScreenInfo, SourceFrame

BACKGROUND = (0, 0, 0, 0)


def palette_lut(palette: tuple[tuple[int, int, int], ...] | None) -> np.ndarray:
    """Build a 256-entry RGBA lookup table; unused slots are opaque black."""
    lut = np.zeros((256, 4), dtype=np.uint8)
    lut[:, 3] = 255
    if palette:
        entries = np.asarray(palette[:256], dtype=np.uint8).reshape(-1, 3)
        lut[:len(entries), :3] = entries
    return lut


class Canvas:
    """Logical-screen raster for one decode session."""

    def __init__(self, screen: ScreenInfo) -> None:
        self.width = screen.width
        self.height = screen.height
        self._pixels = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        self._pixels[...] = BACKGROUND
        self._global_lut = palette_lut(screen.global_palette)
        self._previous: SourceFrame | None = None
        self._saved: np.ndarray | None = None
        self.frames_applied = 0

    def apply(self, frame: SourceFrame, indices: np.ndarray | None = None) -> np.ndarray:
        """Composite *frame* and return a copy of the resulting raster.

        *indices* may carry already-decompressed pixels; otherwise the
        frame is decompressed here.
        """
        if self._pixels is None:
            raise RuntimeError("canvas has been released")
        if indices is None:
            indices = decompress_frame(frame)

        self._dispose_previous()

        left, top, right, bottom = frame.rect
        region = self._pixels[top:bottom, left:right]
        if frame.disposal is DisposalMethod.RESTORE_PREVIOUS:
            self._saved = region.copy()

        if frame.local_palette is not None:
            lut = palette_lut(frame.local_palette)
        else:
            lut = self._global_lut
        colors = lut[indices]
        if frame.transparent_index is None:
            region[...] = colors
        else:
            opaque = indices != frame.transparent_index
            region[opaque] = colors[opaque]

        self._previous = frame
        self.frames_applied += 1
        return self._pixels.copy()

    def _dispose_previous(self) -> None:
        prev = self._previous
        if prev is None:
            return
        left, top, right, bottom = prev.rect
        if prev.disposal is DisposalMethod.RESTORE_BACKGROUND:
            self._pixels[top:bottom, left:right] = BACKGROUND
        elif prev.disposal is DisposalMethod.RESTORE_PREVIOUS and self._saved is not None:
            self._pixels[top:bottom, left:right] = self._saved
        self._saved = None

    def release(self) -> None:
        """Drop the raster and saved rectangle."""
        self._pixels = None
        self._saved = None
        self._previous = None
