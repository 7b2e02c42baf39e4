"""
Median-cut colour quantization for GIF output.

Reduces an RGBA raster to at most 256 palette entries plus a
(height, width) index array.

Palette construction:
    1. Collect opaque pixels, sampling every ``quality``-th one.
    2. Build a histogram of the distinct colours.
    3. If they already fit the budget, use them verbatim.
    4. Otherwise repeatedly split the box with the largest weighted
       squared error along its widest channel, at the weighted median,
       and average each final box.

Mapping assigns every opaque pixel to its nearest palette colour
(squared RGB distance), working on distinct colours in chunks.  Pixels
with alpha below the threshold map to one reserved index that is
reported as the frame's transparent index.

Palette policy is explicit: with ``reuse_palette=False`` each raster gets
its own palette.  With ``reuse_palette=True`` the first raster's palette
(always with a reserved transparent slot) is frozen and every later
raster is mapped onto it.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

import numpy as np

logger = logging.getLogger(__name__)

_MAP_CHUNK = 4096


class QuantizeResult(NamedTuple):
    indices: np.ndarray                         # (height, width) uint8
    palette: tuple[tuple[int, int, int], ...]   # <= 256 entries
    transparent_index: int | None


def _pack(colors: np.ndarray) -> np.ndarray:
    c = colors.astype(np.uint32)
    return (c[:, 0] << 16) | (c[:, 1] << 8) | c[:, 2]


def _unpack(packed: np.ndarray) -> np.ndarray:
    out = np.empty((len(packed), 3), dtype=np.uint8)
    out[:, 0] = (packed >> 16) & 0xFF
    out[:, 1] = (packed >> 8) & 0xFF
    out[:, 2] = packed & 0xFF
    return out


def _box_stats(colors: np.ndarray, weights: np.ndarray) -> tuple[float, int]:
    """Weighted squared error of a box and the channel that dominates it."""
    c = colors.astype(np.float64)
    w = weights.astype(np.float64)
    mean = (c * w[:, None]).sum(axis=0) / w.sum()
    sse = (w[:, None] * (c - mean) ** 2).sum(axis=0)
    return float(sse.sum()), int(np.argmax(sse))


def median_cut(colors: np.ndarray, counts: np.ndarray, max_colors: int) -> np.ndarray:
    """Reduce distinct *colors* with histogram *counts* to *max_colors* entries."""
    if len(colors) <= max_colors:
        return colors.astype(np.uint8)

    boxes: list[tuple[np.ndarray, float, int]] = []
    everything = np.arange(len(colors))
    boxes.append((everything, *_box_stats(colors, counts)))

    while len(boxes) < max_colors:
        best = -1
        best_score = 0.0
        for i, (members, score, _) in enumerate(boxes):
            if len(members) > 1 and score > best_score:
                best, best_score = i, score
        if best < 0:
            break
        members, _, channel = boxes.pop(best)
        order = members[np.argsort(colors[members, channel], kind="stable")]
        cumulative = np.cumsum(counts[order])
        cut = int(np.searchsorted(cumulative, cumulative[-1] / 2.0)) + 1
        cut = min(max(cut, 1), len(order) - 1)
        for part in (order[:cut], order[cut:]):
            boxes.append((part, *_box_stats(colors[part], counts[part])))

    palette = np.empty((len(boxes), 3), dtype=np.uint8)
    for i, (members, _, _) in enumerate(boxes):
        avg = np.average(colors[members].astype(np.float64), axis=0,
                         weights=counts[members])
        palette[i] = np.clip(np.rint(avg), 0, 255)
    return palette


def map_to_palette(pixels: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """Index of the nearest *palette* colour for each row of *pixels*."""
    if len(pixels) == 0:
        return np.zeros(0, dtype=np.uint8)
    unique, inverse = np.unique(_pack(pixels), return_inverse=True)
    ucolors = _unpack(unique).astype(np.int32)
    pal = palette.astype(np.int32)
    nearest = np.empty(len(unique), dtype=np.uint8)
    for start in range(0, len(unique), _MAP_CHUNK):
        block = ucolors[start:start + _MAP_CHUNK]
        dist = ((block[:, None, :] - pal[None, :, :]) ** 2).sum(axis=2)
        nearest[start:start + _MAP_CHUNK] = dist.argmin(axis=1)
    return nearest[inverse.reshape(-1)]


class MedianCutQuantizer:
    """Per-request quantizer; holds the frozen palette when reusing one."""

    def __init__(self, max_colors: int = 256, quality: int = 10,
                 reuse_palette: bool = False, alpha_threshold: int = 128) -> None:
        if not 2 <= max_colors <= 256:
            raise ValueError("max_colors must be between 2 and 256")
        if quality < 1:
            raise ValueError("quality must be >= 1")
        self.max_colors = max_colors
        self.quality = quality
        self.reuse_palette = reuse_palette
        self.alpha_threshold = alpha_threshold
        self._frozen: tuple[np.ndarray, int | None] | None = None

    @property
    def frozen_palette(self) -> tuple[tuple[int, int, int], ...] | None:
        if self._frozen is None:
            return None
        return self._as_palette(*self._frozen)

    def build_palette(self, rgb: np.ndarray, budget: int) -> np.ndarray:
        """Palette of at most *budget* colours for an (N, 3) pixel array."""
        sampled = rgb[::self.quality]
        if len(sampled) == 0:
            return np.zeros((1, 3), dtype=np.uint8)
        unique, counts = np.unique(_pack(sampled), return_counts=True)
        return median_cut(_unpack(unique), counts, budget)

    def quantize(self, raster: np.ndarray) -> QuantizeResult:
        """Quantize a (height, width, 4) uint8 raster."""
        if raster.ndim != 3 or raster.shape[2] != 4:
            raise ValueError(f"expected an RGBA raster, got shape {raster.shape}")
        height, width = raster.shape[:2]
        opaque = raster[..., 3] >= self.alpha_threshold
        rgb = raster[..., :3][opaque]

        if self._frozen is not None:
            colors, transparent_index = self._frozen
        else:
            reserve = self.reuse_palette or not bool(opaque.all())
            budget = self.max_colors - 1 if reserve else self.max_colors
            colors = self.build_palette(rgb, budget)
            transparent_index = len(colors) if reserve else None
            if self.reuse_palette:
                self._frozen = (colors, transparent_index)

        indices = np.zeros((height, width), dtype=np.uint8)
        if transparent_index is not None:
            indices[~opaque] = transparent_index
        indices[opaque] = map_to_palette(rgb, colors)

        palette = self._as_palette(colors, transparent_index)
        logger.debug("Quantized %dx%d raster to %d colours", width, height, len(palette))
        return QuantizeResult(indices, palette, transparent_index)

    @staticmethod
    def _as_palette(colors: np.ndarray,
                    transparent_index: int | None) -> tuple[tuple[int, int, int], ...]:
        entries = [tuple(int(v) for v in row) for row in colors]
        if transparent_index is not None:
            entries.append((0, 0, 0))
        return tuple(entries)
