"""
Runtime configuration and system-dependency discovery.

This module locates TrueType fonts on the system and exposes the
resolved paths for use by the overlay renderer.  When no font is found
the renderer falls back to Pillow's built-in scalable font.
"""

from __future__ import annotations

import functools
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from gifsig.exceptions import FontNotFoundError

logger = logging.getLogger(__name__)

FONT_DIRS = (
    Path("/usr/share/fonts"),
    Path("/usr/local/share/fonts"),
    Path.home() / ".local" / "share" / "fonts",
    Path.home() / ".fonts",
    Path("/Library/Fonts"),
    Path("/System/Library/Fonts"),
    Path(os.environ.get("WINDIR", "C:/Windows")) / "Fonts",
)

REGULAR_CANDIDATES = (
    "Arial.ttf",
    "arial.ttf",
    "LiberationSans-Regular.ttf",
    "DejaVuSans.ttf",
)

BOLD_CANDIDATES = (
    "Arial Bold.ttf",
    "arialbd.ttf",
    "LiberationSans-Bold.ttf",
    "DejaVuSans-Bold.ttf",
)


@dataclass(frozen=True)
class ResolvedFonts:
    """Font files for the overlay; ``None`` means Pillow's default font."""

    regular: Path | None
    bold: Path | None


@functools.lru_cache(maxsize=None)
def find_font(candidates: tuple[str, ...]) -> Path | None:
    """Search the well-known font directories, honouring candidate order."""
    found: dict[str, Path] = {}
    wanted = set(candidates)
    for root in FONT_DIRS:
        if not root.is_dir():
            continue
        for dirpath, _dirnames, filenames in os.walk(root):
            for name in wanted.intersection(filenames):
                found.setdefault(name, Path(dirpath) / name)
    for name in candidates:
        if name in found:
            return found[name]
    return None


def _explicit(path: str | Path) -> Path:
    p = Path(path)
    if not p.is_file():
        raise FontNotFoundError(f"Font file not found: {p}")
    return p


def resolve_fonts(regular: str | Path | None = None,
                  bold: str | Path | None = None) -> ResolvedFonts:
    """Resolve regular and bold faces; explicit paths must exist."""
    regular_path = _explicit(regular) if regular else find_font(REGULAR_CANDIDATES)
    if bold:
        bold_path = _explicit(bold)
    else:
        bold_path = find_font(BOLD_CANDIDATES) or regular_path
    if regular_path is None:
        logger.info("No system TrueType font found; using Pillow's default font.")
    return ResolvedFonts(regular=regular_path, bold=bold_path)
