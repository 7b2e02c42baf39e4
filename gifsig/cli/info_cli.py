"""
CLI command for inspecting an animated GIF.

Usage:
    gifsig info logo.gif
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ..decoder import GifDecoder
from ..exceptions import GifSigError
from ..types import PipelineConfig


def cmd_info(args: argparse.Namespace) -> int:
    """Main handler for ``gifsig info``."""
    path = Path(args.source)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1
    try:
        decoder = GifDecoder(path.read_bytes(), PipelineConfig(max_frames=args.max_frames))
    except GifSigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    screen = decoder.screen
    loop = "none" if screen.loop_count is None else (
        "forever" if screen.loop_count == 0 else str(screen.loop_count))
    palette = len(screen.global_palette) if screen.global_palette else 0
    print(f"GIF{screen.version} {screen.width}x{screen.height}, "
          f"{screen.frame_count} frames, loop {loop}, global palette {palette}")
    for comment in decoder.comments:
        print(f"  comment: {comment}")

    total = 0
    for frame in decoder.frames():
        total += frame.delay_cs
        transparent = ("-" if frame.transparent_index is None
                       else str(frame.transparent_index))
        print(
            f"  #{frame.index:<4d} {frame.width}x{frame.height}"
            f"+{frame.offset_x}+{frame.offset_y}  "
            f"disposal={frame.disposal.name.lower()}  delay={frame.delay_cs}cs  "
            f"transparent={transparent}"
            f"{'  interlaced' if frame.interlaced else ''}"
            f"{'  local-palette' if frame.local_palette else ''}"
        )
    print(f"Total duration: {total / 100:.2f}s")
    return 0


def build_info_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``info`` subcommand."""
    p = subparsers.add_parser(
        "info",
        help="Show frame structure of an animated GIF",
        description="Print logical screen, loop count and per-frame metadata.",
    )
    p.add_argument("source", help="Path to the GIF file")
    p.add_argument(
        "--max-frames", type=int, default=10_000,
        help="Frame count limit while parsing (default: 10000)",
    )
    p.set_defaults(func=cmd_info)
