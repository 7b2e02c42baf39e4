"""
CLI command for rendering an animated signature.

Usage:
    gifsig render logo.gif --name "Jane Doe" --title Engineer --phone "+1 555 0100"
    gifsig render logo.gif --name ... --variant with_qr --qr code.png -o sig.gif
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from tqdm import tqdm

from ..config import resolve_fonts
from ..exceptions import GifSigError
from ..overlay import OverlayRenderer, load_qr_image
from ..pipeline import SignaturePipeline, fetch_source, file_fetcher, validate_payload
from ..types import OverlayPayload, PipelineConfig, Variant


_VARIANT_MAP = {
    "standard": Variant.STANDARD,
    "with_qr": Variant.WITH_QR,
}


def _format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def cmd_render(args: argparse.Namespace) -> int:
    """Main handler for ``gifsig render``."""
    source = Path(args.source)
    variant = _VARIANT_MAP[args.variant]

    try:
        qr_image = None
        if args.qr:
            qr_image = load_qr_image(Path(args.qr).read_bytes())
        payload = OverlayPayload(
            display_name=args.name,
            title=args.title,
            phone=args.phone,
            department=args.department,
            email=args.email,
            address=args.address,
            qr_image=qr_image,
            width=args.width,
            height=args.height,
        )
        config = PipelineConfig(
            quality=args.quality,
            min_delay_cs=args.min_delay,
            reuse_palette=args.reuse_palette,
            max_frames=args.max_frames,
        )
        validate_payload(payload, variant)
        renderer = OverlayRenderer(fonts=resolve_fonts(args.font, args.bold_font))
        pipeline = SignaturePipeline(config, renderer=renderer)
    except (GifSigError, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    output_path = Path(args.output) if args.output else Path(f"{source.stem}_signature.gif")
    to_stdout = args.output == "-"

    # Fetch, parse and lay out before the output file exists.
    try:
        job = pipeline.open(fetch_source(file_fetcher(source)), payload, variant)
    except (GifSigError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    bar = tqdm(total=len(job.decoder), desc="Encoding", unit="frame",
               file=sys.stderr, dynamic_ncols=True, disable=args.quiet)
    try:
        if to_stdout:
            result = job.write_to(sys.stdout.buffer, on_frame=lambda _n: bar.update(1))
        else:
            try:
                with open(output_path, "wb") as sink:
                    result = job.write_to(sink, on_frame=lambda _n: bar.update(1))
            except GifSigError:
                output_path.unlink(missing_ok=True)
                raise
    except GifSigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        bar.close()

    if not to_stdout and not args.quiet:
        print(
            f"Done! {result.frame_count} frames, {result.duration_cs / 100:.2f}s "
            f"-> {output_path} ({_format_size(result.bytes_written)})",
            file=sys.stderr,
        )
    return 0


def build_render_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``render`` subcommand and its arguments."""
    p = subparsers.add_parser(
        "render",
        help="Render an animated signature from a GIF logo",
        description="Overlay name, title and contact details onto every frame of an animated GIF.",
    )
    p.add_argument("source", help="Path to the animated GIF logo")
    p.add_argument("--name", required=True, help="Display name (first line, bold)")
    p.add_argument("--title", required=True, help="Job title")
    p.add_argument("--phone", required=True, help="Phone number")
    p.add_argument("--department", default="", help="Optional department line")
    p.add_argument("--email", default="", help="Optional e-mail line")
    p.add_argument("--address", default="", help="Optional address (small print)")
    p.add_argument("--qr", default=None, help="QR code image shown on the right")
    p.add_argument(
        "--variant", choices=sorted(_VARIANT_MAP), default="standard",
        help="Signature variant; with_qr requires --qr (default: standard)",
    )
    p.add_argument("--width", type=int, default=635, help="Output width (default: 635)")
    p.add_argument("--height", type=int, default=215, help="Output height (default: 215)")
    p.add_argument(
        "--quality", type=int, default=10,
        help="Palette sampling factor, 1 = best, 30 = fastest (default: 10)",
    )
    p.add_argument(
        "--min-delay", type=int, default=2,
        help="Minimum frame delay in centiseconds (default: 2)",
    )
    p.add_argument(
        "--reuse-palette", action="store_true",
        help="Build one palette from the first frame and reuse it for all frames",
    )
    p.add_argument(
        "--max-frames", type=int, default=500,
        help="Reject sources with more frames than this (default: 500)",
    )
    p.add_argument("--font", default=None, help="Regular TrueType font file")
    p.add_argument("--bold-font", default=None, help="Bold TrueType font file")
    p.add_argument("-q", "--quiet", action="store_true", help="No progress output")
    p.add_argument(
        "-o", "--output", default=None,
        help="Output path, '-' for stdout (default: <source_stem>_signature.gif)",
    )
    p.set_defaults(func=cmd_render)
