"""Main CLI entry point for gifsig."""

from __future__ import annotations

import argparse
import logging
import sys

from .info_cli import build_info_parser
from .render_cli import build_render_parser


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gifsig",
        description="Animated GIF e-mail signature generator",
    )
    parser.add_argument("--version", action="version", version="gifsig 0.1.0")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Log progress to stderr (-vv for debug output)",
    )
    subparsers = parser.add_subparsers(dest="command")
    build_render_parser(subparsers)
    build_info_parser(subparsers)
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )
    if args.command is None:
        parser.print_help()
        return 0
    return args.func(args)


def cli_entry() -> None:
    sys.exit(main())
