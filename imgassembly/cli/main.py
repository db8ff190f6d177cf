"""Main CLI entry point for imgassembly."""

from __future__ import annotations

import argparse
import logging
import sys

from .. import __version__
from .convert_cli import build_convert_parser
from .diagnostics_cli import build_diagnostics_parser


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="imgassembly",
        description="Assemble images into an animated GIF and/or a PDF",
    )
    parser.add_argument("--version", action="version", version=f"imgassembly {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log progress at INFO level",
    )
    subparsers = parser.add_subparsers(dest="command")
    build_convert_parser(subparsers)
    build_diagnostics_parser(subparsers)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0
    return args.func(args)


def cli_entry() -> None:
    sys.exit(main())
