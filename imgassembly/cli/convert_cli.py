"""
CLI command for converting a set of images.

Usage:
    imgassembly convert a.png b.png c.png --gif --delay 1500 --quality ultra
    imgassembly convert scans/*.jpg --pdf --format Comic --panels 2
    imgassembly convert *.png --config options.yaml --output-dir out/
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

from ..config import Settings, load_options
from ..document import page_formats
from ..exceptions import ImageAssemblyError
from ..pipeline import Converter
from ..presets import available_tiers
from ..storage import LocalPublisher
from ..types import ArtifactKind, ConversionOptions

# argparse dest -> ConversionOptions field
_OPTION_FIELDS = {
    "width": "width",
    "height": "height",
    "delay": "delay_ms",
    "loop": "loop",
    "quality": "quality",
    "format": "page_format",
    "pdf_quality": "document_quality",
    "optimize": "optimize",
    "panels": "panels_per_page",
    "margin": "margin",
}


def _format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def build_options(args: argparse.Namespace) -> ConversionOptions:
    """Start from --config (or defaults) and apply explicit flags on top."""
    options = load_options(Path(args.config)) if args.config else ConversionOptions()
    overrides = {
        field: getattr(args, dest)
        for dest, field in _OPTION_FIELDS.items()
        if getattr(args, dest) is not None
    }
    return replace(options, **overrides)


def requested_kinds(args: argparse.Namespace) -> list[ArtifactKind]:
    kinds = []
    if args.gif:
        kinds.append(ArtifactKind.ANIMATION)
    if args.pdf:
        kinds.append(ArtifactKind.DOCUMENT)
    return kinds or list(ArtifactKind)


def cmd_convert(args: argparse.Namespace) -> int:
    """Main handler for ``imgassembly convert``."""
    images: list[bytes] = []
    for name in args.images:
        path = Path(name)
        if not path.is_file():
            print(f"Error: file not found: {path}", file=sys.stderr)
            return 1
        images.append(path.read_bytes())

    try:
        options = build_options(args)
    except (OSError, ValueError, TypeError) as exc:
        print(f"Error: invalid options: {exc}", file=sys.stderr)
        return 1

    settings = Settings.from_env()
    output_dir = Path(args.output_dir) if args.output_dir else settings.output_dir
    publisher = LocalPublisher(output_dir, settings.base_url)
    converter = Converter(settings=settings)
    kinds = requested_kinds(args)

    try:
        result = asyncio.run(converter.convert_async(images, options, kinds))
    except ImageAssemblyError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    for artifact in result:
        try:
            url = publisher(artifact.data, artifact.kind)
        except ImageAssemblyError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        unit = "frames" if artifact.kind is ArtifactKind.ANIMATION else "pages"
        note = " (static: animation backends unavailable)" if artifact.static else ""
        print(
            f"{artifact.extension.upper()}: {artifact.count} {unit}, "
            f"{_format_size(artifact.size)} via {artifact.backend}{note} -> {url}"
        )
    return 0


def build_convert_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``convert`` subcommand and its arguments."""
    p = subparsers.add_parser(
        "convert",
        help="Convert images into a GIF and/or a PDF",
        description="Assemble an ordered set of images into an animated GIF, a PDF, or both.",
    )
    p.add_argument("images", nargs="+", help="Input images, in frame/page order")
    p.add_argument("--gif", action="store_true", help="Produce an animated GIF")
    p.add_argument("--pdf", action="store_true", help="Produce a PDF (both if neither flag is given)")
    p.add_argument(
        "--config", default=None,
        help="YAML file of conversion options; flags below override it",
    )
    p.add_argument(
        "--quality", choices=available_tiers(), default=None,
        help="GIF quality tier (default: ultra)",
    )
    p.add_argument("--delay", type=int, default=None, help="Frame delay in ms (default: 2000)")
    p.add_argument("--loop", type=int, default=None, help="Loop count, 0 = forever (default: 0)")
    p.add_argument("--width", type=int, default=None, help="Frame width (default: 800)")
    p.add_argument("--height", type=int, default=None, help="Frame height (default: 1200)")
    p.add_argument(
        "--format", choices=page_formats(), default=None,
        help="PDF page format (default: A4)",
    )
    p.add_argument(
        "--pdf-quality", type=int, default=None,
        help="JPEG quality for PDF pages, 0-100 (default: 95)",
    )
    p.add_argument(
        "--no-optimize", dest="optimize", action="store_false", default=None,
        help="Embed images as-is and skip page numbers",
    )
    p.add_argument(
        "--panels", type=int, default=None,
        help="Combine N images per PDF page in a 2-column grid (default: 1)",
    )
    p.add_argument("--margin", type=float, default=None, help="PDF page margin in points")
    p.add_argument(
        "--output-dir", default=None,
        help="Where to publish results (default: $IMGASSEMBLY_OUTPUT_DIR or ./outputs)",
    )
    p.add_argument(
        "-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
        help="Log progress at INFO level",
    )
    p.set_defaults(func=cmd_convert)
