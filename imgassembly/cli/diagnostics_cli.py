"""
CLI command reporting which encoders are installed.

Usage:
    imgassembly diagnostics
"""

from __future__ import annotations

import argparse

from ..detection import diagnostics_report


def cmd_diagnostics(args: argparse.Namespace) -> int:
    print(diagnostics_report())
    return 0


def build_diagnostics_parser(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "diagnostics",
        help="Show available encoders and libraries",
    )
    p.set_defaults(func=cmd_diagnostics)
