"""
Diagnostics for the encoder chain.

Reports the encoders found by :func:`imgassembly.config.probe_tools`,
the versions of the imaging libraries, and which animation backend the
chain would pick first.
"""

from __future__ import annotations

import logging
import platform
import subprocess
from importlib import metadata
from pathlib import Path

from imgassembly.backends import build_backend_chain
from imgassembly.config import ResolvedTools, probe_tools

logger = logging.getLogger(__name__)

LIBRARIES = (("Pillow", "Pillow"), ("PyMuPDF", "PyMuPDF"), ("PyYAML", "PyYAML"))


def tool_version(path: Path | None) -> str | None:
    """First line of ``<tool> -version``, or None if it cannot be read."""
    if path is None:
        return None
    try:
        result = subprocess.run([str(path), "-version"], capture_output=True, timeout=10)
    except (subprocess.TimeoutExpired, OSError) as exc:
        logger.debug("Version check for %s failed: %s", path, exc)
        return None
    output = (result.stdout or result.stderr).decode(errors="replace").strip()
    return output.splitlines()[0].strip() if output else None


def library_version(distribution: str) -> str | None:
    try:
        return metadata.version(distribution)
    except metadata.PackageNotFoundError:
        return None


def primary_backend(tools: ResolvedTools) -> str:
    for backend in build_backend_chain(tools):
        if backend.is_available():
            return backend.name
    return "none"


def _tool_line(label: str, path: Path | None) -> str:
    if path is None:
        return f"  {label:20s} NOT FOUND"
    version = tool_version(path)
    ver = f"  ({version})" if version else ""
    return f"  {label:20s} FOUND{ver}  [{path}]"


def diagnostics_report(tools: ResolvedTools | None = None) -> str:
    """Return a human-readable diagnostics report."""
    tools = tools if tools is not None else probe_tools()
    lines = ["imgassembly diagnostics", "=" * 40,
             f"Platform: {platform.system()} {platform.release()}",
             f"Python:   {platform.python_version()}", "",
             "External tools:",
             _tool_line("ffmpeg", tools.ffmpeg),
             _tool_line(f"imagemagick ({tools.magick_name})" if tools.magick_name
                        else "imagemagick", tools.magick),
             "", "Python libraries:"]
    for label, dist in LIBRARIES:
        version = library_version(dist)
        status = f"FOUND  ({version})" if version else "NOT FOUND"
        lines.append(f"  {label:20s} {status}")
    lines += ["", f"Primary animation backend: {primary_backend(tools)}"]
    if not tools.has_ffmpeg and not tools.has_imagemagick:
        lines.append("  Only static single-frame GIFs can be produced. "
                     "Install ffmpeg for animated output.")
    return "\n".join(lines)
