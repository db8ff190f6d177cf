"""
Runtime configuration and system-dependency discovery.

This module locates the external encoders (ffmpeg, ImageMagick) once per
process, reads deployment settings from the environment, and loads
conversion options from YAML files.
"""

from __future__ import annotations

import functools
import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

import yaml

from imgassembly.types import ConversionOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTools:
    """Absolute paths to external encoders, or None when not installed."""

    ffmpeg: Path | None = None
    magick: Path | None = None
    magick_name: str | None = None   # "magick" (IM7) or "convert" (IM6)

    @property
    def has_ffmpeg(self) -> bool:
        return self.ffmpeg is not None

    @property
    def has_imagemagick(self) -> bool:
        return self.magick is not None


def resolve_ffmpeg() -> Path | None:
    path = shutil.which("ffmpeg")
    return Path(path) if path else None


def resolve_imagemagick() -> tuple[Path | None, str | None]:
    """Find ImageMagick, preferring the IM7 ``magick`` front end.

    ``convert`` is only accepted after ``-version`` confirms it is
    ImageMagick; on Windows the name belongs to a filesystem utility.
    """
    path = shutil.which("magick")
    if path is not None:
        return Path(path), "magick"
    path = shutil.which("convert")
    if path is None:
        return None, None
    try:
        result = subprocess.run([path, "-version"], capture_output=True, timeout=10)
    except (subprocess.TimeoutExpired, OSError):
        return None, None
    if b"ImageMagick" in result.stdout:
        return Path(path), "convert"
    return None, None


def probe_tools() -> ResolvedTools:
    """Probe the host for encoders.  Not cached; see resolve_tools()."""
    ffmpeg = resolve_ffmpeg()
    magick, magick_name = resolve_imagemagick()
    if ffmpeg is None:
        logger.warning("ffmpeg not found; two-pass palette encoding disabled.")
    if magick is None:
        logger.info("ImageMagick not found.")
    return ResolvedTools(ffmpeg=ffmpeg, magick=magick, magick_name=magick_name)


@functools.lru_cache(maxsize=1)
def resolve_tools() -> ResolvedTools:
    """Probe once per process and reuse the result."""
    return probe_tools()


def default_temp_root() -> Path:
    return Path(tempfile.gettempdir()) / "imgassembly"


@dataclass(frozen=True)
class Settings:
    """Deployment settings for staging and publication."""

    temp_root: Path
    output_dir: Path
    base_url: str

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        temp = env.get("IMGASSEMBLY_TEMP_DIR")
        output = env.get("IMGASSEMBLY_OUTPUT_DIR")
        port = env.get("PORT", "3000")
        return cls(
            temp_root=Path(temp) if temp else default_temp_root(),
            output_dir=Path(output) if output else Path.cwd() / "outputs",
            base_url=env.get("BASE_URL", f"http://localhost:{port}").rstrip("/"),
        )


def load_options(path: Path) -> ConversionOptions:
    """Read a YAML mapping of conversion options."""
    text = Path(path).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of options, got {type(data).__name__}")
    return ConversionOptions.from_mapping(data)
