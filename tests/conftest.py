"""
Shared fixtures for the imgassembly test suite.
"""

from __future__ import annotations

import io
import shutil
import tempfile
from pathlib import Path

import pytest
from PIL import Image

from imgassembly.config import ResolvedTools, Settings


def encode_image(img: Image.Image, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_image_bytes(
    color: tuple[int, int, int] = (200, 30, 30),
    size: tuple[int, int] = (120, 90),
    fmt: str = "PNG",
) -> bytes:
    """Solid-color image with a dark square so frames are not uniform."""
    img = Image.new("RGB", size, color)
    for x in range(size[0] // 4, size[0] // 2):
        for y in range(size[1] // 4, size[1] // 2):
            img.putpixel((x, y), (10, 10, 10))
    return encode_image(img, fmt)


@pytest.fixture(scope="session")
def has_ffmpeg() -> bool:
    return shutil.which("ffmpeg") is not None


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory(prefix="imgassembly_test_") as d:
        yield Path(d)


@pytest.fixture
def temp_root(tmp_dir) -> Path:
    """Workspace root for a test; starts out absent."""
    return tmp_dir / "work"


@pytest.fixture
def settings(tmp_dir, temp_root) -> Settings:
    return Settings(
        temp_root=temp_root,
        output_dir=tmp_dir / "outputs",
        base_url="http://localhost:3000",
    )


@pytest.fixture
def no_tools() -> ResolvedTools:
    """A host without ffmpeg or ImageMagick."""
    return ResolvedTools()


@pytest.fixture
def png_images() -> list[bytes]:
    colors = [(220, 40, 40), (40, 220, 40), (40, 40, 220), (220, 220, 40)]
    return [make_image_bytes(c) for c in colors]


@pytest.fixture
def rgba_png() -> bytes:
    """A 60x40 fully transparent image with an opaque blue bar."""
    img = Image.new("RGBA", (60, 40), (0, 0, 0, 0))
    for x in range(60):
        for y in range(15, 25):
            img.putpixel((x, y), (0, 0, 255, 255))
    return encode_image(img)


@pytest.fixture
def jpeg_image() -> bytes:
    return make_image_bytes((30, 120, 200), size=(200, 300), fmt="JPEG")
