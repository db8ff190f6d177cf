"""
Frame preprocessing.

Transforms raw uploaded images into canonical frames:
    1. Decode (first frame of multi-frame inputs)
    2. Flatten alpha onto an opaque background
    3. Fit inside the target size, letterboxed, never cropped
    4. Tier-specific enhancement (ultra: sharpen + saturation, high: auto-level)
    5. Lossless PNG re-encode for staging
"""

from __future__ import annotations

import io
import logging
from typing import Sequence

from PIL import Image, ImageEnhance, ImageFilter, ImageOps, UnidentifiedImageError

from imgassembly.exceptions import InputError
from imgassembly.types import CanonicalFrame, QualityPreset

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)

ULTRA_SHARPEN = ImageFilter.UnsharpMask(radius=0.5, percent=80, threshold=0)
ULTRA_SATURATION = 1.1


def decode_image(data: bytes, index: int = 0) -> Image.Image:
    """Decode *data* into a loaded PIL image or raise InputError."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise InputError(f"Image {index} could not be decoded: {exc}", index=index) from exc
    return img


def apply_background(img: Image.Image, color=WHITE) -> Image.Image:
    """Composite any transparency onto *color* and return an RGB image."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        bg = Image.new("RGBA", rgba.size, (*color, 255))
        bg.paste(rgba, mask=rgba.split()[3])
        return bg.convert("RGB")
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def fit_to_canvas(img: Image.Image, size: tuple[int, int], background=WHITE) -> Image.Image:
    """Scale *img* to fit inside *size* and centre it on a filled canvas."""
    return ImageOps.pad(img, size, method=Image.Resampling.LANCZOS,
                        color=background, centering=(0.5, 0.5))


def enhance_frame(img: Image.Image, preset: QualityPreset) -> Image.Image:
    if preset.tier == "ultra":
        img = img.filter(ULTRA_SHARPEN)
        return ImageEnhance.Color(img).enhance(ULTRA_SATURATION)
    if preset.tier == "high":
        return ImageOps.autocontrast(img)
    return img


def encode_png(img: Image.Image, compress_level: int) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG", compress_level=compress_level)
    return buf.getvalue()


def preprocess_frame(
    data: bytes,
    index: int,
    width: int,
    height: int,
    preset: QualityPreset,
) -> CanonicalFrame:
    """Turn one raw image into a canonical frame of exactly width x height."""
    img = decode_image(data, index)
    img = apply_background(img)
    img = fit_to_canvas(img, (width, height))
    img = enhance_frame(img, preset)
    return CanonicalFrame(
        index=index,
        width=img.width,
        height=img.height,
        data=encode_png(img, preset.compression),
        format="PNG",
    )


def preprocess_frames(
    images: Sequence[bytes],
    width: int,
    height: int,
    preset: QualityPreset,
) -> list[CanonicalFrame]:
    """Preprocess *images* in order.

    The first undecodable image aborts the whole batch; no partial frame
    set is ever returned.
    """
    if not images:
        raise InputError("No images to preprocess.")
    if width <= 0 or height <= 0:
        raise ValueError(f"Target size must be positive, got {width}x{height}.")

    frames: list[CanonicalFrame] = []
    for i, data in enumerate(images):
        logger.debug("Processing frame %d/%d", i + 1, len(images))
        frames.append(preprocess_frame(data, i, width, height, preset))
    return frames
