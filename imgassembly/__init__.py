"""
imgassembly -- images to animated GIF and PDF.

Conversion pipeline for assembling an ordered set of images into an
animated GIF (with a prioritized ffmpeg / ImageMagick / Pillow encoder
chain) and/or a paginated PDF.
"""

__version__ = "2.0.0"

from imgassembly.types import (
    ArtifactKind,
    CanonicalFrame,
    ConversionOptions,
    ConversionRequest,
    ConversionResult,
    DocumentMetadata,
    EncodedArtifact,
    QualityPreset,
)
from imgassembly.pipeline import Converter

__all__ = [
    "ArtifactKind",
    "CanonicalFrame",
    "ConversionOptions",
    "ConversionRequest",
    "ConversionResult",
    "Converter",
    "DocumentMetadata",
    "EncodedArtifact",
    "QualityPreset",
]
