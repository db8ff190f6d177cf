"""
Core data structures used throughout the conversion pipeline.
"""

from __future__ import annotations

import enum
import io
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Sequence

from PIL import Image

from imgassembly.exceptions import InputError

MAX_IMAGES = 50


class ArtifactKind(enum.Enum):
    """Kinds of artifact a conversion can produce."""
    ANIMATION = "animation"
    DOCUMENT = "document"

    @property
    def extension(self) -> str:
        return "gif" if self is ArtifactKind.ANIMATION else "pdf"

    @property
    def mime_type(self) -> str:
        return "image/gif" if self is ArtifactKind.ANIMATION else "application/pdf"

    @classmethod
    def parse(cls, value: ArtifactKind | str) -> ArtifactKind:
        """Accept an enum member, its value, or the extension ("gif"/"pdf")."""
        if isinstance(value, cls):
            return value
        for kind in cls:
            if value in (kind.value, kind.extension):
                return kind
        raise ValueError(
            f"Unknown artifact kind {value!r}. "
            f"Expected one of: {[k.value for k in cls]}"
        )


class DitherMode(enum.Enum):
    """Dithering applied when mapping pixels onto a palette."""
    NONE = "none"
    ERROR_DIFFUSION = "error-diffusion"


@dataclass(frozen=True)
class QualityPreset:
    """Fixed parameter bundle for one quality tier."""
    tier: str
    colors: int               # palette entries, <= 256
    dither: DitherMode
    effort: int               # encoder effort, 1 -- 10
    compression: int          # PNG compress level, 0 (none) -- 9 (max)


@dataclass
class DocumentMetadata:
    """Metadata written once into every document artifact."""
    title: str = "Image Assembly PDF"
    author: str = "Image Assembly API"
    subject: str = "Generated PDF from images"
    keywords: list[str] = field(
        default_factory=lambda: ["pdf", "images", "conversion"])
    creator: str = "Image Assembly API v2.0"
    producer: str = "imgassembly"


@dataclass
class ConversionOptions:
    """Options shared by the animation and document pipelines."""
    width: int = 800
    height: int = 1200
    delay_ms: int = 2000
    loop: int = 0                   # 0 = infinite
    quality: str = "ultra"          # low | medium | high | ultra
    page_format: str = "A4"
    document_quality: int = 95      # JPEG quality for embedded pages
    optimize: bool = True
    panels_per_page: int = 1        # >= 2 enables panel grouping
    margin: float | None = None     # points; None = 36 in panel mode, else 0
    background: tuple[int, int, int] = (255, 255, 255)
    compress: bool = True           # object-stream serialization
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)

    @property
    def panel_mode(self) -> bool:
        return self.panels_per_page >= 2

    @property
    def effective_margin(self) -> float:
        if self.margin is not None:
            return float(self.margin)
        return 36.0 if self.panel_mode else 0.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ConversionOptions:
        """Build options from a plain mapping such as a parsed YAML file."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown conversion options: {sorted(unknown)}")

        kwargs = dict(data)
        meta = kwargs.pop("metadata", None)
        if "background" in kwargs:
            kwargs["background"] = tuple(kwargs["background"])
        options = cls(**kwargs)
        if meta is not None:
            meta_known = {f.name for f in fields(DocumentMetadata)}
            bad = set(meta) - meta_known
            if bad:
                raise ValueError(f"Unknown metadata fields: {sorted(bad)}")
            options.metadata = DocumentMetadata(**meta)
        return options


@dataclass(frozen=True)
class ConversionRequest:
    """Ordered image buffers plus the options to convert them with."""
    images: tuple[bytes, ...]
    options: ConversionOptions = field(default_factory=ConversionOptions)

    @classmethod
    def create(
        cls,
        images: Sequence[bytes],
        options: ConversionOptions | None = None,
    ) -> ConversionRequest:
        return cls(images=tuple(images), options=options or ConversionOptions())

    def validate(self) -> None:
        if not self.images:
            raise InputError("No images provided. At least one image is required.")
        if len(self.images) > MAX_IMAGES:
            raise InputError(
                f"Too many images: {len(self.images)} (maximum {MAX_IMAGES})."
            )


@dataclass(frozen=True)
class CanonicalFrame:
    """A decoded, normalized image re-encoded for the next stage."""
    index: int
    width: int
    height: int
    data: bytes
    format: str = "PNG"

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def open(self) -> Image.Image:
        """Decode a fresh PIL image; callers own the returned object."""
        img = Image.open(io.BytesIO(self.data))
        img.load()
        return img


@dataclass(frozen=True)
class EncodedArtifact:
    """A finished animation or document.  Immutable once produced."""
    kind: ArtifactKind
    data: bytes
    count: int                      # frames (animation) or pages (document)
    settings: Mapping[str, Any]
    backend: str
    static: bool = False            # True when only one still frame was encoded

    def __post_init__(self) -> None:
        object.__setattr__(self, "settings", MappingProxyType(dict(self.settings)))

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def format(self) -> str:
        return self.kind.value

    @property
    def extension(self) -> str:
        return self.kind.extension

    @property
    def mime_type(self) -> str:
        return self.kind.mime_type


@dataclass
class ConversionResult:
    """Artifacts produced by one call to the orchestrator."""
    animation: EncodedArtifact | None = None
    document: EncodedArtifact | None = None

    def __iter__(self) -> Iterator[EncodedArtifact]:
        for artifact in (self.animation, self.document):
            if artifact is not None:
                yield artifact

    def get(self, kind: ArtifactKind) -> EncodedArtifact | None:
        if kind is ArtifactKind.ANIMATION:
            return self.animation
        return self.document
