"""
Multi-page PDF assembly.

Each image becomes one page of the resolved page size.  The image is
optionally downsampled and re-encoded for embedding, scaled to the
largest size that fits inside the page margins, and centred.  PDF
construction uses PyMuPDF (``fitz``).

Page sizes (points, 1pt = 1/72 inch)
------------------------------------
=========  ===============  =========================
Name       Size             Notes
=========  ===============  =========================
A3         841.89 x 1190.55
A4         595.28 x 841.89  default / fallback
A5         419.53 x 595.28
Letter     612 x 792
Legal      612 x 1008
Tabloid    792 x 1224
Ledger     1224 x 792       Tabloid, landscape
Executive  522 x 756        7.25 x 10.5 in
Comic      477 x 738        6.625 x 10.25 in
Manga      360 x 504        5 x 7 in
Square     576 x 576        8 x 8 in
Custom     h = 792          width from first image aspect
=========  ===============  =========================
"""

from __future__ import annotations

import io
import logging
from typing import Sequence

import fitz
from PIL import Image, ImageFilter, ImageOps

from imgassembly.exceptions import AssemblyFailure
from imgassembly.processing import apply_background
from imgassembly.types import (
    ArtifactKind,
    CanonicalFrame,
    ConversionOptions,
    DocumentMetadata,
    EncodedArtifact,
)

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "A4"
CUSTOM_FORMAT = "Custom"
CUSTOM_PAGE_HEIGHT = 11 * 72

PAGE_SIZES: dict[str, tuple[float, float]] = {
    "A3": (841.89, 1190.55),
    "A4": (595.28, 841.89),
    "A5": (419.53, 595.28),
    "Letter": (612.0, 792.0),
    "Legal": (612.0, 1008.0),
    "Tabloid": (792.0, 1224.0),
    "Ledger": (1224.0, 792.0),
    "Executive": (7.25 * 72, 10.5 * 72),
    "Comic": (6.625 * 72, 10.25 * 72),
    "Manga": (5 * 72, 7 * 72),
    "Square": (8 * 72, 8 * 72),
}

PAGE_NUMBER_SIZE = 10
PAGE_NUMBER_COLOR = (0.5, 0.5, 0.5)
PAGE_NUMBER_OFFSET = 20
_SHARPEN = ImageFilter.UnsharpMask(radius=0.5, percent=80, threshold=0)


def page_formats() -> list[str]:
    return [*PAGE_SIZES, CUSTOM_FORMAT]


def resolve_page_size(
    name: str,
    first_frame: CanonicalFrame | None = None,
) -> tuple[float, float]:
    """Map a format name to a page size in points.

    ``Custom`` keeps the first frame's aspect ratio at an 11 inch height.
    Unknown names fall back to A4.
    """
    if name == CUSTOM_FORMAT and first_frame is not None:
        aspect = first_frame.width / first_frame.height
        return (CUSTOM_PAGE_HEIGHT * aspect, float(CUSTOM_PAGE_HEIGHT))
    size = PAGE_SIZES.get(name)
    if size is None:
        logger.debug("Unknown page format %r; using %s.", name, DEFAULT_FORMAT)
        return PAGE_SIZES[DEFAULT_FORMAT]
    return size


def target_dpi(quality: int) -> int:
    """Embedding resolution for a JPEG quality setting."""
    if quality >= 90:
        return 300
    if quality >= 70:
        return 200
    return 150


def optimize_for_document(
    frame: CanonicalFrame,
    page_size: tuple[float, float],
    quality: int,
) -> bytes:
    """Downsample to the page's effective resolution and re-encode as JPEG."""
    dpi = target_dpi(quality)
    max_w = round(page_size[0] * dpi / 72)
    max_h = round(page_size[1] * dpi / 72)

    img = frame.open()
    if img.width > max_w or img.height > max_h:
        img.thumbnail((max_w, max_h), Image.Resampling.LANCZOS)

    img = apply_background(img)
    if quality >= 90:
        img = img.filter(_SHARPEN)
    else:
        img = ImageOps.autocontrast(img)
    return _encode_jpeg(img, quality)


def _encode_jpeg(img, quality: int) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def embeddable_bytes(frame: CanonicalFrame, quality: int) -> bytes:
    """Bytes to embed when no optimization is requested."""
    if frame.format in ("JPEG", "PNG"):
        return frame.data
    return _encode_jpeg(apply_background(frame.open()), quality)


def fit_rect(
    image_size: tuple[int, int],
    page_size: tuple[float, float],
    margin: float = 0.0,
) -> fitz.Rect:
    """Largest aspect-preserving rectangle inside the margins, centred."""
    img_w, img_h = image_size
    page_w, page_h = page_size
    avail_w = page_w - 2 * margin
    avail_h = page_h - 2 * margin
    if avail_w <= 0 or avail_h <= 0:
        raise ValueError(f"Margin {margin} leaves no room on a {page_w}x{page_h} page.")
    scale = min(avail_w / img_w, avail_h / img_h)
    w = img_w * scale
    h = img_h * scale
    x = (page_w - w) / 2
    y = (page_h - h) / 2
    return fitz.Rect(x, y, x + w, y + h)


def set_metadata(doc: fitz.Document, meta: DocumentMetadata) -> None:
    now = fitz.get_pdf_now()
    doc.set_metadata({
        "title": meta.title,
        "author": meta.author,
        "subject": meta.subject,
        "keywords": ", ".join(meta.keywords),
        "creator": meta.creator,
        "producer": meta.producer,
        "creationDate": now,
        "modDate": now,
    })


def add_page_number(page: fitz.Page, number: int) -> None:
    point = fitz.Point(page.rect.width / 2 - 10, page.rect.height - PAGE_NUMBER_OFFSET)
    page.insert_text(point, str(number), fontsize=PAGE_NUMBER_SIZE, color=PAGE_NUMBER_COLOR)


def add_image_page(
    doc: fitz.Document,
    frame: CanonicalFrame,
    page_size: tuple[float, float],
    options: ConversionOptions,
) -> None:
    if options.optimize:
        data = optimize_for_document(frame, page_size, options.document_quality)
    else:
        data = embeddable_bytes(frame, options.document_quality)

    page = doc.new_page(width=page_size[0], height=page_size[1])
    with Image.open(io.BytesIO(data)) as img:
        image_size = img.size
    rect = fit_rect(image_size, page_size, options.effective_margin)
    page.insert_image(rect, stream=data, keep_proportion=True)

    if options.optimize:
        add_page_number(page, doc.page_count)


def assemble_document(
    frames: Sequence[CanonicalFrame],
    page_size: tuple[float, float],
    options: ConversionOptions,
    format_name: str | None = None,
) -> EncodedArtifact:
    """Build a PDF with one page per frame, in order.

    Any page failure aborts the whole document with AssemblyFailure.
    """
    if not frames:
        raise AssemblyFailure("No images to place in the document.")

    logger.info(
        "Creating PDF: %d pages, %s format, quality %d",
        len(frames), format_name or options.page_format, options.document_quality,
    )
    doc = fitz.open()
    try:
        set_metadata(doc, options.metadata)
        for i, frame in enumerate(frames):
            logger.debug("Adding page %d/%d", i + 1, len(frames))
            try:
                add_image_page(doc, frame, page_size, options)
            except Exception as exc:
                raise AssemblyFailure(
                    f"Failed to add page {i + 1}: {exc}", page_index=i,
                ) from exc

        data = doc.tobytes(
            garbage=3,
            deflate=True,
            use_objstms=1 if options.compress else 0,
        )
        page_count = doc.page_count
    finally:
        doc.close()

    logger.info("PDF created (%d pages, %d KB)", page_count, round(len(data) / 1024))
    return EncodedArtifact(
        kind=ArtifactKind.DOCUMENT,
        data=data,
        count=page_count,
        settings={
            "format": format_name or options.page_format,
            "quality": options.document_quality,
            "optimize": options.optimize,
            "panels_per_page": options.panels_per_page,
            "page_size": tuple(round(v, 2) for v in page_size),
        },
        backend="pymupdf",
    )
