"""
Panel-grid compositor for grouped document pages.

Groups of frames are laid out two columns wide on one canvas sized from
the document page at 300 DPI:

    +------------------------------+
    |  margin                      |
    |   +--------+ g +--------+    |
    |   | 0      | u | 1      |    |
    |   +--------+ t +--------+    |
    |      gutter  t              |
    |   +--------+ e +--------+    |
    |   | 2      | r | 3      |    |
    |   +--------+   +--------+    |
    +------------------------------+

Each frame is padded into its cell without distortion.  The composed
canvas replaces the whole group as a single document image.
"""

from __future__ import annotations

import io
import math
from typing import Sequence

from PIL import Image

from imgassembly.processing import apply_background, fit_to_canvas
from imgassembly.types import CanonicalFrame

CANVAS_DPI = 300
PANEL_MARGIN_PX = 50
PANEL_GUTTER_PX = 20
PANEL_COLUMNS = 2
PANEL_JPEG_QUALITY = 95


def group_frames(
    frames: Sequence[CanonicalFrame],
    panels_per_page: int,
) -> list[list[CanonicalFrame]]:
    """Split *frames* into consecutive groups of *panels_per_page*."""
    size = max(1, panels_per_page)
    return [list(frames[i:i + size]) for i in range(0, len(frames), size)]


def panel_cells(
    count: int,
    canvas_size: tuple[int, int],
    margin: int = PANEL_MARGIN_PX,
    gutter: int = PANEL_GUTTER_PX,
) -> list[tuple[int, int, int, int]]:
    """Return ``(left, top, width, height)`` for each of *count* panels."""
    canvas_w, canvas_h = canvas_size
    cols = min(count, PANEL_COLUMNS)
    rows = math.ceil(count / PANEL_COLUMNS)
    cell_w = (canvas_w - 2 * margin - (cols - 1) * gutter) / cols
    cell_h = (canvas_h - 2 * margin - (rows - 1) * gutter) / rows
    if cell_w < 1 or cell_h < 1:
        raise ValueError(
            f"Canvas {canvas_w}x{canvas_h} is too small for {count} panels."
        )

    cells = []
    for i in range(count):
        row, col = divmod(i, PANEL_COLUMNS)
        left = margin + col * (cell_w + gutter)
        top = margin + row * (cell_h + gutter)
        cells.append((round(left), round(top), round(cell_w), round(cell_h)))
    return cells


def compose_panel_page(
    frames: Sequence[CanonicalFrame],
    page_size: tuple[float, float],
    background: tuple[int, int, int] = (255, 255, 255),
    index: int = 0,
) -> CanonicalFrame:
    """Composite *frames* onto one canvas sized from *page_size* (points)."""
    canvas_w = round(page_size[0] * CANVAS_DPI / 72)
    canvas_h = round(page_size[1] * CANVAS_DPI / 72)
    canvas = Image.new("RGB", (canvas_w, canvas_h), background)

    for frame, (left, top, cell_w, cell_h) in zip(
        frames, panel_cells(len(frames), (canvas_w, canvas_h))
    ):
        panel = apply_background(frame.open(), background)
        canvas.paste(fit_to_canvas(panel, (cell_w, cell_h), background), (left, top))

    buf = io.BytesIO()
    canvas.save(buf, format="JPEG", quality=PANEL_JPEG_QUALITY)
    return CanonicalFrame(
        index=index,
        width=canvas_w,
        height=canvas_h,
        data=buf.getvalue(),
        format="JPEG",
    )


def compose_panels(
    frames: Sequence[CanonicalFrame],
    panels_per_page: int,
    page_size: tuple[float, float],
    background: tuple[int, int, int] = (255, 255, 255),
) -> list[CanonicalFrame]:
    """Merge each multi-frame group into one image; singletons pass through."""
    if panels_per_page < 2:
        return list(frames)

    pages: list[CanonicalFrame] = []
    for i, group in enumerate(group_frames(frames, panels_per_page)):
        if len(group) == 1:
            pages.append(group[0])
        else:
            pages.append(compose_panel_page(group, page_size, background, index=i))
    return pages
