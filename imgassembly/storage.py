"""
Local publication of finished artifacts.

A publisher is any callable ``publish(data, kind) -> url``.  The local
publisher writes ``<output_dir>/<ext>/<uuid>.<ext>`` and returns the URL
under which a static file server exposes ``output_dir`` as ``/outputs``.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Callable

from imgassembly.exceptions import PublishError
from imgassembly.types import ArtifactKind

logger = logging.getLogger(__name__)

Publisher = Callable[[bytes, ArtifactKind], str]


class LocalPublisher:
    """Store artifacts on the local filesystem."""

    def __init__(self, output_dir: Path, base_url: str = "http://localhost:3000") -> None:
        self.output_dir = Path(output_dir)
        self.base_url = base_url.rstrip("/")

    def __call__(self, data: bytes, kind: ArtifactKind, filename: str | None = None) -> str:
        ext = kind.extension
        name = filename or f"{uuid.uuid4()}.{ext}"
        target_dir = self.output_dir / ext
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            (target_dir / name).write_bytes(data)
        except OSError as exc:
            raise PublishError(f"Failed to save {name} locally: {exc}") from exc
        logger.info("Published %s (%d bytes) to %s", name, len(data), target_dir)
        return f"{self.base_url}/outputs/{ext}/{name}"
