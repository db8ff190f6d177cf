"""
Conversion orchestrator.

Drives the animation pipeline (preprocess -> stage -> encoder chain) and
the document pipeline (preprocess -> page size -> panels -> PDF) for one
request.  When both artifacts are wanted the two pipelines run as
concurrent asyncio tasks.  Neither shares mutable state with the other:
each runs its own preprocessing pass, and only the animation pipeline
owns a workspace.

Scheduling
----------
External encoders run as asyncio subprocesses.  Pillow and PyMuPDF work
is CPU-bound and runs to completion in a worker thread
(``asyncio.to_thread``) so the other pipeline can make progress.

Failure
-------
A failing pipeline does not cancel the other.  Both are awaited; then
the first failure (animation before document) is raised, with the other
one logged.  When the other pipeline succeeded, its artifact stays
reachable through the raised error's ``partial_result``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

from imgassembly.backends import (
    AnimationParams,
    BackendDescriptor,
    build_backend_chain,
    encode_animation,
)
from imgassembly.config import ResolvedTools, Settings, resolve_tools
from imgassembly.document import assemble_document, resolve_page_size
from imgassembly.panels import compose_panels
from imgassembly.presets import resolve_preset
from imgassembly.processing import preprocess_frames
from imgassembly.storage import Publisher
from imgassembly.types import (
    ArtifactKind,
    ConversionOptions,
    ConversionRequest,
    ConversionResult,
    EncodedArtifact,
)

logger = logging.getLogger(__name__)


def parse_kinds(kinds: Iterable[ArtifactKind | str]) -> list[ArtifactKind]:
    """Normalize requested kinds, keeping animation before document."""
    wanted = {ArtifactKind.parse(k) for k in kinds}
    if not wanted:
        raise ValueError("At least one artifact kind must be requested.")
    return [k for k in ArtifactKind if k in wanted]


class Converter:
    """Single entry point for turning images into a GIF and/or a PDF.

    Usage::

        converter = Converter()
        result = converter.convert(
            images,
            ConversionOptions(delay_ms=1500, quality="ultra"),
            ["animation", "document"],
        )
        result.animation.count, result.document.count
    """

    def __init__(
        self,
        tools: ResolvedTools | None = None,
        settings: Settings | None = None,
        backends: Sequence[BackendDescriptor] | None = None,
    ) -> None:
        self.tools = tools if tools is not None else resolve_tools()
        self.settings = settings if settings is not None else Settings.from_env()
        if backends is None:
            backends = build_backend_chain(self.tools)
        self.backends = sorted(backends, key=lambda b: b.rank)

    # ---- Pipelines -------------------------------------------------------

    async def run_animation(self, request: ConversionRequest) -> EncodedArtifact:
        opts = request.options
        preset = resolve_preset(opts.quality)
        logger.info(
            "Creating GIF: %d frames, %dx%d, quality %s",
            len(request.images), opts.width, opts.height, preset.tier,
        )
        frames = await asyncio.to_thread(
            preprocess_frames, request.images, opts.width, opts.height, preset,
        )
        params = AnimationParams(
            width=opts.width,
            height=opts.height,
            delay_ms=opts.delay_ms,
            loop=opts.loop,
            preset=preset,
        )
        return await encode_animation(
            self.backends, frames, params, self.settings.temp_root,
        )

    async def run_document(self, request: ConversionRequest) -> EncodedArtifact:
        opts = request.options
        preset = resolve_preset(opts.quality)
        frames = await asyncio.to_thread(
            preprocess_frames, request.images, opts.width, opts.height, preset,
        )
        page_size = resolve_page_size(opts.page_format, frames[0])
        if opts.panel_mode:
            logger.info("Grouping %d panels per page", opts.panels_per_page)
            frames = await asyncio.to_thread(
                compose_panels, frames, opts.panels_per_page, page_size, opts.background,
            )
        return await asyncio.to_thread(
            assemble_document, frames, page_size, opts, opts.page_format,
        )

    # ---- Entry points ----------------------------------------------------

    async def convert_async(
        self,
        images: Sequence[bytes],
        options: ConversionOptions | None = None,
        kinds: Iterable[ArtifactKind | str] = (ArtifactKind.ANIMATION,),
    ) -> ConversionResult:
        wanted = parse_kinds(kinds)
        request = ConversionRequest.create(images, options)
        request.validate()

        runners = {
            ArtifactKind.ANIMATION: self.run_animation,
            ArtifactKind.DOCUMENT: self.run_document,
        }
        tasks = [asyncio.create_task(runners[kind](request)) for kind in wanted]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        result = ConversionResult()
        errors: list[BaseException] = []
        for kind, outcome in zip(wanted, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("%s pipeline failed: %s", kind.value, outcome)
                errors.append(outcome)
            elif kind is ArtifactKind.ANIMATION:
                result.animation = outcome
            else:
                result.document = outcome

        if errors:
            first = errors[0]
            if any(result):
                first.partial_result = result
            raise first
        return result

    def convert(
        self,
        images: Sequence[bytes],
        options: ConversionOptions | None = None,
        kinds: Iterable[ArtifactKind | str] = (ArtifactKind.ANIMATION,),
    ) -> ConversionResult:
        """Synchronous wrapper around :meth:`convert_async`."""
        return asyncio.run(self.convert_async(images, options, kinds))

    async def convert_and_publish(
        self,
        images: Sequence[bytes],
        publish: Publisher,
        options: ConversionOptions | None = None,
        kinds: Iterable[ArtifactKind | str] = (ArtifactKind.ANIMATION,),
    ) -> dict[ArtifactKind, str]:
        """Convert, then hand each artifact to *publish* exactly once."""
        result = await self.convert_async(images, options, kinds)
        urls: dict[ArtifactKind, str] = {}
        for artifact in result:
            urls[artifact.kind] = await asyncio.to_thread(publish, artifact.data, artifact.kind)
        return urls
