"""
Animated GIF encoder backends.

The chain is an ordered list of :class:`BackendDescriptor` records, each
bundling an availability predicate with an async ``invoke`` callable.
``encode_animation`` stages the canonical frames in one workspace and
walks the chain until a backend succeeds.

Backend priority (highest to lowest):
    1. ffmpeg       -- two-pass: palettegen, then paletteuse
    2. ImageMagick  -- single pass with -colors / -dither / -layers
    3. Pillow       -- in-process, first frame only (static GIF)

A failing backend never aborts the job on its own; its error is recorded
and the next backend is tried.  Only when every backend has failed does
the caller see a single :class:`EncodingFailed`.
"""

from __future__ import annotations

import asyncio
import functools
import io
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from PIL import Image

from imgassembly.config import ResolvedTools
from imgassembly.exceptions import (
    BackendExecutionFailure,
    BackendUnavailable,
    EncodingFailed,
)
from imgassembly.types import (
    ArtifactKind,
    CanonicalFrame,
    DitherMode,
    EncodedArtifact,
    QualityPreset,
)
from imgassembly.workspace import Workspace, acquire_workspace

logger = logging.getLogger(__name__)

GIF_SIGNATURES = (b"GIF87a", b"GIF89a")
STDERR_TAIL = 2000

# Each backend writes under its own names.
FFMPEG_PALETTE = "ffmpeg_palette.png"
FFMPEG_OUTPUT = "ffmpeg.gif"
MAGICK_OUTPUT = "magick.gif"


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class AnimationParams:
    """Per-job encoding parameters shared by every backend."""
    width: int
    height: int
    delay_ms: int
    loop: int
    preset: QualityPreset

    @property
    def fps(self) -> int:
        """Frame rate for frame-sequence encoders, at least 1."""
        if self.delay_ms <= 0:
            return 1
        return max(1, round_half_up(1000 / self.delay_ms))

    @property
    def delay_cs(self) -> int:
        """Frame delay in hundredths of a second (GIF native unit)."""
        return max(1, round_half_up(self.delay_ms / 10))

    def settings(self) -> dict:
        return {
            "delay": self.delay_ms,
            "loop": self.loop,
            "width": self.width,
            "height": self.height,
            "quality": self.preset.tier,
            "colors": self.preset.colors,
            "dither": self.preset.dither.value,
        }


InvokeFn = Callable[[Workspace, Sequence[CanonicalFrame], AnimationParams], Awaitable[bytes]]


@dataclass(frozen=True)
class BackendDescriptor:
    """One encoding strategy in the fallback chain."""
    name: str
    rank: int
    is_available: Callable[[], bool]
    invoke: InvokeFn
    static: bool = False


# ---------------------------------------------------------------------------
# Subprocess helpers
# ---------------------------------------------------------------------------

async def _run(cmd: list[str]) -> None:
    """Run an external tool, raising BackendExecutionFailure on non-zero exit."""
    logger.debug("Running: %s", " ".join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise BackendExecutionFailure(f"{cmd[0]} could not be started: {exc}") from exc
    try:
        _stdout, stderr = await proc.communicate()
    except BaseException:
        # Cancelled or interrupted: the child must not outlive its workspace.
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
        raise
    if proc.returncode != 0:
        text = stderr.decode(errors="replace")[-STDERR_TAIL:]
        raise BackendExecutionFailure(
            f"{Path(cmd[0]).name} failed (rc={proc.returncode})", stderr=text,
        )


def _discard(*paths: Path) -> None:
    for path in paths:
        path.unlink(missing_ok=True)


def _read_gif(path: Path, tool: str) -> bytes:
    if not path.is_file():
        raise BackendExecutionFailure(f"{tool} produced no output file.")
    data = path.read_bytes()
    if not data.startswith(GIF_SIGNATURES):
        raise BackendExecutionFailure(f"{tool} produced a malformed GIF ({len(data)} bytes).")
    return data


# ---------------------------------------------------------------------------
# 1. ffmpeg (two-pass palette)
# ---------------------------------------------------------------------------

_FFMPEG_DITHER = {
    DitherMode.NONE: "none",
    DitherMode.ERROR_DIFFUSION: "floyd_steinberg",
}


def build_palette_command(
    ffmpeg: Path,
    workspace: Workspace,
    params: AnimationParams,
) -> list[str]:
    """Pass 1: derive an optimal palette from full-frame statistics."""
    filters = (
        f"fps={params.fps},"
        f"scale={params.width}:{params.height}:flags=lanczos,"
        f"palettegen=max_colors={params.preset.colors}:stats_mode=full"
    )
    return [
        str(ffmpeg), "-v", "error",
        "-framerate", str(params.fps),
        "-i", workspace.frame_pattern,
        "-vf", filters,
        "-y", str(workspace.path / FFMPEG_PALETTE),
    ]


def build_paletteuse_command(
    ffmpeg: Path,
    workspace: Workspace,
    params: AnimationParams,
) -> list[str]:
    """Pass 2: encode the sequence against the pass-1 palette."""
    dither = _FFMPEG_DITHER[params.preset.dither]
    filter_complex = (
        f"[0:v]fps={params.fps},"
        f"scale={params.width}:{params.height}:flags=lanczos[scaled];"
        f"[scaled][1:v]paletteuse=dither={dither}:diff_mode=rectangle"
    )
    return [
        str(ffmpeg), "-v", "error",
        "-framerate", str(params.fps),
        "-i", workspace.frame_pattern,
        "-i", str(workspace.path / FFMPEG_PALETTE),
        "-filter_complex", filter_complex,
        "-loop", str(params.loop),
        "-y", str(workspace.path / FFMPEG_OUTPUT),
    ]


async def invoke_ffmpeg(
    ffmpeg: Path,
    workspace: Workspace,
    frames: Sequence[CanonicalFrame],
    params: AnimationParams,
) -> bytes:
    palette = workspace.path / FFMPEG_PALETTE
    output = workspace.path / FFMPEG_OUTPUT
    _discard(palette, output)
    await _run(build_palette_command(ffmpeg, workspace, params))
    if not palette.is_file():
        raise BackendExecutionFailure("ffmpeg palettegen produced no palette.")
    await _run(build_paletteuse_command(ffmpeg, workspace, params))
    return _read_gif(output, "ffmpeg")


# ---------------------------------------------------------------------------
# 2. ImageMagick (single pass)
# ---------------------------------------------------------------------------

_MAGICK_DITHER = {
    DitherMode.NONE: "None",
    DitherMode.ERROR_DIFFUSION: "FloydSteinberg",
}


def build_imagemagick_command(
    magick: Path,
    frame_paths: Sequence[Path],
    output: Path,
    params: AnimationParams,
) -> list[str]:
    """Build the ImageMagick command.

    ``-delay`` and ``-loop`` are settings and must precede the frames;
    ``-dither``/``-colors`` act on the frames already read.
    """
    ultra = params.preset.tier == "ultra"
    cmd: list[str] = [str(magick)]
    cmd += ["-delay", str(params.delay_cs)]
    cmd += ["-loop", str(params.loop)]
    cmd += [str(p) for p in frame_paths]
    cmd += ["-dither", _MAGICK_DITHER[params.preset.dither]]
    cmd += ["-colors", str(params.preset.colors)]
    cmd += ["-quality", "100" if ultra else "90"]
    if not ultra:
        cmd += ["-layers", "Optimize"]
    cmd.append(str(output))
    return cmd


async def invoke_imagemagick(
    magick: Path,
    workspace: Workspace,
    frames: Sequence[CanonicalFrame],
    params: AnimationParams,
) -> bytes:
    frame_paths = [workspace.frame_path(f.index) for f in frames]
    output = workspace.path / MAGICK_OUTPUT
    _discard(output)
    await _run(build_imagemagick_command(magick, frame_paths, output, params))
    return _read_gif(output, "ImageMagick")


# ---------------------------------------------------------------------------
# 3. Pillow (static fallback)
# ---------------------------------------------------------------------------

_PIL_DITHER = {
    DitherMode.NONE: Image.Dither.NONE,
    DitherMode.ERROR_DIFFUSION: Image.Dither.FLOYDSTEINBERG,
}


def encode_static_gif(frame: CanonicalFrame, preset: QualityPreset) -> bytes:
    """Quantize one frame into a single-image GIF."""
    high_effort = preset.effort >= 5
    method = Image.Quantize.MEDIANCUT if high_effort else Image.Quantize.FASTOCTREE
    img = frame.open().convert("RGB")
    quantized = img.quantize(
        colors=preset.colors,
        method=method,
        dither=_PIL_DITHER[preset.dither],
    )
    buf = io.BytesIO()
    quantized.save(buf, format="GIF", optimize=high_effort)
    return buf.getvalue()


async def invoke_pillow(
    workspace: Workspace,
    frames: Sequence[CanonicalFrame],
    params: AnimationParams,
) -> bytes:
    logger.warning("Using Pillow fallback: output is a static single-frame GIF.")
    return await asyncio.to_thread(encode_static_gif, frames[0], params.preset)


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------

def build_backend_chain(tools: ResolvedTools) -> list[BackendDescriptor]:
    """Return the rank-ordered chain for the tools found on this host."""
    ffmpeg, magick = tools.ffmpeg, tools.magick
    return [
        BackendDescriptor(
            name="ffmpeg",
            rank=0,
            is_available=lambda: ffmpeg is not None,
            invoke=functools.partial(invoke_ffmpeg, ffmpeg),
        ),
        BackendDescriptor(
            name="imagemagick",
            rank=1,
            is_available=lambda: magick is not None,
            invoke=functools.partial(invoke_imagemagick, magick),
        ),
        BackendDescriptor(
            name="pillow",
            rank=2,
            is_available=lambda: True,
            invoke=invoke_pillow,
            static=True,
        ),
    ]


def _stage_frames(workspace: Workspace, frames: Sequence[CanonicalFrame]) -> None:
    for frame in frames:
        workspace.write_frame(frame.index, frame.data)


async def encode_animation(
    chain: Sequence[BackendDescriptor],
    frames: Sequence[CanonicalFrame],
    params: AnimationParams,
    temp_root: Path,
) -> EncodedArtifact:
    """Encode *frames* with the first backend in *chain* that succeeds.

    The workspace is acquired once for the whole chain and released
    exactly once after it resolves.
    """
    if not frames:
        raise ValueError("Cannot encode an empty frame sequence.")

    failures: list[tuple[str, Exception]] = []
    with acquire_workspace(temp_root) as workspace:
        await asyncio.to_thread(_stage_frames, workspace, frames)

        for backend in sorted(chain, key=lambda b: b.rank):
            if not backend.is_available():
                logger.debug("Backend %s unavailable, skipping.", backend.name)
                failures.append((backend.name, BackendUnavailable(
                    f"{backend.name} is not installed")))
                continue

            logger.info("Encoding %d frames with %s", len(frames), backend.name)
            try:
                data = await backend.invoke(workspace, frames, params)
            except Exception as exc:
                logger.warning("Backend %s failed: %s", backend.name, exc)
                failures.append((backend.name, exc))
                continue

            count = 1 if backend.static else len(frames)
            logger.info(
                "GIF created with %s (%d frames, %d KB)",
                backend.name, count, round(len(data) / 1024),
            )
            return EncodedArtifact(
                kind=ArtifactKind.ANIMATION,
                data=data,
                count=count,
                settings=params.settings(),
                backend=backend.name,
                static=backend.static,
            )

    raise EncodingFailed(failures)
