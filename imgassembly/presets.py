"""
Quality tier presets.

Each tier maps to a fixed bundle of palette size, dithering, encoder
effort and PNG compression.  Unknown tier names resolve to ``ultra``;
tier membership is validated upstream of the pipeline.
"""

from __future__ import annotations

import logging

from imgassembly.types import DitherMode, QualityPreset

logger = logging.getLogger(__name__)

DEFAULT_TIER = "ultra"

QUALITY_PRESETS: dict[str, QualityPreset] = {
    "low": QualityPreset(
        tier="low", colors=64, dither=DitherMode.ERROR_DIFFUSION,
        effort=3, compression=9,
    ),
    "medium": QualityPreset(
        tier="medium", colors=128, dither=DitherMode.ERROR_DIFFUSION,
        effort=5, compression=6,
    ),
    "high": QualityPreset(
        tier="high", colors=256, dither=DitherMode.ERROR_DIFFUSION,
        effort=8, compression=3,
    ),
    "ultra": QualityPreset(
        tier="ultra", colors=256, dither=DitherMode.NONE,
        effort=10, compression=0,
    ),
}


def available_tiers() -> list[str]:
    """Tier names, lowest quality first."""
    return list(QUALITY_PRESETS)


def resolve_preset(tier: str) -> QualityPreset:
    """Return the preset for *tier* (case-sensitive), defaulting to ultra."""
    preset = QUALITY_PRESETS.get(tier)
    if preset is None:
        logger.debug("Unknown quality tier %r; using %r.", tier, DEFAULT_TIER)
        return QUALITY_PRESETS[DEFAULT_TIER]
    return preset
