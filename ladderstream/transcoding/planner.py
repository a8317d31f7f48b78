"""
Variant planning: which renditions to produce for a given source.
"""

import logging
from typing import List, Optional, Tuple

from .constants import (
    QUALITY_LADDER,
    LadderRung,
    FALLBACK_NAME,
    FALLBACK_MAX_WIDTH,
    FALLBACK_MAX_HEIGHT,
    FALLBACK_BITRATE_KBPS,
    DEFAULT_VIDEO_CODEC,
    DEFAULT_PRESET,
    DEFAULT_PROFILE,
    DEFAULT_LEVEL,
    DEFAULT_FPS,
    MAXRATE_FACTOR,
    BUFSIZE_FACTOR,
)
from .models import VariantSpec

logger = logging.getLogger(__name__)


def _even_floor(value: float) -> int:
    """Round down to an even number, never below 2 (x264 needs even sizes)."""
    return max(2, int(value) // 2 * 2)


def fit_within(
    width: int,
    height: int,
    max_width: int,
    max_height: int
) -> Tuple[int, int]:
    """
    Scale (width, height) down to fit inside max_width x max_height.
    
    Keeps the aspect ratio, never upscales, and returns even dimensions.
    Unknown (zero) source dimensions yield the bounding box itself.
    """
    if width <= 0 or height <= 0:
        return _even_floor(max_width), _even_floor(max_height)
    
    scale = min(1.0, max_width / width, max_height / height)
    return _even_floor(width * scale), _even_floor(height * scale)


def _variant_fps(framerate: Optional[float]) -> float:
    if framerate and framerate > 0:
        return min(DEFAULT_FPS, round(framerate, 3))
    return DEFAULT_FPS


def _make_variant(
    name: str,
    width: int,
    height: int,
    bitrate_kbps: int,
    fps: float
) -> VariantSpec:
    return VariantSpec(
        name=name,
        width=width,
        height=height,
        target_bitrate_kbps=bitrate_kbps,
        codec=DEFAULT_VIDEO_CODEC,
        preset=DEFAULT_PRESET,
        maxrate_kbps=int(bitrate_kbps * MAXRATE_FACTOR),
        bufsize_kb=bitrate_kbps * BUFSIZE_FACTOR,
        fps=fps,
        profile=DEFAULT_PROFILE,
        level=DEFAULT_LEVEL,
    )


def _covers(width: int, height: int, rung: LadderRung) -> bool:
    return height >= rung.height and width >= rung.width


def plan_variants(
    width: int,
    height: int,
    duration: float,
    framerate: Optional[float] = None
) -> List[VariantSpec]:
    """
    Plan the quality variants for a source of the given size.
    
    A ladder rung is included only when the source covers it in both
    dimensions, so nothing is ever upscaled. When no rung qualifies a
    single fallback variant bounded by the source size (and by 854x480)
    is returned, so every job yields at least one playable rendition.

    Rungs are 16:9, so 4:3 and portrait sources lose the top rungs their
    height alone would reach: 960x720 plans 360p and 480p, not 720p.

    Args:
        width: Source width in pixels
        height: Source height in pixels
        duration: Source duration in seconds (0 if unknown)
        framerate: Source frame rate, caps the variant frame rate
    
    Returns:
        Variants in ascending quality order
    """
    fps = _variant_fps(framerate)
    variants = [
        _make_variant(rung.name, rung.width, rung.height, rung.bitrate_kbps, fps)
        for rung in QUALITY_LADDER
        if _covers(width, height, rung)
    ]
    
    if not variants:
        fb_width, fb_height = fit_within(
            width, height, FALLBACK_MAX_WIDTH, FALLBACK_MAX_HEIGHT
        )
        variants.append(
            _make_variant(FALLBACK_NAME, fb_width, fb_height, FALLBACK_BITRATE_KBPS, fps)
        )
    
    logger.debug(
        f"[Planner] {width}x{height} ({duration:.1f}s) -> "
        f"{[v.name for v in variants]}"
    )
    return variants
