"""Crop options and their per-image resolution."""

import math
from dataclasses import dataclass, replace
from typing import Optional

from cropscout.models import InvalidConfigurationError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_SKIN_COLOR = (0.78, 0.57, 0.44)
PRESCALE_TARGET_PX = 256  # shorter working edge after prescaling


@dataclass(frozen=True)
class CropOptions:
    width: float = 0
    height: float = 0
    aspect: float = 0.0
    crop_width: Optional[int] = None
    crop_height: Optional[int] = None
    min_scale: float = 1.0
    max_scale: float = 1.0
    scale_step: float = 0.1
    step: int = 8
    score_down_sample: int = 8
    skin_color: tuple[float, float, float] = DEFAULT_SKIN_COLOR
    skin_threshold: float = 0.8
    skin_brightness_min: float = 0.2
    skin_brightness_max: float = 1.0
    saturation_threshold: float = 0.4
    saturation_brightness_min: float = 0.05
    saturation_brightness_max: float = 0.9
    detail_weight: float = 0.2
    skin_weight: float = 1.8
    saturation_weight: float = 0.1
    boost_weight: float = 100.0
    skin_bias: float = 0.01
    saturation_bias: float = 0.2
    edge_radius: float = 0.4
    edge_weight: float = -20.0
    outside_importance: float = -0.5
    rule_of_thirds: bool = True
    prescale: bool = True


def _finite(value: float) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def validate_options(options: Optional[CropOptions]) -> None:
    """Raise InvalidConfigurationError when options cannot drive a crop search."""
    if options is None:
        raise InvalidConfigurationError("options must not be None")

    for name in ("width", "height", "aspect"):
        value = getattr(options, name)
        if not _finite(value) or value < 0:
            raise InvalidConfigurationError(f"{name} must be a finite, non-negative number (got {value!r})")

    if options.aspect <= 0 and (options.width > 0) != (options.height > 0):
        raise InvalidConfigurationError(
            f"width and height must both be set or both be 0 (got {options.width}x{options.height})"
        )

    for name in ("crop_width", "crop_height"):
        value = getattr(options, name)
        if value is not None and (not _finite(value) or value <= 0):
            raise InvalidConfigurationError(f"{name} must be positive when given (got {value!r})")

    if not _finite(options.min_scale) or options.min_scale <= 0:
        raise InvalidConfigurationError(f"min_scale must be positive (got {options.min_scale!r})")
    if not _finite(options.max_scale) or options.max_scale <= 0:
        raise InvalidConfigurationError(f"max_scale must be positive (got {options.max_scale!r})")
    if options.min_scale > options.max_scale:
        raise InvalidConfigurationError(
            f"min_scale ({options.min_scale}) is greater than max_scale ({options.max_scale}); "
            "no candidate crops can be generated"
        )
    if not _finite(options.scale_step) or options.scale_step <= 0:
        raise InvalidConfigurationError(f"scale_step must be positive (got {options.scale_step!r})")
    if int(options.step) < 1:
        raise InvalidConfigurationError(f"step must be >= 1 (got {options.step!r})")
    if int(options.score_down_sample) < 1:
        raise InvalidConfigurationError(
            f"score_down_sample must be >= 1 (got {options.score_down_sample!r})"
        )

    for name in ("skin_threshold", "saturation_threshold"):
        value = getattr(options, name)
        if not _finite(value) or not 0.0 <= value < 1.0:
            raise InvalidConfigurationError(f"{name} must be in [0, 1) (got {value!r})")

    for prefix in ("skin", "saturation"):
        lo = getattr(options, f"{prefix}_brightness_min")
        hi = getattr(options, f"{prefix}_brightness_max")
        if not (_finite(lo) and _finite(hi)) or lo > hi:
            raise InvalidConfigurationError(
                f"{prefix} brightness bounds are invalid (min={lo!r}, max={hi!r})"
            )

    if len(options.skin_color) != 3 or not all(_finite(c) for c in options.skin_color):
        raise InvalidConfigurationError(f"skin_color must be 3 finite floats (got {options.skin_color!r})")

    if not _finite(options.edge_radius) or not 0.0 <= options.edge_radius <= 1.0:
        raise InvalidConfigurationError(f"edge_radius must be in [0, 1] (got {options.edge_radius!r})")


def resolve_options(options: CropOptions, image_width: int, image_height: int) -> CropOptions:
    """Derive crop dimensions and clamp min_scale for an image of the given size.

    Returns a new CropOptions; the caller's instance is left untouched.
    """
    validate_options(options)

    width = options.width
    height = options.height
    if options.aspect > 0:
        width = options.aspect
        height = 1

    resolved = replace(options, width=width, height=height)
    if width > 0 and height > 0:
        scale = min(image_width / float(width), image_height / float(height))
        crop_width = options.crop_width
        if crop_width is None:
            crop_width = int(round(width * scale))
        crop_height = options.crop_height
        if crop_height is None:
            crop_height = int(round(height * scale))
        # Never pick crops that would need upscaling.
        min_scale = min(options.max_scale, max(1.0 / scale, options.min_scale))
        resolved = replace(
            resolved,
            crop_width=crop_width,
            crop_height=crop_height,
            min_scale=min_scale,
        )
    return resolved


def prescale_factor(options: CropOptions, image_width: int, image_height: int) -> float:
    """Factor (<= 1) applied to the working image before analysis."""
    if not options.prescale:
        return 1.0
    factor = min(
        max(PRESCALE_TARGET_PX / float(image_width), PRESCALE_TARGET_PX / float(image_height)),
        1.0,
    )
    return factor
