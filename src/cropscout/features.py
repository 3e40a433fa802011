"""Per-pixel feature extraction: detail, skin, saturation and boost planes.

Every extractor is a pure function of an RGBA uint8 array of shape
``(height, width, 4)`` and returns a uint8 plane of shape ``(height, width)``.
"""

from typing import Sequence

import numpy as np

from cropscout.models import BoostArea, FeatureBuffer, InternalInvariantError
from cropscout.options import CropOptions

# CIE-style weights applied to (B, G, R); shared by every extractor.
LIGHTNESS_B = 0.5126
LIGHTNESS_G = 0.7152
LIGHTNESS_R = 0.0722


def _check_rgba(rgba: np.ndarray) -> None:
    if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.dtype != np.uint8:
        raise InternalInvariantError(
            f"Expected an RGBA uint8 buffer, got shape={rgba.shape} dtype={rgba.dtype}"
        )


def lightness(rgba: np.ndarray) -> np.ndarray:
    """Perceptual lightness per pixel, in [0, ~332]."""
    rgb = rgba[..., :3].astype(np.float64)
    return LIGHTNESS_B * rgb[..., 2] + LIGHTNESS_G * rgb[..., 1] + LIGHTNESS_R * rgb[..., 0]


def edge_detect(rgba: np.ndarray) -> np.ndarray:
    """4-neighbour Laplacian of lightness; border pixels keep their raw lightness."""
    _check_rgba(rgba)
    lum = lightness(rgba)
    out = lum.copy()
    if lum.shape[0] > 2 and lum.shape[1] > 2:
        out[1:-1, 1:-1] = (
            4.0 * lum[1:-1, 1:-1]
            - lum[:-2, 1:-1]
            - lum[1:-1, :-2]
            - lum[1:-1, 2:]
            - lum[2:, 1:-1]
        )
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def _stretch_above(values: np.ndarray, threshold: float, accept: np.ndarray) -> np.ndarray:
    """Map (threshold, 1] onto (0, 255] for accepted pixels, 0 elsewhere."""
    stretched = np.minimum(255.0, (values - threshold) * (255.0 / (1.0 - threshold)))
    stretched = np.where(accept, stretched, 0.0)
    return np.clip(np.floor(stretched), 0, 255).astype(np.uint8)


def skin_detect(rgba: np.ndarray, options: CropOptions) -> np.ndarray:
    _check_rgba(rgba)
    rgb = rgba[..., :3].astype(np.float64)
    mag = np.sqrt((rgb * rgb).sum(axis=2))
    unit = np.divide(rgb, mag[..., None], out=np.zeros_like(rgb), where=mag[..., None] > 0)
    diff = unit - np.asarray(options.skin_color, dtype=np.float64)
    skin = 1.0 - np.sqrt((diff * diff).sum(axis=2))

    lum = lightness(rgba) / 255.0
    accept = (
        (mag > 0)
        & (skin > options.skin_threshold)
        & (lum >= options.skin_brightness_min)
        & (lum <= options.skin_brightness_max)
    )
    return _stretch_above(skin, options.skin_threshold, accept)


def hsl_saturation(rgba: np.ndarray) -> np.ndarray:
    """Classic HSL saturation in [0, 1]."""
    rgb = rgba[..., :3].astype(np.float64) / 255.0
    maximum = rgb.max(axis=2)
    minimum = rgb.min(axis=2)
    delta = maximum - minimum
    light = (maximum + minimum) / 2.0
    denom = np.where(light > 0.5, 2.0 - maximum - minimum, maximum + minimum)
    return np.divide(delta, denom, out=np.zeros_like(delta), where=(delta > 0) & (denom > 0))


def saturation_detect(rgba: np.ndarray, options: CropOptions) -> np.ndarray:
    _check_rgba(rgba)
    sat = hsl_saturation(rgba)
    lum = lightness(rgba) / 255.0
    accept = (
        (sat > options.saturation_threshold)
        & (lum >= options.saturation_brightness_min)
        & (lum <= options.saturation_brightness_max)
    )
    return _stretch_above(sat, options.saturation_threshold, accept)


def apply_boosts(height: int, width: int, boost_areas: Sequence[BoostArea]) -> np.ndarray:
    """Boost plane: each area adds weight*255 over its (clipped) rectangle, then clamp."""
    acc = np.zeros((height, width), dtype=np.float64)
    for boost in boost_areas:
        x0 = max(0, boost.area.x)
        y0 = max(0, boost.area.y)
        x1 = min(width, boost.area.right)
        y1 = min(height, boost.area.bottom)
        if x1 <= x0 or y1 <= y0:
            continue
        acc[y0:y1, x0:x1] += boost.weight * 255.0
    return np.clip(acc, 0, 255).astype(np.uint8)


def extract_features(
    rgba: np.ndarray, options: CropOptions, boost_areas: Sequence[BoostArea] = ()
) -> FeatureBuffer:
    """Run all extractors and the boost overlay into a fresh FeatureBuffer."""
    height, width = rgba.shape[:2]
    return FeatureBuffer(
        skin=skin_detect(rgba, options),
        detail=edge_detect(rgba),
        saturation=saturation_detect(rgba, options),
        boost=apply_boosts(height, width, boost_areas),
    )


# ---------------------------------------------------------------------------
# Downsampling
# ---------------------------------------------------------------------------


def _blocks(plane: np.ndarray, factor: int, out_h: int, out_w: int) -> np.ndarray:
    trimmed = plane[: out_h * factor, : out_w * factor].astype(np.float64)
    return trimmed.reshape(out_h, factor, out_w, factor)


def downsample(features: FeatureBuffer, factor: int) -> FeatureBuffer:
    """Reduce each factor x factor block to one pixel.

    Trailing partial blocks on the right/bottom are dropped. Skin and detail mix
    the block mean with the block max so small peaks survive; saturation and
    boost are plain block means.
    """
    factor = int(factor)
    out_h = features.height // factor
    out_w = features.width // factor

    skin = _blocks(features.skin, factor, out_h, out_w)
    detail = _blocks(features.detail, factor, out_h, out_w)
    saturation = _blocks(features.saturation, factor, out_h, out_w)
    boost = _blocks(features.boost, factor, out_h, out_w)

    axes = (1, 3)
    skin_out = skin.mean(axis=axes) * 0.5 + skin.max(axis=axes, initial=0.0) * 0.5
    detail_out = detail.mean(axis=axes) * 0.7 + detail.max(axis=axes, initial=0.0) * 0.3

    def _to_u8(values: np.ndarray) -> np.ndarray:
        return np.clip(np.floor(values), 0, 255).astype(np.uint8)

    return FeatureBuffer(
        skin=_to_u8(skin_out),
        detail=_to_u8(detail_out),
        saturation=_to_u8(saturation.mean(axis=axes)),
        boost=_to_u8(boost.mean(axis=axes)),
    )
