"""Candidate crop generation, positional importance and crop scoring."""

import math
from typing import Iterable, Optional, Sequence

import numpy as np

from cropscout.models import BoostArea, Crop, FeatureBuffer, InternalInvariantError, Rect, Score
from cropscout.options import CropOptions

THIRDS_SHARPNESS = 16.0
CENTER_PEAK = 1.41
THIRDS_GAIN = 1.2

# ---------------------------------------------------------------------------
# Candidate generation
# ---------------------------------------------------------------------------


def candidate_scales(options: CropOptions) -> list[float]:
    """Scales from max_scale down to min_scale (inclusive on an exact landing)."""
    if options.min_scale > options.max_scale:
        return []
    count = int(math.floor((options.max_scale - options.min_scale) / options.scale_step + 1e-9))
    return [options.max_scale - i * options.scale_step for i in range(count + 1)]


def generate_crops(width: int, height: int, options: CropOptions) -> list[Crop]:
    """Enumerate candidates scale-major, then row-major, then column-major."""
    min_dimension = min(width, height)
    crop_width = options.crop_width if options.crop_width is not None else min_dimension
    crop_height = options.crop_height if options.crop_height is not None else min_dimension
    step = int(options.step)

    crops: list[Crop] = []
    for scale in candidate_scales(options):
        scaled_w = crop_width * scale
        scaled_h = crop_height * scale
        rect_w = int(round(scaled_w))
        rect_h = int(round(scaled_h))
        if rect_w <= 0 or rect_h <= 0:
            continue
        y = 0
        while y + scaled_h <= height:
            x = 0
            while x + scaled_w <= width:
                crops.append(Crop(Rect(x, y, rect_w, rect_h)))
                x += step
            y += step
    return crops


# ---------------------------------------------------------------------------
# Importance
# ---------------------------------------------------------------------------


def thirds(x):
    """Rule-of-thirds weight in [0, 1]; peaks at x = 1/3 (period 2).

    ``x`` is a distance from the crop centre normalised to [0, 1].
    """
    x = (np.fmod(x - 1.0 / 3.0 + 1.0, 2.0) * 0.5 - 0.5) * THIRDS_SHARPNESS
    return np.maximum(1.0 - x * x, 0.0)


def importance_map(crop: Rect, xs: np.ndarray, ys: np.ndarray, options: CropOptions) -> np.ndarray:
    """Positional weight of each (xs, ys) point for ``crop``.

    Outside the crop the weight is ``outside_importance``. Inside, it peaks at
    the centre, drops sharply within ``edge_radius`` of the border and, with
    rule of thirds on, gains a bonus along the thirds lines.
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    inside = (xs >= crop.x) & (xs < crop.right) & (ys >= crop.y) & (ys < crop.bottom)

    px = np.abs(0.5 - (xs - crop.x) / crop.width) * 2.0
    py = np.abs(0.5 - (ys - crop.y) / crop.height) * 2.0

    dx = np.maximum(px - 1.0 + options.edge_radius, 0.0)
    dy = np.maximum(py - 1.0 + options.edge_radius, 0.0)
    d = (dx * dx + dy * dy) * options.edge_weight
    s = CENTER_PEAK - np.sqrt(px * px + py * py)
    if options.rule_of_thirds:
        s = s + np.maximum(0.0, s + d + 0.5) * THIRDS_GAIN * (thirds(px) + thirds(py))

    return np.where(inside, s + d, options.outside_importance)


def importance(crop: Rect, x: float, y: float, options: CropOptions) -> float:
    return float(importance_map(crop, np.array([[x]]), np.array([[y]]), options)[0, 0])


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def boost_penalty(crop: Rect, boost_areas: Sequence[BoostArea]) -> float:
    """Average weight of boost areas the crop cuts through (contained ones are free)."""
    if not boost_areas:
        return 0.0
    penalty = 0.0
    for boost in boost_areas:
        if crop.contains(boost.area):
            continue
        if boost.area.intersects(crop):
            penalty += boost.weight
    return min(1.0, penalty / len(boost_areas))


def sample_grid(features: FeatureBuffer, factor: int) -> tuple[np.ndarray, np.ndarray]:
    """Full-resolution coordinates of every downsampled pixel, row-major."""
    xs = np.arange(features.width, dtype=np.float64) * factor
    ys = np.arange(features.height, dtype=np.float64) * factor
    return np.meshgrid(xs, ys)


def score_crop(
    features: FeatureBuffer,
    crop: Rect,
    boost_areas: Sequence[BoostArea],
    options: CropOptions,
    grid: Optional[tuple[np.ndarray, np.ndarray]] = None,
) -> Score:
    """Score ``crop`` against a downsampled FeatureBuffer."""
    if grid is None:
        grid = sample_grid(features, int(options.score_down_sample))
    xs, ys = grid
    weights = importance_map(crop, xs, ys, options)

    detail = features.detail.astype(np.float64) / 255.0
    skin = features.skin.astype(np.float64) / 255.0
    saturation = features.saturation.astype(np.float64) / 255.0
    boost = features.boost.astype(np.float64) / 255.0

    score = Score(
        detail=float(np.sum(detail * weights)),
        skin=float(np.sum(skin * (detail + options.skin_bias) * weights)),
        saturation=float(np.sum(saturation * (detail + options.saturation_bias) * weights)),
        boost=float(np.sum(boost * weights)),
        penalty=boost_penalty(crop, boost_areas),
    )
    total = (
        score.detail * options.detail_weight
        + score.skin * options.skin_weight
        + score.saturation * options.saturation_weight
        + score.boost * options.boost_weight
    ) / float(crop.area)
    score.total = total - total * score.penalty
    return score


def score_crops(
    features: FeatureBuffer,
    crops: Iterable[Crop],
    boost_areas: Sequence[BoostArea],
    options: CropOptions,
) -> None:
    grid = sample_grid(features, int(options.score_down_sample))
    for crop in crops:
        crop.score = score_crop(features, crop.area, boost_areas, options, grid=grid)


def select_best(crops: Iterable[Crop]) -> Crop:
    """First crop (in generation order) with the strictly highest total."""
    best: Optional[Crop] = None
    top_score = -math.inf
    for crop in crops:
        if crop.score is None:
            raise InternalInvariantError(f"Crop {crop.area} was never scored")
        if crop.score.total > top_score:
            best = crop
            top_score = crop.score.total
    if best is None:
        raise InternalInvariantError("No scorable crop candidate")
    return best
