"""Content-aware crop pipeline.

Pipeline:
  1. Validate options and image, resolve the crop target for the image size
  2. Optionally prescale the working buffer (and boost areas) to ~256px
  3. Extract detail / skin / saturation planes and the boost overlay
  4. Downsample the features, generate candidates, score every candidate
  5. Keep the first best-scoring crop and map it back to original coordinates
"""

import io
import json
import math
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

import cv2
import numpy as np
from PIL import Image, ImageOps

from cropscout.features import downsample, extract_features
from cropscout.models import (
    BoostArea,
    CropResult,
    InternalInvariantError,
    InvalidConfigurationError,
    InvalidInputError,
    Rect,
)
from cropscout.options import CropOptions, prescale_factor, resolve_options, validate_options
from cropscout.scoring import generate_crops, score_crops, select_best

ImageLike = Union[np.ndarray, Image.Image]
ResizeFn = Callable[[np.ndarray, int, int], np.ndarray]

DEFAULT_JPEG_QUALITY = 92

# ---------------------------------------------------------------------------
# Pixel buffers (decode / resize collaborators)
# ---------------------------------------------------------------------------


def as_rgba_array(image: Optional[ImageLike]) -> np.ndarray:
    """Return a C-contiguous (h, w, 4) uint8 RGBA view/copy of ``image``."""
    if image is None:
        raise InvalidInputError("image must not be None")
    if isinstance(image, Image.Image):
        image = np.asarray(image.convert("RGBA"))

    arr = np.asarray(image)
    if arr.dtype != np.uint8:
        raise InvalidInputError(f"Expected uint8 pixels, got {arr.dtype}")
    if arr.ndim == 2:
        arr = np.dstack((arr, arr, arr))
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise InvalidInputError(f"Expected an RGB/RGBA image, got shape {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise InvalidInputError(f"Image has zero area ({arr.shape[1]}x{arr.shape[0]})")
    if arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
        arr = np.concatenate((arr, alpha), axis=2)

    return np.ascontiguousarray(arr)


def resize_rgba(rgba: np.ndarray, width: int, height: int) -> np.ndarray:
    """Default resize collaborator (area interpolation suits downscaling)."""
    try:
        return cv2.resize(rgba, (int(width), int(height)), interpolation=cv2.INTER_AREA)
    except cv2.error as e:
        raise InvalidInputError(f"Resize to {width}x{height} failed: {e}") from e


def _open_rgba(source) -> np.ndarray:
    with Image.open(source) as img:
        # Handle EXIF rotation
        img = ImageOps.exif_transpose(img)
        return as_rgba_array(img)


def load_rgba(image_path: Path) -> np.ndarray:
    """Decode an image file into an RGBA array (EXIF orientation applied)."""
    try:
        return _open_rgba(Path(image_path))
    except OSError as e:
        raise InvalidInputError(f"Cannot read {image_path}: {e}") from e


def decode_rgba(data: bytes) -> np.ndarray:
    if not data:
        raise InvalidInputError("image bytes are empty")
    try:
        return _open_rgba(io.BytesIO(data))
    except OSError as e:
        raise InvalidInputError(f"Cannot decode image bytes: {e}") from e


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def _validate_boost_areas(boost_areas: Sequence[BoostArea]) -> list[BoostArea]:
    boosts = list(boost_areas)
    for boost in boosts:
        if not isinstance(boost, BoostArea):
            raise InvalidInputError(f"Expected BoostArea, got {type(boost).__name__}")
        if not math.isfinite(boost.weight) or boost.weight <= 0:
            raise InvalidInputError(f"Boost weight must be positive (got {boost.weight!r})")
        if boost.area.width <= 0 or boost.area.height <= 0:
            raise InvalidInputError(f"Boost area must have positive size (got {boost.area})")
    return boosts


def prescale_inputs(
    rgba: np.ndarray,
    options: CropOptions,
    boost_areas: Sequence[BoostArea],
    resize: ResizeFn = resize_rgba,
) -> tuple[np.ndarray, CropOptions, list[BoostArea], float]:
    """Shrink the working buffer, crop size and boost areas by the prescale factor.

    Returns the inputs unchanged (factor 1.0) when prescaling is off or would not shrink.
    """
    height, width = rgba.shape[:2]
    factor = prescale_factor(options, width, height)
    if factor >= 1.0:
        return rgba, options, list(boost_areas), 1.0

    new_w = max(1, int(round(width * factor)))
    new_h = max(1, int(round(height * factor)))
    working = resize(rgba, new_w, new_h)
    working = np.asarray(working)
    if working.shape[:2] != (new_h, new_w) or working.ndim != 3 or working.shape[2] != 4:
        raise InternalInvariantError(
            f"Resize returned shape {working.shape}, expected ({new_h}, {new_w}, 4)"
        )
    working = np.ascontiguousarray(working, dtype=np.uint8)

    crop_width = options.crop_width
    crop_height = options.crop_height
    if crop_width is not None:
        crop_width = max(1, int(round(crop_width * factor)))
    if crop_height is not None:
        crop_height = max(1, int(round(crop_height * factor)))

    scaled_options = replace(options, crop_width=crop_width, crop_height=crop_height)
    scaled_boosts = [boost.scaled(factor) for boost in boost_areas]
    return working, scaled_options, scaled_boosts, factor


def analyze(
    rgba: np.ndarray,
    options: CropOptions,
    boost_areas: Sequence[BoostArea] = (),
    debug: bool = False,
    meta_out: Optional[dict] = None,
) -> CropResult:
    """Score every candidate on ``rgba`` with already-resolved options.

    The returned rectangle is in ``rgba``'s own coordinate space.
    """
    height, width = rgba.shape[:2]
    crops = generate_crops(width, height, options)
    if not crops:
        raise InvalidConfigurationError(
            f"No candidate crop of {options.crop_width}x{options.crop_height} fits a "
            f"{width}x{height} image (scales {options.min_scale}..{options.max_scale})"
        )

    features = extract_features(rgba, options, boost_areas)
    score_buffer = downsample(features, int(options.score_down_sample))
    score_crops(score_buffer, crops, boost_areas, options)
    best = select_best(crops)

    if debug:
        print(
            f"Analyzed {width}x{height}: {len(crops)} candidates | "
            f"downsampled {score_buffer.width}x{score_buffer.height}"
        )
        print(f"  Selected: {best.area.as_tuple()} score={best.score.as_dict()}")
    if meta_out is not None:
        meta_out["features"] = features
        meta_out["working_area"] = best.area

    return CropResult(
        area=best.area,
        score=best.score,
        candidates=len(crops),
        working_size=(width, height),
    )


def _clamp_to_image(rect: Rect, width: int, height: int) -> Rect:
    x = min(max(0, rect.x), width - 1)
    y = min(max(0, rect.y), height - 1)
    return Rect(x, y, max(1, min(rect.width, width - x)), max(1, min(rect.height, height - y)))


def smart_crop(
    image: ImageLike,
    options: CropOptions,
    boost_areas: Sequence[BoostArea] = (),
    *,
    resize: Optional[ResizeFn] = None,
    debug: bool = False,
    meta_out: Optional[dict] = None,
) -> CropResult:
    """Find the best crop of ``image`` for ``options``.

    Args:
        image: RGBA/RGB uint8 array (h, w, c) or a PIL image
        options: target size/aspect and heuristic tunables
        boost_areas: regions (original pixel coordinates) to favour
        resize: resize collaborator used for prescaling (default: OpenCV area resize)
        debug: print resolved options and the winning candidate
        meta_out: when a dict is given, receives the feature buffer, working-space
            winner and prescale factor

    Returns:
        CropResult with the rectangle in the original image's coordinates.
    """
    validate_options(options)
    rgba = as_rgba_array(image)
    boosts = _validate_boost_areas(boost_areas)
    height, width = rgba.shape[:2]

    resolved = resolve_options(options, width, height)
    if debug:
        print(
            f"Image {width}x{height} | crop {resolved.crop_width}x{resolved.crop_height} | "
            f"scales {resolved.min_scale:.3f}..{resolved.max_scale:.3f}"
        )

    working, working_options, working_boosts, factor = prescale_inputs(
        rgba, resolved, boosts, resize=resize or resize_rgba
    )
    if debug and factor < 1.0:
        print(f"  Prescaled by {factor:.4f} → {working.shape[1]}x{working.shape[0]}")

    result = analyze(working, working_options, working_boosts, debug=debug, meta_out=meta_out)
    result.prescale = factor
    if factor < 1.0:
        result.area = _clamp_to_image(result.area.scaled(1.0 / factor), width, height)
    if meta_out is not None:
        meta_out["prescale"] = factor
    return result


def crop_image_file(
    image_path: Path,
    options: CropOptions,
    boost_areas: Sequence[BoostArea] = (),
    **kwargs,
) -> CropResult:
    return smart_crop(load_rgba(image_path), options, boost_areas, **kwargs)


def crop_image_bytes(
    data: bytes,
    options: CropOptions,
    boost_areas: Sequence[BoostArea] = (),
    **kwargs,
) -> CropResult:
    return smart_crop(decode_rgba(data), options, boost_areas, **kwargs)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def write_cropped(
    rgba: np.ndarray,
    area: Rect,
    output_path: Path,
    out_size: Optional[tuple[int, int]] = None,
    quality: int = DEFAULT_JPEG_QUALITY,
) -> Path:
    """Cut ``area`` out of ``rgba``, optionally resize to ``out_size`` and write it."""
    cropped = np.ascontiguousarray(rgba[area.y : area.bottom, area.x : area.right])
    if out_size is not None:
        out_w, out_h = out_size
        interp = cv2.INTER_AREA if out_w < area.width else cv2.INTER_LANCZOS4
        cropped = cv2.resize(cropped, (int(out_w), int(out_h)), interpolation=interp)
    bgr = cv2.cvtColor(cropped, cv2.COLOR_RGBA2BGR)
    if not cv2.imwrite(str(output_path), bgr, [cv2.IMWRITE_JPEG_QUALITY, int(quality)]):
        raise OSError(f"Cannot write {output_path}")
    return output_path


def write_debug_overlay(meta: dict, output_path: Path, result: Optional[CropResult] = None) -> Path:
    """Write the feature planes with the winning crop drawn on top.

    ``meta`` is the dict filled by ``smart_crop(..., meta_out=meta)``. A JSON
    sidecar (``<output>.json``) is written when ``result`` is given.
    """
    features = meta["features"]
    area: Rect = meta["working_area"]

    rgb = features.as_rgba()[..., :3].copy()
    # Boost shows up as a grey wash over the other planes.
    boost = (features.boost.astype(np.uint16) // 3).astype(np.uint8)
    rgb = np.clip(rgb.astype(np.uint16) + boost[..., None], 0, 255).astype(np.uint8)
    debug_img = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)

    cv2.rectangle(debug_img, (area.x, area.y), (area.right - 1, area.bottom - 1), (255, 0, 255), 2)
    for frac in (1 / 3, 2 / 3):
        gx = area.x + int(area.width * frac)
        gy = area.y + int(area.height * frac)
        cv2.line(debug_img, (gx, area.y), (gx, area.bottom - 1), (255, 255, 0), 1)
        cv2.line(debug_img, (area.x, gy), (area.right - 1, gy), (255, 255, 0), 1)
    cv2.imwrite(str(output_path), debug_img)

    if result is not None:
        sidecar = output_path.parent / f"{output_path.name}.json"
        payload = result.as_dict()
        payload["working_crop_xywh"] = list(area.as_tuple())
        sidecar.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return output_path
