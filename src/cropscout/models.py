"""Data types shared by the cropping pipeline."""

from dataclasses import dataclass
from typing import Optional

import numpy as np

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CropError(Exception):
    """Base class for every error raised by cropscout."""


class InvalidConfigurationError(CropError, ValueError):
    """Options are invalid or leave no candidate crop to score."""


class InvalidInputError(CropError, ValueError):
    """The image (or its decode/resize) cannot be used for analysis."""


class InternalInvariantError(CropError, RuntimeError):
    """A pixel or feature buffer broke an internal shape/layout guarantee."""


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def contains(self, other: "Rect") -> bool:
        """True when ``other`` lies entirely inside this rectangle (edges inclusive)."""
        return (
            self.x <= other.x
            and other.right <= self.right
            and self.y <= other.y
            and other.bottom <= self.bottom
        )

    def intersects(self, other: "Rect") -> bool:
        return (
            other.x < self.right
            and self.x < other.right
            and other.y < self.bottom
            and self.y < other.bottom
        )

    def scaled(self, factor: float) -> "Rect":
        return Rect(
            int(round(self.x * factor)),
            int(round(self.y * factor)),
            int(round(self.width * factor)),
            int(round(self.height * factor)),
        )

    def iou(self, other: "Rect") -> float:
        """Intersection-over-union of two rectangles."""
        inter_w = max(0, min(self.right, other.right) - max(self.x, other.x))
        inter_h = max(0, min(self.bottom, other.bottom) - max(self.y, other.y))
        inter = inter_w * inter_h
        union = self.area + other.area - inter
        if union <= 0:
            return 0.0
        return inter / union

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class BoostArea:
    """A caller-supplied region to favour; cutting through it is penalised."""

    area: Rect
    weight: float = 1.0

    def scaled(self, factor: float) -> "BoostArea":
        return BoostArea(self.area.scaled(factor), self.weight)


# ---------------------------------------------------------------------------
# Feature buffer
# ---------------------------------------------------------------------------


@dataclass
class FeatureBuffer:
    """Four parallel uint8 planes aligned to the analysed image.

    skin (R), detail (G), saturation (B) and boost (A), each ``(height, width)``.
    """

    skin: np.ndarray
    detail: np.ndarray
    saturation: np.ndarray
    boost: np.ndarray

    def __post_init__(self) -> None:
        shapes = {
            plane.shape
            for plane in (self.skin, self.detail, self.saturation, self.boost)
        }
        if len(shapes) != 1:
            raise InternalInvariantError(f"Feature planes disagree in shape: {sorted(shapes)}")
        if self.skin.ndim != 2:
            raise InternalInvariantError(f"Feature planes must be 2-D, got shape {self.skin.shape}")

    @property
    def height(self) -> int:
        return int(self.skin.shape[0])

    @property
    def width(self) -> int:
        return int(self.skin.shape[1])

    def as_rgba(self) -> np.ndarray:
        return np.dstack((self.skin, self.detail, self.saturation, self.boost))


# ---------------------------------------------------------------------------
# Scores and results
# ---------------------------------------------------------------------------


@dataclass
class Score:
    detail: float = 0.0
    skin: float = 0.0
    saturation: float = 0.0
    boost: float = 0.0
    penalty: float = 0.0
    total: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {
            "detail": round(self.detail, 6),
            "skin": round(self.skin, 6),
            "saturation": round(self.saturation, 6),
            "boost": round(self.boost, 6),
            "penalty": round(self.penalty, 6),
            "total": round(self.total, 8),
        }


@dataclass
class Crop:
    area: Rect
    score: Optional[Score] = None


@dataclass
class CropResult:
    area: Rect
    score: Score
    prescale: float = 1.0
    candidates: int = 0
    working_size: tuple[int, int] = (0, 0)

    def as_dict(self) -> dict:
        return {
            "crop_xywh": list(self.area.as_tuple()),
            "score": self.score.as_dict(),
            "prescale": round(self.prescale, 6),
            "candidates": self.candidates,
            "working_size": {"width": self.working_size[0], "height": self.working_size[1]},
        }
