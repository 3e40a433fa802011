"""cropscout: content-aware image cropping."""

from cropscout.cropper import crop_image_bytes, crop_image_file, smart_crop
from cropscout.models import (
    BoostArea,
    CropError,
    CropResult,
    InternalInvariantError,
    InvalidConfigurationError,
    InvalidInputError,
    Rect,
    Score,
)
from cropscout.options import CropOptions

__version__ = "1.0.0"

__all__ = [
    "BoostArea",
    "CropError",
    "CropOptions",
    "CropResult",
    "InternalInvariantError",
    "InvalidConfigurationError",
    "InvalidInputError",
    "Rect",
    "Score",
    "crop_image_bytes",
    "crop_image_file",
    "smart_crop",
    "__version__",
]
