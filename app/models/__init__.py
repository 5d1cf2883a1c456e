# Data models module. Schemas are imported from app.models.schemas directly;
# importing them here would make app.ml and app.models import each other.
from app.models.enums import (
    SpeciesCategory,
    ImageType,
    ImageQuality,
    ApproximateSize,
    CoatPattern,
    TimeOfDay,
    ConfidenceLevel,
)

__all__ = [
    "SpeciesCategory",
    "ImageType",
    "ImageQuality",
    "ApproximateSize",
    "CoatPattern",
    "TimeOfDay",
    "ConfidenceLevel",
]
