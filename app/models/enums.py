"""
Enumerations for the camera trap identification system.

These enums are the closed vocabularies the vision model is asked to
use. Anything the model returns outside them is coerced to the
documented fallback by the schema normalizer.
"""

from enum import Enum


class SpeciesCategory(str, Enum):
    """Broad class of a registry species."""
    MAMMAL = "mammal"
    BIRD = "bird"
    REPTILE = "reptile"


class ImageType(str, Enum):
    """Lighting/capture mode of a camera trap frame."""
    DAYLIGHT = "daylight"
    INFRARED = "infrared"
    FLASH = "flash"
    DUSK_DAWN = "dusk_dawn"


class ImageQuality(str, Enum):
    """Assessed quality of input image."""
    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"


class ApproximateSize(str, Enum):
    """Rough body size of the animal in frame."""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    UNKNOWN = "unknown"


class CoatPattern(str, Enum):
    """Visible coat or skin pattern."""
    SPOTS = "spots"
    STRIPES = "stripes"
    SOLID = "solid"
    UNCLEAR = "unclear"
    NONE = "none"


class TimeOfDay(str, Enum):
    """Time of day as judged from the frame."""
    DAY = "day"
    NIGHT = "night"
    DAWN = "dawn"
    DUSK = "dusk"
    UNKNOWN = "unknown"


class ConfidenceLevel(str, Enum):
    """Human-readable confidence levels for the review UI."""
    HIGH = "high"                # >= 0.85
    MODERATE = "moderate"        # >= 0.65
    LOW = "low"                  # >= 0.40
    VERY_LOW = "very_low"        # < 0.40

    @classmethod
    def from_score(cls, score: float) -> "ConfidenceLevel":
        """Convert a numeric confidence score to a level."""
        if score >= 0.85:
            return cls.HIGH
        elif score >= 0.65:
            return cls.MODERATE
        elif score >= 0.40:
            return cls.LOW
        else:
            return cls.VERY_LOW
