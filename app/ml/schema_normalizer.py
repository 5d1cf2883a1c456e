"""
Schema Normalizer

Reconciles whatever the response extractor recovered into the canonical
stage structures. This is the single place invalid model output is
repaired; nothing downstream re-validates these fields.

Both normalize functions are total: any input, including None, a list,
or a deeply malformed dict, yields a fully populated structure.
- Missing fields get defaults
- Numbers are clipped to their bounds
- Unknown enum values fall back to a safe member

Stage 2 output arrives in several shapes across model versions. They
are tried in a fixed order and all reduced to one representation:
1. Flat object: {"species_id": ..., "confidence": ..., "count": ...}
2. "animals" list of objects with varying key names
   (count/quantity/qty/q, species_id/species/id/common_name)
3. "animals" list of tuples: [species, quantity, confidence]
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar, Union

from app.models.enums import (
    ApproximateSize,
    CoatPattern,
    ImageQuality,
    ImageType,
    TimeOfDay,
)
from app.ml.base import (
    AlternativeSpecies,
    DetectedAnimal,
    StageOneAssessment,
    StageTwoIdentification,
    VisibleFeatures,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

TRUE_STRINGS = {"true", "yes", "y", "1"}
FALSE_STRINGS = {"false", "no", "n", "0", ""}

VERBAL_CONFIDENCE = {
    "very high": 0.95,
    "high": 0.85,
    "medium": 0.6,
    "moderate": 0.6,
    "low": 0.3,
    "very low": 0.1,
}

NULL_SPECIES_TOKENS = {"", "null", "none", "unknown", "n/a", "na", "unidentified"}

SPECIES_KEYS = ("species_id", "species", "id", "common_name", "name")
COUNT_KEYS = ("count", "quantity", "qty", "q")
CONFIDENCE_KEYS = ("confidence", "conf", "c", "score")

IMAGE_TYPE_ALIASES = {
    "day": ImageType.DAYLIGHT,
    "daytime": ImageType.DAYLIGHT,
    "color": ImageType.DAYLIGHT,
    "colour": ImageType.DAYLIGHT,
    "ir": ImageType.INFRARED,
    "night": ImageType.INFRARED,
    "night_vision": ImageType.INFRARED,
    "nightvision": ImageType.INFRARED,
    "thermal": ImageType.INFRARED,
    "white_flash": ImageType.FLASH,
    "dusk": ImageType.DUSK_DAWN,
    "dawn": ImageType.DUSK_DAWN,
    "twilight": ImageType.DUSK_DAWN,
    "dusk_or_dawn": ImageType.DUSK_DAWN,
}

IMAGE_QUALITY_ALIASES = {
    "excellent": ImageQuality.GOOD,
    "clear": ImageQuality.GOOD,
    "high": ImageQuality.GOOD,
    "fair": ImageQuality.MODERATE,
    "acceptable": ImageQuality.MODERATE,
    "medium": ImageQuality.MODERATE,
    "partial": ImageQuality.MODERATE,
    "low": ImageQuality.POOR,
    "bad": ImageQuality.POOR,
    "motion_blur": ImageQuality.POOR,
    "unusable": ImageQuality.POOR,
}


# =============================================================================
# Scalar coercion helpers
# =============================================================================

def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _first_present(data: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def coerce_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0 if math.isfinite(value) else default
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return default


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().rstrip("%").strip()
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def coerce_confidence(value: Any, default: float = 0.0) -> float:
    """Any confidence-like value clipped into [0, 1]; words map to fixed levels."""
    if isinstance(value, str) and value.strip().lower() in VERBAL_CONFIDENCE:
        return VERBAL_CONFIDENCE[value.strip().lower()]
    number = _as_float(value)
    if number is None:
        return default
    return clamp(number, 0.0, 1.0)


def coerce_int(value: Any, default: int, minimum: int, maximum: Optional[int] = None) -> int:
    number = _as_float(value)
    if number is None:
        return default
    result = max(minimum, int(round(number)))
    if maximum is not None:
        result = min(maximum, result)
    return result


def coerce_enum(value: Any, enum_cls: Type[E], default: E, aliases: Optional[Dict[str, E]] = None) -> E:
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return default
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return enum_cls(key)
    except ValueError:
        pass
    if aliases and key in aliases:
        return aliases[key]
    return default


def coerce_text(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value.strip()
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return default
    return str(value)


def coerce_optional_text(value: Any) -> Optional[str]:
    text = coerce_text(value)
    return text or None


def coerce_species_token(value: Any) -> Optional[str]:
    """A species token as the model wrote it, or None for 'nothing identified'."""
    if not isinstance(value, str):
        return None
    token = value.strip()
    if token.lower() in NULL_SPECIES_TOKENS:
        return None
    return token


def coerce_body_percentage(value: Any) -> Union[int, str]:
    number = _as_float(value)
    if number is None:
        return "unknown"
    return int(round(clamp(number, 0.0, 100.0)))


def coerce_text_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        return []
    items = []
    for item in value:
        text = coerce_text(item)
        if text:
            items.append(text)
    return items


# =============================================================================
# Stage 1
# =============================================================================

def _normalize_visible_features(value: Any) -> VisibleFeatures:
    data = _as_mapping(value)
    return VisibleFeatures(
        body_visible=coerce_bool(data.get("body_visible")),
        face_visible=coerce_bool(data.get("face_visible")),
        eye_shine=coerce_bool(data.get("eye_shine")),
        approximate_size=coerce_enum(
            data.get("approximate_size"), ApproximateSize, ApproximateSize.UNKNOWN
        ),
        pattern=coerce_enum(data.get("pattern"), CoatPattern, CoatPattern.UNCLEAR),
        body_percentage_visible=coerce_body_percentage(data.get("body_percentage_visible")),
    )


def normalize_stage1(obj: Any) -> StageOneAssessment:
    """
    Normalize an extracted Stage 1 object.

    Never raises. Enforces proceed_to_identification => animal_present.
    """
    data = _as_mapping(obj)

    animal_present = coerce_bool(data.get("animal_present"))
    animal_count = coerce_int(
        _first_present(data, ("animal_count",) + COUNT_KEYS), default=0, minimum=0
    )
    proceed = coerce_bool(data.get("proceed_to_identification")) and animal_present

    return StageOneAssessment(
        animal_present=animal_present,
        animal_count=animal_count,
        image_type=coerce_enum(
            data.get("image_type"), ImageType, ImageType.DUSK_DAWN, IMAGE_TYPE_ALIASES
        ),
        image_quality=coerce_enum(
            data.get("image_quality"), ImageQuality, ImageQuality.POOR, IMAGE_QUALITY_ALIASES
        ),
        visible_features=_normalize_visible_features(data.get("visible_features")),
        proceed_to_identification=proceed,
        stage1_confidence=coerce_confidence(
            _first_present(data, ("stage1_confidence", "confidence"))
        ),
        rejection_reason=coerce_text(data.get("rejection_reason")),
        time_of_day=coerce_enum(data.get("time_of_day"), TimeOfDay, TimeOfDay.UNKNOWN),
        date_time=coerce_optional_text(data.get("date_time")),
    )


# =============================================================================
# Stage 2
# =============================================================================

@dataclass
class _AnimalEntry:
    species_id: Optional[str]
    count: int
    confidence: float


def _parse_animal_entry(entry: Any) -> Optional[_AnimalEntry]:
    """One element of an "animals" list, in object or tuple form."""
    if isinstance(entry, Mapping):
        species = _first_present(entry, SPECIES_KEYS)
        count = _first_present(entry, COUNT_KEYS)
        confidence = _first_present(entry, CONFIDENCE_KEYS)
    elif isinstance(entry, (list, tuple)) and entry:
        species = entry[0]
        count = entry[1] if len(entry) > 1 else None
        confidence = entry[2] if len(entry) > 2 else None
    else:
        return None

    token = coerce_species_token(species)
    if token is None:
        return None
    return _AnimalEntry(
        species_id=token,
        count=coerce_int(count, default=1, minimum=1),
        confidence=coerce_confidence(confidence),
    )


def _parse_animals(value: Any) -> List[_AnimalEntry]:
    if not isinstance(value, (list, tuple)):
        return []
    entries = []
    for item in value:
        parsed = _parse_animal_entry(item)
        if parsed is not None:
            entries.append(parsed)
    return entries


def _normalize_alternatives(value: Any, primary: Optional[str]) -> List[AlternativeSpecies]:
    alternatives = []
    for entry in value if isinstance(value, (list, tuple)) else []:
        if isinstance(entry, str):
            entry = [entry]
        if isinstance(entry, Mapping):
            token = coerce_species_token(_first_present(entry, SPECIES_KEYS))
            confidence = coerce_confidence(_first_present(entry, CONFIDENCE_KEYS))
        elif isinstance(entry, (list, tuple)) and entry:
            token = coerce_species_token(entry[0])
            confidence = coerce_confidence(entry[1] if len(entry) > 1 else None)
        else:
            continue
        if token is None:
            continue
        if primary is not None and token.lower() == primary.lower():
            continue
        alternatives.append(AlternativeSpecies(species_id=token, confidence=confidence))

    # stable sort keeps the model's order among equal confidences
    alternatives.sort(key=lambda alt: alt.confidence, reverse=True)
    return alternatives


def normalize_stage2(obj: Any) -> StageTwoIdentification:
    """
    Normalize an extracted Stage 2 object.

    Never raises. The species token is left as the model wrote it (trimmed);
    mapping it to the registry is the species resolver's job.
    """
    data = _as_mapping(obj)
    if not data and isinstance(obj, (list, tuple)):
        # a bare list of animals with no envelope
        data = {"animals": obj}

    species_id = coerce_species_token(_first_present(data, SPECIES_KEYS[:3]))
    confidence = coerce_confidence(_first_present(data, CONFIDENCE_KEYS))
    count = coerce_int(_first_present(data, COUNT_KEYS), default=1, minimum=1)

    other_animals: List[DetectedAnimal] = [
        DetectedAnimal(species_id=a.species_id, count=a.count, confidence=a.confidence)
        for a in _parse_animals(data.get("other_animals"))
    ]

    animals = _parse_animals(data.get("animals"))
    if species_id is None and animals:
        # max() keeps the first of equal confidences
        primary = max(animals, key=lambda a: a.confidence)
        species_id, confidence, count = primary.species_id, primary.confidence, primary.count
        other_animals = [
            DetectedAnimal(species_id=a.species_id, count=a.count, confidence=a.confidence)
            for a in animals if a is not primary
        ] + other_animals
        logger.debug(f"Stage 2 response used the animals-list shape ({len(animals)} entries)")

    needs_review = coerce_bool(data.get("needs_review"))
    review_reason = coerce_optional_text(data.get("review_reason"))

    return StageTwoIdentification(
        species_id=species_id,
        confidence=confidence,
        reasoning=coerce_text(_first_present(data, ("reasoning", "reason", "description"))),
        identifying_features=coerce_text_list(data.get("identifying_features")),
        alternative_species=_normalize_alternatives(
            _first_present(data, ("alternative_species", "alternatives")), species_id
        ),
        needs_review=needs_review,
        review_reason=review_reason if needs_review else None,
        count=count,
        common_name=coerce_optional_text(data.get("common_name")),
        scientific_name=coerce_optional_text(data.get("scientific_name")),
        behavior=coerce_text(_first_present(data, ("behavior", "behaviour"))),
        other_animals=other_animals,
    )
