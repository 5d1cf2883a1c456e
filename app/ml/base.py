"""
Data structures passed between pipeline components.

Provides:
- ImagePayload: decoded image bytes plus MIME type
- StageOneAssessment: image-quality / animal-presence gate output
- StageTwoIdentification: species identification output
- IdentificationResult: terminal artifact returned to the caller

Stage outputs are produced by the schema normalizer and are trusted
unconditionally downstream: every field is populated and within bounds.
Components that "modify" a stage output return a copy via
dataclasses.replace rather than mutating it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from app.models.enums import (
    ApproximateSize,
    CoatPattern,
    ImageQuality,
    ImageType,
    TimeOfDay,
)
from app.ml.taxonomy_registry import SpeciesRecord


@dataclass(frozen=True)
class ImagePayload:
    """Decoded image ready to attach to a model call."""
    data: bytes
    mime_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class VisibleFeatures:
    """What Stage 1 could see of the animal."""
    body_visible: bool = False
    face_visible: bool = False
    eye_shine: bool = False
    approximate_size: ApproximateSize = ApproximateSize.UNKNOWN
    pattern: CoatPattern = CoatPattern.UNCLEAR
    body_percentage_visible: Union[int, str] = "unknown"  # 0-100 or "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "body_visible": self.body_visible,
            "face_visible": self.face_visible,
            "eye_shine": self.eye_shine,
            "approximate_size": self.approximate_size.value,
            "pattern": self.pattern.value,
            "body_percentage_visible": self.body_percentage_visible,
        }


@dataclass(frozen=True)
class StageOneAssessment:
    """
    Image-quality and animal-presence assessment.

    Invariant: proceed_to_identification implies animal_present.
    """
    animal_present: bool = False
    animal_count: int = 0
    image_type: ImageType = ImageType.DUSK_DAWN
    image_quality: ImageQuality = ImageQuality.POOR
    visible_features: VisibleFeatures = field(default_factory=VisibleFeatures)
    proceed_to_identification: bool = False
    stage1_confidence: float = 0.0
    rejection_reason: str = ""
    time_of_day: TimeOfDay = TimeOfDay.UNKNOWN
    date_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "animal_present": self.animal_present,
            "animal_count": self.animal_count,
            "image_type": self.image_type.value,
            "image_quality": self.image_quality.value,
            "visible_features": self.visible_features.to_dict(),
            "proceed_to_identification": self.proceed_to_identification,
            "stage1_confidence": self.stage1_confidence,
            "rejection_reason": self.rejection_reason,
            "time_of_day": self.time_of_day.value,
            "date_time": self.date_time,
        }


@dataclass(frozen=True)
class AlternativeSpecies:
    """A runner-up candidate named by the model."""
    species_id: str
    confidence: float


@dataclass(frozen=True)
class DetectedAnimal:
    """A further animal in frame besides the primary detection."""
    species_id: str
    count: int = 1
    confidence: float = 0.0
    species: Optional[SpeciesRecord] = None  # set once resolved


@dataclass(frozen=True)
class StageTwoIdentification:
    """
    Species identification for the primary animal.

    species_id is the model's token until the species resolver has run;
    afterwards it is either a canonical registry id (resolved=True) or
    the untouched token kept for audit (resolved=False, needs_review=True).
    """
    species_id: Optional[str] = None
    confidence: float = 0.0
    reasoning: str = ""
    identifying_features: List[str] = field(default_factory=list)
    alternative_species: List[AlternativeSpecies] = field(default_factory=list)
    needs_review: bool = False
    review_reason: Optional[str] = None
    count: int = 1
    common_name: Optional[str] = None
    scientific_name: Optional[str] = None
    behavior: str = ""
    other_animals: List[DetectedAnimal] = field(default_factory=list)
    resolved: bool = False

    @property
    def top_alternative(self) -> Optional[AlternativeSpecies]:
        return self.alternative_species[0] if self.alternative_species else None


@dataclass(frozen=True)
class ResolvedAlternative:
    """Registry-resolved alternative species with its confidence."""
    species: SpeciesRecord
    confidence: float


@dataclass(frozen=True)
class IdentificationResult:
    """Terminal artifact of one pipeline run."""
    stage1: StageOneAssessment
    species: Optional[SpeciesRecord]
    confidence: float
    needs_review: bool
    review_reason: Optional[str]
    alternatives: List[ResolvedAlternative] = field(default_factory=list)
    reasoning: str = ""
    identifying_features: List[str] = field(default_factory=list)
    count: int = 0
    behavior: str = ""
    other_animals: List[DetectedAnimal] = field(default_factory=list)
    raw_species_id: Optional[str] = None  # model token when it did not resolve

    @property
    def species_resolved(self) -> bool:
        return self.species is not None or self.raw_species_id is None
