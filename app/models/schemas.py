"""
Pydantic schemas for API request/response validation.

These schemas define the contract between the API and the upload/review
UI, ensuring type safety and automatic documentation.
"""

from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field

from app.ml.base import IdentificationResult
from app.models.enums import ConfidenceLevel


# === Request Schemas ===

class IdentifyRequest(BaseModel):
    """
    Request schema for species identification.

    The image is validated by the pipeline rather than here, so that a
    missing or malformed image produces the service's own 400 envelope.
    """
    image: Optional[Any] = Field(
        default=None,
        description="Data URL (data:image/<type>;base64,<data>) or raw base64 string",
    )


# === Stage 1 Schemas ===

class VisibleFeaturesOut(BaseModel):
    """What Stage 1 could see of the animal."""
    body_visible: bool
    face_visible: bool
    eye_shine: bool
    approximate_size: str
    pattern: str
    body_percentage_visible: Union[int, str]


class StageOneOut(BaseModel):
    """Image-quality / animal-presence assessment."""
    animal_present: bool
    animal_count: int = Field(..., ge=0)
    image_type: str
    image_quality: str
    visible_features: VisibleFeaturesOut
    proceed_to_identification: bool
    stage1_confidence: float = Field(..., ge=0.0, le=1.0)
    rejection_reason: str
    time_of_day: str
    date_time: Optional[str] = None


# === Identification Schemas ===

class AlternativeOut(BaseModel):
    """Alternative species the model could not rule out."""
    species_id: str
    common_name: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class OtherAnimalOut(BaseModel):
    """A further animal in frame besides the primary detection."""
    species_id: str
    common_name: Optional[str] = None
    count: int = Field(..., ge=1)
    confidence: float = Field(..., ge=0.0, le=1.0)


class IdentifyResponse(BaseModel):
    """
    Identification envelope.

    Early exits (no animal, insufficient quality) use the same envelope
    with species set to null.
    """
    success: bool = True
    stage1: StageOneOut
    species: Optional[str] = Field(
        default=None,
        description="Registry species id, or the model's raw token when species_resolved is false",
    )
    species_resolved: bool = True
    common_name: Optional[str] = None
    scientific_name: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    confidence_level: str
    reasoning: str = ""
    identifying_features: List[str] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)
    behavior: str = ""
    alternatives: List[AlternativeOut] = Field(default_factory=list)
    other_animals: List[OtherAnimalOut] = Field(default_factory=list)
    needs_review: bool
    review_reason: Optional[str] = None

    @classmethod
    def from_result(cls, result: IdentificationResult) -> "IdentifyResponse":
        species = result.species
        return cls(
            stage1=StageOneOut(**result.stage1.to_dict()),
            species=species.id if species else result.raw_species_id,
            species_resolved=result.species_resolved,
            common_name=species.common_name if species else None,
            scientific_name=species.scientific_name if species else None,
            confidence=result.confidence,
            confidence_level=ConfidenceLevel.from_score(result.confidence).value,
            reasoning=result.reasoning,
            identifying_features=result.identifying_features,
            count=result.count,
            behavior=result.behavior,
            alternatives=[
                AlternativeOut(
                    species_id=alt.species.id,
                    common_name=alt.species.common_name,
                    confidence=alt.confidence,
                )
                for alt in result.alternatives
            ],
            other_animals=[
                OtherAnimalOut(
                    species_id=animal.species_id,
                    common_name=animal.species.common_name if animal.species else None,
                    count=animal.count,
                    confidence=animal.confidence,
                )
                for animal in result.other_animals
            ],
            needs_review=result.needs_review,
            review_reason=result.review_reason,
        )


# === Catalogue Schemas ===

class SpeciesOut(BaseModel):
    """Registry species entry."""
    id: str
    common_name: str
    scientific_name: str
    category: str


class SpeciesListResponse(BaseModel):
    """The full taxonomy registry."""
    count: int
    species: List[SpeciesOut]


# === Error Schemas ===

class ErrorResponse(BaseModel):
    """Error envelope for failed requests."""
    success: bool = False
    error: str
    retryable: Optional[bool] = None
    needs_review: Optional[bool] = None
