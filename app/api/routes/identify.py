"""
Identification API endpoints.

- POST /identify: run the two-stage pipeline on one image
- GET /identify/species: the closed species list the pipeline reports from
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.dependencies import get_identification_service, get_registry
from app.core.exceptions import IdentificationError, InputError
from app.models.schemas import (
    ErrorResponse,
    IdentifyRequest,
    IdentifyResponse,
    SpeciesListResponse,
    SpeciesOut,
)
from app.ml.taxonomy_registry import TaxonomyRegistry
from app.services.identification_service import IdentificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/identify", tags=["Identification"])


def error_response(exc: IdentificationError) -> JSONResponse:
    """Render an IdentificationError as the JSON error envelope."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


@router.post(
    "",
    response_model=IdentifyResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing or malformed image"},
        429: {"model": ErrorResponse, "description": "Model rate limit reached after retries"},
        500: {"model": ErrorResponse, "description": "Configuration or upstream model error"},
    },
    summary="Identify species in a camera trap image",
    description="""
    Two-stage identification pipeline.

    1. Image-quality / animal-presence gate
    2. Species identification, resolved against the species list, with
       confidence calibrated for night and partial views

    Results with `needs_review: true` must be confirmed by a person.

    **Image formats:** data URL (`data:image/jpeg|jpg|png|webp;base64,...`)
    or raw base64 (treated as JPEG).
    """,
)
async def identify_image(
    request: IdentifyRequest,
    service: IdentificationService = Depends(get_identification_service),
):
    """Identify the species in a camera trap image."""
    try:
        result = await service.identify(request.image)
        return IdentifyResponse.from_result(result)

    except InputError as e:
        logger.warning(f"Rejected identification request: {e}")
        return error_response(e)
    except IdentificationError as e:
        logger.error(f"Identification failed ({type(e).__name__}): {e}")
        return error_response(e)


@router.get(
    "/species",
    response_model=SpeciesListResponse,
    summary="List identifiable species",
)
async def list_species(
    registry: TaxonomyRegistry = Depends(get_registry),
) -> SpeciesListResponse:
    """Get the species the pipeline may report."""
    return SpeciesListResponse(
        count=len(registry),
        species=[SpeciesOut(**record.to_dict()) for record in registry],
    )
