"""
FastAPI dependency injection.

Provides dependency injection for services and components,
enabling easy testing and component swapping (see
app.dependency_overrides in the test suite).
"""

from functools import lru_cache

from app.core.config import get_settings
from app.ml.model_gateway import ModelGateway
from app.ml.taxonomy_registry import TaxonomyRegistry, get_taxonomy_registry
from app.services.identification_service import IdentificationService


def get_registry() -> TaxonomyRegistry:
    """Get the shared, read-only taxonomy registry."""
    return get_taxonomy_registry()


@lru_cache()
def get_model_gateway() -> ModelGateway:
    """Get cached model gateway."""
    return ModelGateway.from_settings(settings=get_settings())


@lru_cache()
def get_identification_service() -> IdentificationService:
    """Get cached identification service."""
    return IdentificationService.from_settings(
        gateway=get_model_gateway(),
        settings=get_settings(),
    )


__all__ = [
    "get_registry",
    "get_model_gateway",
    "get_identification_service",
]
