# Services module
from app.services.identification_service import IdentificationService, PipelineState

__all__ = [
    "IdentificationService",
    "PipelineState",
]
