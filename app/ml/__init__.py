# ML module initialization
from app.ml.taxonomy_registry import SpeciesRecord, TaxonomyRegistry, get_taxonomy_registry
from app.ml.image_normalizer import ImageNormalizer
from app.ml.prompts import PromptBuilder
from app.ml.model_gateway import ModelGateway, VisionModelClient, GeminiVisionClient
from app.ml.species_resolver import SpeciesResolver
from app.ml.calibration import CalibrationPolicy, ConfidenceCalibrator

__all__ = [
    "SpeciesRecord",
    "TaxonomyRegistry",
    "get_taxonomy_registry",
    "ImageNormalizer",
    "PromptBuilder",
    "ModelGateway",
    "VisionModelClient",
    "GeminiVisionClient",
    "SpeciesResolver",
    "CalibrationPolicy",
    "ConfidenceCalibrator",
]
