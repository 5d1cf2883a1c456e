"""
Identification Orchestration Service

Runs the two-stage camera trap identification pipeline:
1. Image normalization
2. Stage 1: image-quality / animal-presence gate
3. Stage 2: species identification grounded in Stage 1
4. Species resolution against the taxonomy registry
5. Confidence calibration and review policy

State machine (one run per request, no state revisited):

    START ──> STAGE1 ──┬──> STAGE1_REJECTED ──> DONE
                       └──> STAGE2 ───────────> DONE

Design Principles:
- Stage 1 must finish before Stage 2: Stage 2's prompt embeds it
- No state is shared between requests except the read-only registry
- After Stage 1, failures degrade to a needs_review result; only
  upstream model errors abort the request
- Retries happen in the model gateway only, never here
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from app.core.config import Settings, get_settings
from app.core.exceptions import UpstreamError
from app.ml.base import (
    IdentificationResult,
    ImagePayload,
    ResolvedAlternative,
    StageOneAssessment,
    StageTwoIdentification,
)
from app.ml.calibration import CalibrationPolicy, ConfidenceCalibrator
from app.ml.image_normalizer import ImageNormalizer
from app.ml.model_gateway import ModelGateway
from app.ml.prompts import PromptBuilder
from app.ml.response_extractor import extract
from app.ml.schema_normalizer import normalize_stage1, normalize_stage2
from app.ml.species_resolver import SpeciesResolver
from app.ml.taxonomy_registry import TaxonomyRegistry, get_taxonomy_registry

logger = logging.getLogger(__name__)

INSUFFICIENT_QUALITY_REASON = "Image quality insufficient for identification"
STAGE1_UNPARSEABLE_REASON = "Image assessment could not be read from the model response"
STAGE2_UNPARSEABLE_REASON = "Species identification could not be read from the model response"
STAGE2_FAILED_REASON = "Species identification failed; manual identification required"
NO_SPECIES_REASON = "Model did not name a species"


class PipelineState(str, Enum):
    """States of the identification state machine."""
    START = "start"
    STAGE1 = "stage1"
    STAGE1_REJECTED = "stage1_rejected"
    STAGE2 = "stage2"
    DONE = "done"


@dataclass
class PipelineMetrics:
    """Timing for one pipeline run."""
    total_time_ms: float = 0.0
    stage1_time_ms: float = 0.0
    stage2_time_ms: float = 0.0


@dataclass
class PipelineRun:
    """Per-request bookkeeping; discarded when the request completes."""
    state: PipelineState = PipelineState.START
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.START])
    metrics: PipelineMetrics = field(default_factory=PipelineMetrics)

    def advance(self, state: PipelineState) -> None:
        logger.debug(f"Pipeline {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


class IdentificationService:
    """
    Main orchestration service for camera trap identification.

    Usage:
        service = IdentificationService(gateway=ModelGateway(client))
        result = await service.identify("data:image/jpeg;base64,...")

    Components can be injected for testing or replaced with
    alternative implementations.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        registry: Optional[TaxonomyRegistry] = None,
        normalizer: Optional[ImageNormalizer] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        resolver: Optional[SpeciesResolver] = None,
        calibrator: Optional[ConfidenceCalibrator] = None,
    ):
        self.registry = registry or get_taxonomy_registry()
        self.gateway = gateway
        self.normalizer = normalizer or ImageNormalizer()
        self.prompt_builder = prompt_builder or PromptBuilder(self.registry)
        self.resolver = resolver or SpeciesResolver(self.registry)
        self.calibrator = calibrator or ConfidenceCalibrator()

    @classmethod
    def from_settings(
        cls,
        gateway: Optional[ModelGateway] = None,
        settings: Optional[Settings] = None,
    ) -> "IdentificationService":
        settings = settings or get_settings()
        registry = get_taxonomy_registry()
        return cls(
            gateway=gateway or ModelGateway.from_settings(settings=settings),
            registry=registry,
            normalizer=ImageNormalizer(max_size_mb=settings.max_image_size_mb),
            calibrator=ConfidenceCalibrator(CalibrationPolicy.from_settings(settings)),
        )

    async def identify(self, image: Any) -> IdentificationResult:
        """
        Run the full pipeline on one image.

        Raises:
            InputError: the image could not be normalized (no model call made)
            ConfigError: model credentials missing
            UpstreamError: the model failed after the gateway's retries
        """
        run = PipelineRun()
        start_time = time.perf_counter()

        # START
        payload = self.normalizer.normalize(image)

        # STAGE1
        run.advance(PipelineState.STAGE1)
        stage_start = time.perf_counter()
        stage1, stage1_parsed = await self._run_stage1(payload)
        run.metrics.stage1_time_ms = (time.perf_counter() - stage_start) * 1000

        early_result = self._stage1_decision(stage1, stage1_parsed)
        if early_result is not None:
            run.advance(PipelineState.STAGE1_REJECTED)
            result = early_result
        else:
            # STAGE2
            run.advance(PipelineState.STAGE2)
            stage_start = time.perf_counter()
            result = await self._run_stage2(payload, stage1)
            run.metrics.stage2_time_ms = (time.perf_counter() - stage_start) * 1000

        run.advance(PipelineState.DONE)
        run.metrics.total_time_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            f"Identification complete in {run.metrics.total_time_ms:.0f}ms: "
            f"species={result.species.id if result.species else None} "
            f"confidence={result.confidence:.2f} needs_review={result.needs_review} "
            f"path={'->'.join(s.value for s in run.history)}"
        )
        return result

    # === Stage 1 ===

    async def _run_stage1(self, payload: ImagePayload) -> tuple[StageOneAssessment, bool]:
        prompt = self.prompt_builder.build_stage1_prompt()
        text = await self.gateway.invoke(prompt, payload)
        extracted = extract(text)
        if extracted is None:
            logger.warning("Stage 1 response contained no JSON; using safe defaults")
        return normalize_stage1(extracted), extracted is not None

    def _stage1_decision(
        self,
        stage1: StageOneAssessment,
        parsed: bool,
    ) -> Optional[IdentificationResult]:
        """Terminal result when Stage 2 should not run, else None."""
        if not parsed:
            return IdentificationResult(
                stage1=stage1,
                species=None,
                confidence=0.0,
                needs_review=True,
                review_reason=STAGE1_UNPARSEABLE_REASON,
            )

        if not stage1.animal_present:
            logger.info("Stage 1: no animal present")
            return IdentificationResult(
                stage1=stage1,
                species=None,
                confidence=stage1.stage1_confidence,
                needs_review=False,
                review_reason=None,
                count=0,
            )

        if not stage1.proceed_to_identification:
            reason = stage1.rejection_reason or INSUFFICIENT_QUALITY_REASON
            logger.info(f"Stage 1: animal present but not identifiable ({reason})")
            return IdentificationResult(
                stage1=stage1,
                species=None,
                confidence=stage1.stage1_confidence,
                needs_review=True,
                review_reason=reason,
                count=stage1.animal_count,
            )

        return None

    # === Stage 2 ===

    async def _run_stage2(
        self,
        payload: ImagePayload,
        stage1: StageOneAssessment,
    ) -> IdentificationResult:
        prompt = self.prompt_builder.build_stage2_prompt(stage1)
        text = await self.gateway.invoke(prompt, payload)

        try:
            extracted = extract(text)
            if extracted is None:
                logger.warning("Stage 2 response contained no JSON")
                return self._review_result(stage1, STAGE2_UNPARSEABLE_REASON)

            stage2 = normalize_stage2(extracted)
            stage2 = self.resolver.resolve_stage2(stage2)
            stage2 = self.calibrator.calibrate(stage2, stage1)
            return self._assemble(stage1, stage2)
        except UpstreamError:
            raise
        except Exception as e:
            logger.exception(f"Stage 2 post-processing failed: {e}")
            return self._review_result(stage1, STAGE2_FAILED_REASON)

    @staticmethod
    def _review_result(stage1: StageOneAssessment, reason: str) -> IdentificationResult:
        return IdentificationResult(
            stage1=stage1,
            species=None,
            confidence=0.0,
            needs_review=True,
            review_reason=reason,
            count=stage1.animal_count,
        )

    def _resolve_alternatives(self, stage2: StageTwoIdentification) -> List[ResolvedAlternative]:
        alternatives: List[ResolvedAlternative] = []
        seen = {stage2.species_id}
        for alternative in stage2.alternative_species:
            record = self.registry.resolve(alternative.species_id)
            if record is None:
                logger.debug(f"Dropping unresolved alternative '{alternative.species_id}'")
                continue
            if record.id in seen:
                continue
            seen.add(record.id)
            alternatives.append(ResolvedAlternative(species=record, confidence=alternative.confidence))
        return alternatives

    def _assemble(
        self,
        stage1: StageOneAssessment,
        stage2: StageTwoIdentification,
    ) -> IdentificationResult:
        species = self.registry.lookup_by_id(stage2.species_id) if stage2.resolved else None
        raw_species_id = stage2.species_id if species is None else None

        needs_review = stage2.needs_review
        review_reason = stage2.review_reason
        if stage2.species_id is None and not needs_review:
            needs_review, review_reason = True, NO_SPECIES_REASON

        return IdentificationResult(
            stage1=stage1,
            species=species,
            confidence=stage2.confidence,
            needs_review=needs_review,
            review_reason=review_reason,
            alternatives=self._resolve_alternatives(stage2),
            reasoning=stage2.reasoning,
            identifying_features=list(stage2.identifying_features),
            count=stage2.count,
            behavior=stage2.behavior,
            other_animals=list(stage2.other_animals),
            raw_species_id=raw_species_id,
        )
