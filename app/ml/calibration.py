"""
Confidence calibration and review policy.

Adjusts the model's raw confidence for capture conditions it tends to
be overconfident about, then decides whether a human must confirm the
result. The rules run in a fixed order; penalties come before the
threshold check, so a confident call on a poor night image can still
end up flagged.

1. Infrared image: subtract a fixed penalty
2. Flash image showing only eye shine (no body): cap
3. Body but no face, outside daylight: cap
4. Clamp into [0, 1]
5. Below the review threshold: flag
6. Top alternative within the ambiguity margin of the calibrated
   primary: flag

Calibration never raises confidence, rounding included.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional

from app.core.config import Settings, get_settings
from app.models.enums import ImageType
from app.ml.base import StageOneAssessment, StageTwoIdentification

logger = logging.getLogger(__name__)

CONFIDENCE_DECIMALS = 4

MODEL_FLAGGED_REASON = "Flagged for review by the identification model"


@dataclass(frozen=True)
class CalibrationPolicy:
    """Calibration constants. Values are product decisions; see Settings."""
    infrared_penalty: float = 0.15
    flash_eyeshine_cap: float = 0.55
    obscured_face_cap: float = 0.60
    review_threshold: float = 0.65
    ambiguity_margin: float = 0.15

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CalibrationPolicy":
        settings = settings or get_settings()
        return cls(
            infrared_penalty=settings.infrared_penalty,
            flash_eyeshine_cap=settings.flash_eyeshine_cap,
            obscured_face_cap=settings.obscured_face_cap,
            review_threshold=settings.review_threshold,
            ambiguity_margin=settings.ambiguity_margin,
        )


class ConfidenceCalibrator:
    """Applies the ordered calibration and review rules."""

    def __init__(self, policy: Optional[CalibrationPolicy] = None):
        self.policy = policy or CalibrationPolicy()

    def adjust_confidence(self, raw: float, stage1: StageOneAssessment) -> float:
        """Rules 1-4: condition penalties and caps, then clamp."""
        features = stage1.visible_features
        confidence = raw

        if stage1.image_type == ImageType.INFRARED:
            confidence -= self.policy.infrared_penalty

        if (
            stage1.image_type == ImageType.FLASH
            and features.eye_shine
            and not features.body_visible
        ):
            confidence = min(confidence, self.policy.flash_eyeshine_cap)

        if (
            not features.face_visible
            and features.body_visible
            and stage1.image_type != ImageType.DAYLIGHT
        ):
            confidence = min(confidence, self.policy.obscured_face_cap)

        confidence = max(0.0, min(1.0, confidence))
        rounded = round(confidence, CONFIDENCE_DECIMALS)
        ceiling = max(0.0, min(1.0, raw))
        if rounded > ceiling:
            # rounding must not lift the result above the model's own value
            scale = 10 ** CONFIDENCE_DECIMALS
            rounded = min(ceiling, math.floor(ceiling * scale) / scale)
        return rounded

    def calibrate(
        self,
        stage2: StageTwoIdentification,
        stage1: StageOneAssessment,
    ) -> StageTwoIdentification:
        """
        Return a copy of stage2 with adjusted confidence and review flags.

        A reason the model gave is kept. Otherwise the first rule that
        flags the result supplies the reason.
        """
        confidence = self.adjust_confidence(stage2.confidence, stage1)
        needs_review = stage2.needs_review
        review_reason = stage2.review_reason

        if confidence < self.policy.review_threshold:
            needs_review = True
            review_reason = review_reason or (
                f"Confidence {confidence:.2f} is below the review threshold "
                f"of {self.policy.review_threshold:.2f}"
            )

        # Measured on the calibrated primary: a night image that lost its
        # lead over the runner-up is ambiguous.
        top_alternative = stage2.top_alternative
        if top_alternative is not None and stage2.species_id is not None:
            gap = round(confidence - top_alternative.confidence, CONFIDENCE_DECIMALS)
            if gap <= self.policy.ambiguity_margin:
                needs_review = True
                review_reason = review_reason or (
                    f"Ambiguous identification: '{top_alternative.species_id}' "
                    f"({top_alternative.confidence:.2f}) is close to "
                    f"'{stage2.species_id}' ({confidence:.2f})"
                )

        if needs_review and not review_reason:
            review_reason = MODEL_FLAGGED_REASON

        if confidence != stage2.confidence:
            logger.info(
                f"Calibrated confidence {stage2.confidence:.2f} -> {confidence:.2f} "
                f"({stage1.image_type.value} image)"
            )

        return replace(
            stage2,
            confidence=confidence,
            needs_review=needs_review,
            review_reason=review_reason,
        )


def calibrate(
    stage2: StageTwoIdentification,
    stage1: StageOneAssessment,
    policy: Optional[CalibrationPolicy] = None,
) -> StageTwoIdentification:
    """Functional form of ConfidenceCalibrator.calibrate."""
    return ConfidenceCalibrator(policy).calibrate(stage2, stage1)
