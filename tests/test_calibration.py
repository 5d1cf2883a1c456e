"""
Tests for ConfidenceCalibrator - condition penalties and review policy.

Tests cover:
- Each adjustment rule in isolation
- Threshold flagging
- Ambiguity between primary and top alternative
- Calibration never raising confidence
"""

import pytest

from app.ml.base import (
    AlternativeSpecies,
    StageOneAssessment,
    StageTwoIdentification,
    VisibleFeatures,
)
from app.ml.calibration import (
    MODEL_FLAGGED_REASON,
    CalibrationPolicy,
    ConfidenceCalibrator,
    calibrate,
)
from app.models.enums import ImageType


def make_stage1(image_type=ImageType.DAYLIGHT, body=True, face=True, eye_shine=False):
    return StageOneAssessment(
        animal_present=True,
        animal_count=1,
        image_type=image_type,
        visible_features=VisibleFeatures(
            body_visible=body,
            face_visible=face,
            eye_shine=eye_shine,
        ),
        proceed_to_identification=True,
        stage1_confidence=0.9,
    )


class TestAdjustConfidence:
    """Rules 1-4."""

    @pytest.fixture
    def calibrator(self):
        return ConfidenceCalibrator()

    def test_daylight_unchanged(self, calibrator):
        assert calibrator.adjust_confidence(0.9, make_stage1()) == 0.9

    def test_infrared_penalty(self, calibrator):
        assert calibrator.adjust_confidence(0.9, make_stage1(ImageType.INFRARED)) == 0.75

    def test_infrared_penalty_floors_at_zero(self, calibrator):
        assert calibrator.adjust_confidence(0.1, make_stage1(ImageType.INFRARED)) == 0.0

    def test_flash_eyeshine_only_capped(self, calibrator):
        stage1 = make_stage1(ImageType.FLASH, body=False, face=False, eye_shine=True)
        assert calibrator.adjust_confidence(0.9, stage1) == 0.55

    def test_flash_eyeshine_with_body_not_capped(self, calibrator):
        stage1 = make_stage1(ImageType.FLASH, body=True, face=True, eye_shine=True)
        assert calibrator.adjust_confidence(0.9, stage1) == 0.9

    def test_hidden_face_at_night_capped(self, calibrator):
        stage1 = make_stage1(ImageType.DUSK_DAWN, body=True, face=False)
        assert calibrator.adjust_confidence(0.9, stage1) == 0.6

    def test_hidden_face_in_daylight_not_capped(self, calibrator):
        stage1 = make_stage1(ImageType.DAYLIGHT, body=True, face=False)
        assert calibrator.adjust_confidence(0.9, stage1) == 0.9

    def test_rules_compose(self, calibrator):
        """Infrared penalty first, then the hidden-face cap."""
        stage1 = make_stage1(ImageType.INFRARED, body=True, face=False)
        assert calibrator.adjust_confidence(0.95, stage1) == 0.6
        assert calibrator.adjust_confidence(0.7, stage1) == 0.55

    @pytest.mark.parametrize("image_type", list(ImageType))
    @pytest.mark.parametrize("raw", [0.0, 0.12345, 0.3, 0.55, 0.61, 0.9, 0.99996, 1.0])
    def test_never_increases(self, calibrator, image_type, raw):
        for body in (True, False):
            for face in (True, False):
                for eye_shine in (True, False):
                    stage1 = make_stage1(image_type, body=body, face=face, eye_shine=eye_shine)
                    adjusted = calibrator.adjust_confidence(raw, stage1)
                    assert 0.0 <= adjusted <= raw

    def test_rounding_does_not_lift_to_one(self, calibrator):
        assert calibrator.adjust_confidence(0.99996, make_stage1()) == 0.9999

    def test_rounding_keeps_four_decimals(self, calibrator):
        assert calibrator.adjust_confidence(0.12345, make_stage1()) <= 0.12345
        assert calibrator.adjust_confidence(0.73218, make_stage1()) == 0.7321
        assert calibrator.adjust_confidence(0.73212, make_stage1()) == 0.7321

    def test_custom_policy(self):
        calibrator = ConfidenceCalibrator(CalibrationPolicy(infrared_penalty=0.3))
        assert calibrator.adjust_confidence(0.9, make_stage1(ImageType.INFRARED)) == 0.6


class TestReviewPolicy:
    """Rules 5-6."""

    @pytest.fixture
    def calibrator(self):
        return ConfidenceCalibrator()

    def test_confident_daylight_not_flagged(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(species_id="lion", confidence=0.9),
            make_stage1(),
        )
        assert result.confidence == 0.9
        assert result.needs_review is False
        assert result.review_reason is None

    def test_infrared_above_threshold_not_flagged(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(species_id="lion", confidence=0.9),
            make_stage1(ImageType.INFRARED),
        )
        assert result.confidence == 0.75
        assert result.needs_review is False

    def test_below_threshold_flagged(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(species_id="lion", confidence=0.7),
            make_stage1(ImageType.INFRARED),
        )
        assert result.confidence == 0.55
        assert result.needs_review is True
        assert "below the review threshold" in result.review_reason

    def test_threshold_is_inclusive(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(species_id="lion", confidence=0.65),
            make_stage1(),
        )
        assert result.needs_review is False

    def test_model_reason_preserved(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(
                species_id="lion",
                confidence=0.3,
                needs_review=True,
                review_reason="tail only",
            ),
            make_stage1(),
        )
        assert result.needs_review is True
        assert result.review_reason == "tail only"

    def test_model_flag_without_reason(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(species_id="lion", confidence=0.9, needs_review=True),
            make_stage1(),
        )
        assert result.needs_review is True
        assert result.review_reason

    def test_close_alternative_flagged(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(
                species_id="lion",
                confidence=0.95,
                alternative_species=[AlternativeSpecies("leopard", 0.85)],
            ),
            make_stage1(),
        )
        assert result.needs_review is True
        assert "Ambiguous" in result.review_reason
        assert "leopard" in result.review_reason

    def test_margin_is_inclusive(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(
                species_id="lion",
                confidence=0.9,
                alternative_species=[AlternativeSpecies("leopard", 0.75)],
            ),
            make_stage1(),
        )
        assert result.needs_review is True

    def test_distant_alternative_not_flagged(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(
                species_id="lion",
                confidence=0.95,
                alternative_species=[AlternativeSpecies("leopard", 0.5)],
            ),
            make_stage1(),
        )
        assert result.needs_review is False

    def test_ambiguity_keeps_threshold_reason(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(
                species_id="lion",
                confidence=0.5,
                alternative_species=[AlternativeSpecies("leopard", 0.45)],
            ),
            make_stage1(),
        )
        assert "below the review threshold" in result.review_reason

    def test_alternative_compared_with_calibrated_primary(self, calibrator):
        """An infrared penalty can bring the primary within reach of the runner-up."""
        result = calibrator.calibrate(
            StageTwoIdentification(
                species_id="lion",
                confidence=0.9,
                alternative_species=[AlternativeSpecies("leopard", 0.62)],
            ),
            make_stage1(ImageType.INFRARED),
        )
        assert result.confidence == 0.75
        assert result.needs_review is True
        assert "Ambiguous" in result.review_reason
        assert "0.75" in result.review_reason

    def test_model_flag_gets_threshold_reason(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(species_id="lion", confidence=0.3, needs_review=True),
            make_stage1(),
        )
        assert result.needs_review is True
        assert "below the review threshold" in result.review_reason

    def test_model_flag_gets_ambiguity_reason(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(
                species_id="lion",
                confidence=0.9,
                needs_review=True,
                alternative_species=[AlternativeSpecies("leopard", 0.8)],
            ),
            make_stage1(),
        )
        assert "Ambiguous" in result.review_reason

    def test_model_flag_generic_reason_is_last_resort(self, calibrator):
        result = calibrator.calibrate(
            StageTwoIdentification(species_id="lion", confidence=0.9, needs_review=True),
            make_stage1(),
        )
        assert result.review_reason == MODEL_FLAGGED_REASON

    def test_input_not_mutated(self, calibrator):
        stage2 = StageTwoIdentification(species_id="lion", confidence=0.9)
        calibrator.calibrate(stage2, make_stage1(ImageType.INFRARED))
        assert stage2.confidence == 0.9

    def test_functional_form(self):
        result = calibrate(
            StageTwoIdentification(species_id="lion", confidence=0.9),
            make_stage1(ImageType.INFRARED),
        )
        assert result.confidence == 0.75
