"""
Tests for SpeciesResolver - canonicalizing Stage 2 species tokens.
"""

import pytest

from app.ml.base import AlternativeSpecies, DetectedAnimal, StageTwoIdentification
from app.ml.species_resolver import SpeciesResolver, resolve_stage2


class TestSpeciesResolver:
    """Test suite for SpeciesResolver."""

    @pytest.fixture
    def resolver(self, registry):
        return SpeciesResolver(registry)

    def test_noisy_token_resolved(self, resolver):
        resolved = resolver.resolve_stage2(
            StageTwoIdentification(species_id="LION ", confidence=0.9)
        )
        assert resolved.species_id == "lion"
        assert resolved.common_name == "Lion"
        assert resolved.scientific_name == "Panthera leo"
        assert resolved.resolved is True
        assert resolved.needs_review is False

    def test_common_name_token(self, resolver):
        resolved = resolver.resolve_stage2(
            StageTwoIdentification(species_id="Meerkat", confidence=0.8)
        )
        assert resolved.species_id == "suricate"

    def test_falls_back_to_model_names(self, resolver):
        """An unmatched id is rescued by the model's own common name."""
        resolved = resolver.resolve_stage2(StageTwoIdentification(
            species_id="xx-unlisted",
            confidence=0.7,
            common_name="African Wildcat",
        ))
        assert resolved.species_id == "african-wildcat"
        assert resolved.resolved is True

    def test_unrecognized_species_forces_review(self, resolver):
        resolved = resolver.resolve_stage2(
            StageTwoIdentification(species_id="elephant", confidence=0.95)
        )
        assert resolved.species_id == "elephant"
        assert resolved.resolved is False
        assert resolved.needs_review is True
        assert "elephant" in resolved.review_reason
        assert resolved.confidence == 0.95

    def test_no_species_unchanged(self, resolver):
        data = StageTwoIdentification(species_id=None, confidence=0.2)
        assert resolver.resolve_stage2(data) is data

    def test_other_animals_resolved(self, resolver):
        resolved = resolver.resolve_stage2(StageTwoIdentification(
            species_id="gemsbok",
            confidence=0.9,
            other_animals=[
                DetectedAnimal(species_id="Springbok", count=5, confidence=0.7),
                DetectedAnimal(species_id="zebra", count=1, confidence=0.4),
            ],
        ))
        springbok, zebra = resolved.other_animals
        assert springbok.species_id == "springbok"
        assert springbok.species.common_name == "Springbok"
        assert springbok.count == 5
        assert zebra.species_id == "zebra"
        assert zebra.species is None

    def test_alternatives_canonicalized(self, resolver):
        resolved = resolver.resolve_stage2(StageTwoIdentification(
            species_id="brown-hyena",
            confidence=0.8,
            alternative_species=[
                AlternativeSpecies("Spotted Hyena", 0.7),
                AlternativeSpecies("Panthera pardus", 0.2),
            ],
        ))
        assert [(alt.species_id, alt.confidence) for alt in resolved.alternative_species] == [
            ("spotted-hyena", 0.7),
            ("leopard", 0.2),
        ]

    def test_alternative_naming_primary_dropped(self, resolver):
        resolved = resolver.resolve_stage2(StageTwoIdentification(
            species_id="lion",
            confidence=0.9,
            alternative_species=[
                AlternativeSpecies("Panthera leo", 0.85),
                AlternativeSpecies("leopard", 0.3),
            ],
        ))
        assert [alt.species_id for alt in resolved.alternative_species] == ["leopard"]

    def test_unresolved_and_repeated_alternatives_dropped(self, resolver):
        resolved = resolver.resolve_stage2(StageTwoIdentification(
            species_id="lion",
            confidence=0.9,
            alternative_species=[
                AlternativeSpecies("Leopard", 0.4),
                AlternativeSpecies("xx-unlisted", 0.35),
                AlternativeSpecies("Panthera pardus", 0.3),
            ],
        ))
        assert [alt.species_id for alt in resolved.alternative_species] == ["leopard"]

    def test_alternatives_kept_for_unrecognized_primary(self, resolver):
        resolved = resolver.resolve_stage2(StageTwoIdentification(
            species_id="elephant",
            confidence=0.9,
            alternative_species=[AlternativeSpecies("LION", 0.5)],
        ))
        assert resolved.resolved is False
        assert [alt.species_id for alt in resolved.alternative_species] == ["lion"]

    def test_functional_form(self, registry):
        resolved = resolve_stage2(
            StageTwoIdentification(species_id="Crocuta crocuta", confidence=0.8),
            registry,
        )
        assert resolved.species_id == "spotted-hyena"
