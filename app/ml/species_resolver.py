"""
Maps the species tokens in a Stage 2 identification onto the registry.

A token that matches is replaced by the canonical id and names. A
primary token that does not match is kept as-is for audit and forces
human review; it is never silently dropped. Alternatives are
canonicalized too, and dropped when they name the primary again or are
not in the registry, so that the review policy only compares the
primary against species the response can report.
"""

import logging
from dataclasses import replace
from typing import List, Optional

from app.ml.base import AlternativeSpecies, DetectedAnimal, StageTwoIdentification
from app.ml.taxonomy_registry import SpeciesRecord, TaxonomyRegistry, get_taxonomy_registry

logger = logging.getLogger(__name__)


class SpeciesResolver:
    """Resolves Stage 2 species tokens against a TaxonomyRegistry."""

    def __init__(self, registry: Optional[TaxonomyRegistry] = None):
        self.registry = registry or get_taxonomy_registry()

    def _resolve_primary(self, data: StageTwoIdentification) -> Optional[SpeciesRecord]:
        for token in (data.species_id, data.common_name, data.scientific_name):
            record = self.registry.resolve(token)
            if record is not None:
                return record
        return None

    def _resolve_other_animals(self, animals: List[DetectedAnimal]) -> List[DetectedAnimal]:
        resolved = []
        for animal in animals:
            record = self.registry.resolve(animal.species_id)
            if record is None:
                logger.info(f"Additional animal '{animal.species_id}' not in registry")
                resolved.append(animal)
            else:
                resolved.append(replace(animal, species_id=record.id, species=record))
        return resolved

    def _resolve_alternatives(
        self,
        alternatives: List[AlternativeSpecies],
        primary_id: Optional[str],
    ) -> List[AlternativeSpecies]:
        """Canonical alternatives, without the primary under another name or repeats."""
        resolved = []
        seen = {primary_id} if primary_id else set()
        for alternative in alternatives:
            record = self.registry.resolve(alternative.species_id)
            if record is None:
                logger.debug(f"Dropping unresolved alternative '{alternative.species_id}'")
                continue
            if record.id in seen:
                continue
            seen.add(record.id)
            resolved.append(replace(alternative, species_id=record.id))
        return resolved

    def resolve_stage2(self, data: StageTwoIdentification) -> StageTwoIdentification:
        """
        Canonicalize the primary species and any additional animals.

        Returns the input unchanged when no species was identified.
        """
        if data.species_id is None:
            return data

        other_animals = self._resolve_other_animals(data.other_animals)
        record = self._resolve_primary(data)
        alternatives = self._resolve_alternatives(
            data.alternative_species, record.id if record else None
        )

        if record is None:
            logger.warning(f"Species '{data.species_id}' did not match the taxonomy registry")
            return replace(
                data,
                needs_review=True,
                review_reason=f"Unrecognized species '{data.species_id}' is not in the species list",
                alternative_species=alternatives,
                other_animals=other_animals,
                resolved=False,
            )

        if record.id != data.species_id:
            logger.debug(f"Resolved species token '{data.species_id}' to '{record.id}'")

        return replace(
            data,
            species_id=record.id,
            common_name=record.common_name,
            scientific_name=record.scientific_name,
            alternative_species=alternatives,
            other_animals=other_animals,
            resolved=True,
        )


def resolve_stage2(
    data: StageTwoIdentification,
    registry: Optional[TaxonomyRegistry] = None,
) -> StageTwoIdentification:
    """Functional form of SpeciesResolver.resolve_stage2."""
    return SpeciesResolver(registry).resolve_stage2(data)
