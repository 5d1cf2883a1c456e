"""
Tests for TaxonomyRegistry - species lookup and token resolution.

Tests cover:
- Exact id, common-name and scientific-name resolution
- Substring containment fallback and its ordering
- Idempotence of resolve
- Immutability and unknown tokens
"""

import pytest

from app.ml.taxonomy_registry import (
    SpeciesRecord,
    TaxonomyRegistry,
    get_taxonomy_registry,
)
from app.models.enums import SpeciesCategory


class TestTaxonomyRegistry:
    """Test suite for TaxonomyRegistry."""

    # === Exact Resolution Tests ===

    def test_lookup_by_id(self, registry):
        record = registry.lookup_by_id("brown-hyena")
        assert record.common_name == "Brown Hyena"
        assert record.scientific_name == "Parahyaena brunnea"
        assert record.category == SpeciesCategory.MAMMAL

    def test_lookup_by_id_is_exact(self, registry):
        assert registry.lookup_by_id("Brown-Hyena") is None
        assert registry.lookup_by_id(None) is None

    def test_resolve_id_with_noise(self, registry):
        """Case and surrounding whitespace are ignored."""
        assert registry.resolve("  LION ").id == "lion"

    def test_resolve_common_name(self, registry):
        assert registry.resolve("Meerkat").id == "suricate"
        assert registry.resolve("cape porcupine").id == "porcupine"

    def test_resolve_scientific_name(self, registry):
        assert registry.resolve("Crocuta crocuta").id == "spotted-hyena"
        assert registry.resolve("ORYX GAZELLA").id == "gemsbok"

    def test_resolve_spaced_id(self, registry):
        """Spaces or underscores in place of hyphens still hit the id."""
        assert registry.resolve("honey badger").id == "honey-badger"
        assert registry.resolve("african_wild_dog").id == "african-wild-dog"

    # === Containment Tests ===

    def test_resolve_token_containing_name(self, registry):
        assert registry.resolve("greater kudu bull").id == "greater-kudu"

    def test_resolve_token_contained_in_name(self, registry):
        assert registry.resolve("wildebeest").id == "blue-wildebeest"

    def test_containment_prefers_insertion_order(self, registry):
        """'hyena' is contained in both hyenas; the first registered wins."""
        assert registry.resolve("hyena").id == "brown-hyena"

    def test_exact_common_name_beats_containment(self, registry):
        """'Leopard Tortoise' contains 'leopard' but matches its own entry exactly."""
        assert registry.resolve("Leopard Tortoise").id == "leopard-tortoise"

    def test_short_fragments_do_not_match(self, registry):
        assert registry.resolve("a") is None
        assert registry.resolve("ox") is None

    # === Unknown Tokens ===

    @pytest.mark.parametrize("token", ["", "   ", "elephant", "zebra", None, 42])
    def test_unresolvable_tokens(self, registry, token):
        assert registry.resolve(token) is None

    # === Properties ===

    @pytest.mark.parametrize("token", ["LION ", "Meerkat", "Crocuta crocuta", "hyena", "wildebeest"])
    def test_resolve_is_idempotent(self, registry, token):
        first = registry.resolve(token)
        assert first is not None
        assert registry.resolve(first.id) == first

    def test_every_id_resolves_to_itself(self, registry):
        for record in registry:
            assert registry.resolve(record.id) is record

    def test_registry_order_and_size(self, registry):
        assert len(registry) == 40
        assert registry.ids[0] == "lion"
        assert registry.ids[-1] == "cape-cobra"
        assert "ostrich" in registry

    def test_records_are_immutable(self, registry):
        record = registry.lookup_by_id("lion")
        with pytest.raises(AttributeError):
            record.common_name = "Tiger"

    def test_duplicate_ids_rejected(self):
        record = SpeciesRecord("lion", "Lion", "Panthera leo", SpeciesCategory.MAMMAL)
        with pytest.raises(ValueError):
            TaxonomyRegistry([record, record])

    def test_custom_records(self):
        registry = TaxonomyRegistry([
            SpeciesRecord("pangolin", "Ground Pangolin", "Smutsia temminckii", SpeciesCategory.MAMMAL),
        ])
        assert registry.resolve("ground pangolin").id == "pangolin"
        assert registry.resolve("lion") is None

    def test_singleton(self):
        assert get_taxonomy_registry() is get_taxonomy_registry()
