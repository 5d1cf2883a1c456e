"""
Taxonomy Registry

The closed, authoritative list of species the system is allowed to
report, with indices for resolving the free-text tokens a vision model
produces back to a registry entry.

The registry is built once at startup and never written afterwards, so
a single instance is shared across concurrent requests without locking.
A change to the species list is a new deployment, not a runtime patch.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from app.models.enums import SpeciesCategory

logger = logging.getLogger(__name__)

MIN_CONTAINED_TOKEN_LENGTH = 3


@dataclass(frozen=True)
class SpeciesRecord:
    """Single entry in the taxonomy registry."""
    id: str  # lowercase-hyphenated, stable
    common_name: str
    scientific_name: str
    category: SpeciesCategory

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "common_name": self.common_name,
            "scientific_name": self.scientific_name,
            "category": self.category.value,
        }


# Species recorded at the Kalahari camera stations, grouped as the field
# teams group them.
DEFAULT_SPECIES: List[SpeciesRecord] = [
    # Large predators
    SpeciesRecord("lion", "Lion", "Panthera leo", SpeciesCategory.MAMMAL),
    SpeciesRecord("leopard", "Leopard", "Panthera pardus", SpeciesCategory.MAMMAL),
    SpeciesRecord("cheetah", "Cheetah", "Acinonyx jubatus", SpeciesCategory.MAMMAL),
    SpeciesRecord("brown-hyena", "Brown Hyena", "Parahyaena brunnea", SpeciesCategory.MAMMAL),
    SpeciesRecord("spotted-hyena", "Spotted Hyena", "Crocuta crocuta", SpeciesCategory.MAMMAL),
    SpeciesRecord("african-wild-dog", "African Wild Dog", "Lycaon pictus", SpeciesCategory.MAMMAL),

    # Medium predators
    SpeciesRecord("black-backed-jackal", "Black-backed Jackal", "Lupulella mesomelas", SpeciesCategory.MAMMAL),
    SpeciesRecord("cape-fox", "Cape Fox", "Vulpes chama", SpeciesCategory.MAMMAL),
    SpeciesRecord("bat-eared-fox", "Bat-eared Fox", "Otocyon megalotis", SpeciesCategory.MAMMAL),
    SpeciesRecord("african-wildcat", "African Wildcat", "Felis lybica", SpeciesCategory.MAMMAL),
    SpeciesRecord("caracal", "Caracal", "Caracal caracal", SpeciesCategory.MAMMAL),
    SpeciesRecord("aardwolf", "Aardwolf", "Proteles cristata", SpeciesCategory.MAMMAL),
    SpeciesRecord("honey-badger", "Honey Badger", "Mellivora capensis", SpeciesCategory.MAMMAL),

    # Large herbivores
    SpeciesRecord("gemsbok", "Gemsbok", "Oryx gazella", SpeciesCategory.MAMMAL),
    SpeciesRecord("eland", "Eland", "Taurotragus oryx", SpeciesCategory.MAMMAL),
    SpeciesRecord("blue-wildebeest", "Blue Wildebeest", "Connochaetes taurinus", SpeciesCategory.MAMMAL),
    SpeciesRecord("red-hartebeest", "Red Hartebeest", "Alcelaphus buselaphus", SpeciesCategory.MAMMAL),
    SpeciesRecord("giraffe", "Giraffe", "Giraffa camelopardalis", SpeciesCategory.MAMMAL),
    SpeciesRecord("greater-kudu", "Greater Kudu", "Tragelaphus strepsiceros", SpeciesCategory.MAMMAL),

    # Medium herbivores
    SpeciesRecord("springbok", "Springbok", "Antidorcas marsupialis", SpeciesCategory.MAMMAL),
    SpeciesRecord("steenbok", "Steenbok", "Raphicerus campestris", SpeciesCategory.MAMMAL),
    SpeciesRecord("duiker", "Common Duiker", "Sylvicapra grimmia", SpeciesCategory.MAMMAL),
    SpeciesRecord("warthog", "Warthog", "Phacochoerus africanus", SpeciesCategory.MAMMAL),

    # Small mammals
    SpeciesRecord("aardvark", "Aardvark", "Orycteropus afer", SpeciesCategory.MAMMAL),
    SpeciesRecord("porcupine", "Cape Porcupine", "Hystrix africaeaustralis", SpeciesCategory.MAMMAL),
    SpeciesRecord("springhare", "Springhare", "Pedetes capensis", SpeciesCategory.MAMMAL),
    SpeciesRecord("ground-squirrel", "Cape Ground Squirrel", "Geosciurus inauris", SpeciesCategory.MAMMAL),
    SpeciesRecord("suricate", "Meerkat", "Suricata suricatta", SpeciesCategory.MAMMAL),
    SpeciesRecord("yellow-mongoose", "Yellow Mongoose", "Cynictis penicillata", SpeciesCategory.MAMMAL),
    SpeciesRecord("slender-mongoose", "Slender Mongoose", "Herpestes sanguineus", SpeciesCategory.MAMMAL),

    # Birds
    SpeciesRecord("ostrich", "Ostrich", "Struthio camelus", SpeciesCategory.BIRD),
    SpeciesRecord("secretarybird", "Secretarybird", "Sagittarius serpentarius", SpeciesCategory.BIRD),
    SpeciesRecord("kori-bustard", "Kori Bustard", "Ardeotis kori", SpeciesCategory.BIRD),
    SpeciesRecord("martial-eagle", "Martial Eagle", "Polemaetus bellicosus", SpeciesCategory.BIRD),
    SpeciesRecord("lappet-faced-vulture", "Lappet-faced Vulture", "Torgos tracheliotos", SpeciesCategory.BIRD),
    SpeciesRecord(
        "southern-pale-chanting-goshawk", "Southern Pale Chanting Goshawk",
        "Melierax canorus", SpeciesCategory.BIRD,
    ),

    # Reptiles
    SpeciesRecord("leopard-tortoise", "Leopard Tortoise", "Stigmochelys pardalis", SpeciesCategory.REPTILE),
    SpeciesRecord("rock-monitor", "Rock Monitor", "Varanus albigularis", SpeciesCategory.REPTILE),
    SpeciesRecord("puff-adder", "Puff Adder", "Bitis arietans", SpeciesCategory.REPTILE),
    SpeciesRecord("cape-cobra", "Cape Cobra", "Naja nivea", SpeciesCategory.REPTILE),
]


class TaxonomyRegistry:
    """
    Read-only catalog of valid species.

    Resolution order for a free-text token:
    1. Exact id match (lowercased, trimmed)
    2. Exact common-name match (case-insensitive)
    3. Exact scientific-name match (case-insensitive)
    4. Substring containment, in either direction, between the token and
       each id or common name

    First match wins; ties go to registry insertion order.
    """

    def __init__(self, records: Optional[Iterable[SpeciesRecord]] = None):
        """
        Initialize the registry.

        Args:
            records: Species records in display order; defaults to the
                station species list. Ids must be unique.
        """
        by_id: Dict[str, SpeciesRecord] = {}
        for record in (DEFAULT_SPECIES if records is None else records):
            if record.id in by_id:
                raise ValueError(f"Duplicate species id in registry: {record.id}")
            by_id[record.id] = record

        self._by_id: Mapping[str, SpeciesRecord] = MappingProxyType(by_id)
        self._by_common_name: Mapping[str, SpeciesRecord] = MappingProxyType(
            self._build_index(by_id.values(), lambda r: r.common_name)
        )
        self._by_scientific_name: Mapping[str, SpeciesRecord] = MappingProxyType(
            self._build_index(by_id.values(), lambda r: r.scientific_name)
        )
        logger.info(f"Taxonomy registry loaded with {len(by_id)} species")

    @staticmethod
    def _build_index(records, key) -> Dict[str, SpeciesRecord]:
        """Build a lowercase index; the first record claiming a name keeps it."""
        index: Dict[str, SpeciesRecord] = {}
        for record in records:
            index.setdefault(key(record).lower(), record)
        return index

    @staticmethod
    def _normalize_token(token: str) -> str:
        return " ".join(token.strip().lower().replace("_", " ").split())

    @staticmethod
    def _fold(text: str) -> str:
        """Hyphen-insensitive form used for containment matching."""
        return text.replace("-", " ")

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[SpeciesRecord]:
        return iter(self._by_id.values())

    def __contains__(self, species_id: object) -> bool:
        return species_id in self._by_id

    @property
    def ids(self) -> List[str]:
        """Species ids in registry order."""
        return list(self._by_id.keys())

    def lookup_by_id(self, species_id: str) -> Optional[SpeciesRecord]:
        """Exact lookup by canonical id."""
        if not isinstance(species_id, str):
            return None
        return self._by_id.get(species_id)

    def resolve(self, token: Optional[str]) -> Optional[SpeciesRecord]:
        """
        Resolve a free-text species token to a registry entry.

        Never raises; returns None when no rule matches.
        """
        if not isinstance(token, str):
            return None

        normalized = self._normalize_token(token)
        if not normalized:
            return None

        for candidate_id in (normalized, normalized.replace(" ", "-")):
            if candidate_id in self._by_id:
                return self._by_id[candidate_id]

        if normalized in self._by_common_name:
            return self._by_common_name[normalized]

        if normalized in self._by_scientific_name:
            return self._by_scientific_name[normalized]

        return self._containment_match(normalized)

    def _containment_match(self, normalized: str) -> Optional[SpeciesRecord]:
        """First record whose id or common name contains, or is contained in, the token."""
        folded = self._fold(normalized)
        for record in self._by_id.values():
            for candidate in (self._fold(record.id), self._fold(record.common_name.lower())):
                if candidate in folded:
                    return record
                # single letters and stray fragments would match nearly everything
                if len(folded) >= MIN_CONTAINED_TOKEN_LENGTH and folded in candidate:
                    return record
        return None

    def to_list(self) -> List[Dict[str, str]]:
        return [record.to_dict() for record in self._by_id.values()]


# Singleton instance
_taxonomy_registry: Optional[TaxonomyRegistry] = None


def get_taxonomy_registry() -> TaxonomyRegistry:
    """Get singleton taxonomy registry instance."""
    global _taxonomy_registry
    if _taxonomy_registry is None:
        _taxonomy_registry = TaxonomyRegistry()
    return _taxonomy_registry
