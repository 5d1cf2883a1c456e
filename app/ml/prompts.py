"""
Prompt templates for the two identification stages.

Both prompts enumerate the registry ids so the model answers from a
closed vocabulary, and both ask for a bare JSON object. The response
extractor still tolerates prose and code fences, because the model
does not always comply.

Stage 2 embeds a summary of Stage 1 so the model builds on its own
earlier assessment instead of re-deriving it.
"""

from typing import Optional

from app.ml.base import StageOneAssessment
from app.ml.taxonomy_registry import TaxonomyRegistry, get_taxonomy_registry


STAGE1_TEMPLATE = """You are screening camera trap images from the Kalahari before species identification.
Assess ONLY image quality and whether an animal is present. Do not name the species yet.

Species that may appear at these stations (ids):
{species_catalog}

Image types:
- daylight: natural colour, taken in daylight
- infrared: greyscale night image lit by the infrared emitter
- flash: night image lit by a white flash
- dusk_dawn: low natural light, muted colours

Set proceed_to_identification to true only if an animal is present AND enough of it is
visible to attempt identification. If you set it to false while an animal is present,
explain why in rejection_reason (for example "too dark", "only a tail visible", "motion blur").
If the camera burned a timestamp into the frame, copy it into date_time; otherwise use null.

Respond with ONLY a JSON object, no prose and no markdown code fences, in exactly this shape:
{{
  "animal_present": true,
  "animal_count": 1,
  "image_type": "daylight|infrared|flash|dusk_dawn",
  "image_quality": "good|moderate|poor",
  "visible_features": {{
    "body_visible": true,
    "face_visible": true,
    "eye_shine": false,
    "approximate_size": "small|medium|large|unknown",
    "pattern": "spots|stripes|solid|unclear|none",
    "body_percentage_visible": 80
  }},
  "proceed_to_identification": true,
  "stage1_confidence": 0.9,
  "rejection_reason": "",
  "time_of_day": "day|night|dawn|dusk|unknown",
  "date_time": null
}}"""


STAGE2_TEMPLATE = """You are an expert in Kalahari wildlife identifying the animal in a camera trap image.

An earlier screening pass of this same image found:
{stage1_summary}

Choose species_id ONLY from this list (id: common name, scientific name):
{species_catalog}

Rules:
- Base the identification on features you can actually see; list them in identifying_features.
- Lower your confidence for partial, blurred, dark or infrared views. Never inflate it.
- List up to 3 alternative_species you could not rule out, most likely first.
- If the animal is not on the list, set species_id to null and needs_review to true.
- If several different species are in frame, describe the others in other_animals.

Respond with ONLY a JSON object, no prose and no markdown code fences, in exactly this shape:
{{
  "species_id": "one of the ids above, or null",
  "confidence": 0.0,
  "reasoning": "one or two sentences",
  "identifying_features": ["feature", "feature"],
  "alternative_species": [{{"species_id": "id", "confidence": 0.0}}],
  "needs_review": false,
  "review_reason": null,
  "count": 1,
  "behavior": "short description, e.g. drinking, walking, resting",
  "other_animals": [{{"species_id": "id", "count": 1, "confidence": 0.0}}]
}}"""


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


class PromptBuilder:
    """Renders stage prompts. Deterministic for a fixed registry."""

    def __init__(self, registry: Optional[TaxonomyRegistry] = None):
        self.registry = registry or get_taxonomy_registry()

    def _species_ids(self) -> str:
        return ", ".join(self.registry.ids)

    def _species_catalog(self) -> str:
        return "\n".join(
            f"- {record.id}: {record.common_name} ({record.scientific_name})"
            for record in self.registry
        )

    def build_stage1_prompt(self) -> str:
        """Prompt for the image-quality / animal-presence gate."""
        return STAGE1_TEMPLATE.format(species_catalog=self._species_ids())

    def build_stage2_prompt(self, stage1: StageOneAssessment) -> str:
        """Prompt for species identification, grounded in Stage 1's findings."""
        return STAGE2_TEMPLATE.format(
            stage1_summary=self.summarize_stage1(stage1),
            species_catalog=self._species_catalog(),
        )

    @staticmethod
    def summarize_stage1(stage1: StageOneAssessment) -> str:
        """Human-readable bullet summary of a Stage 1 assessment."""
        features = stage1.visible_features
        body_pct = features.body_percentage_visible
        body_pct_text = f"{body_pct}%" if isinstance(body_pct, int) else "unknown"

        lines = [
            f"- Animals in frame: {stage1.animal_count}",
            f"- Image type: {stage1.image_type.value}",
            f"- Image quality: {stage1.image_quality.value}",
            f"- Time of day: {stage1.time_of_day.value}",
            f"- Body visible: {_yes_no(features.body_visible)} ({body_pct_text} of body)",
            f"- Face visible: {_yes_no(features.face_visible)}",
            f"- Eye shine: {_yes_no(features.eye_shine)}",
            f"- Approximate size: {features.approximate_size.value}",
            f"- Coat pattern: {features.pattern.value}",
        ]
        return "\n".join(lines)
