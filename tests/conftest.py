"""
Shared fixtures for the identification test suite.

The vision model is replaced by a scripted client that returns (or
raises) queued responses in order, and backoff sleeps are recorded
instead of awaited.
"""

import base64
import io
import json

import pytest
from PIL import Image

from app.ml.model_gateway import ModelGateway, VisionModelClient
from app.ml.taxonomy_registry import TaxonomyRegistry
from app.services.identification_service import IdentificationService


class ScriptedVisionClient(VisionModelClient):
    """Returns queued responses; queued exceptions are raised instead."""

    def __init__(self, responses=None, configured=True):
        self.responses = list(responses or [])
        self.calls = []
        self._configured = configured

    @property
    def model_name(self) -> str:
        return "scripted-vision"

    @property
    def is_configured(self) -> bool:
        return self._configured

    def queue(self, *responses):
        self.responses.extend(responses)

    async def generate(self, prompt, image_bytes, mime_type):
        self.calls.append({"prompt": prompt, "image_bytes": image_bytes, "mime_type": mime_type})
        if not self.responses:
            raise AssertionError("Unexpected model call: no scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def stage1_payload(**overrides):
    """A Stage 1 response for a clear daylight image with one visible animal."""
    payload = {
        "animal_present": True,
        "animal_count": 1,
        "image_type": "daylight",
        "image_quality": "good",
        "visible_features": {
            "body_visible": True,
            "face_visible": True,
            "eye_shine": False,
            "approximate_size": "large",
            "pattern": "solid",
            "body_percentage_visible": 90,
        },
        "proceed_to_identification": True,
        "stage1_confidence": 0.92,
        "rejection_reason": "",
        "time_of_day": "day",
        "date_time": "2024-06-01 14:32",
    }
    features = overrides.pop("visible_features", None)
    if features:
        payload["visible_features"].update(features)
    payload.update(overrides)
    return payload


def stage2_payload(**overrides):
    """A Stage 2 response naming a lion with high confidence."""
    payload = {
        "species_id": "lion",
        "confidence": 0.9,
        "reasoning": "Tawny coat, heavy build and dark-tipped tail.",
        "identifying_features": ["tawny coat", "tail tuft"],
        "alternative_species": [],
        "needs_review": False,
        "review_reason": None,
        "count": 1,
        "behavior": "walking",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def stage1_data():
    """Factory for Stage 1 response objects."""
    return stage1_payload


@pytest.fixture
def stage2_data():
    """Factory for Stage 2 response objects."""
    return stage2_payload


@pytest.fixture
def stage1_json():
    """Factory for Stage 1 response text."""
    return lambda **overrides: json.dumps(stage1_payload(**overrides))


@pytest.fixture
def stage2_json():
    """Factory for Stage 2 response text."""
    return lambda **overrides: json.dumps(stage2_payload(**overrides))


@pytest.fixture
def registry():
    """A fresh registry with the default species list."""
    return TaxonomyRegistry()


@pytest.fixture
def scripted_client():
    """Scripted model client with an empty queue."""
    return ScriptedVisionClient()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def gateway(scripted_client, sleep_recorder):
    """Gateway over the scripted client with the default retry budget."""
    return ModelGateway(
        client=scripted_client,
        max_retries=2,
        base_delay=1.0,
        sleep=sleep_recorder,
    )


@pytest.fixture
def service(gateway, registry):
    """Identification service wired to the scripted client."""
    return IdentificationService(gateway=gateway, registry=registry)


@pytest.fixture
def sample_image_bytes():
    """A small JPEG, standing in for a camera trap frame."""
    img = Image.new("RGB", (64, 48), color=(120, 100, 60))  # dry-grass brown
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def sample_image_base64(sample_image_bytes):
    return base64.b64encode(sample_image_bytes).decode("utf-8")


@pytest.fixture
def sample_data_url(sample_image_base64):
    return f"data:image/jpeg;base64,{sample_image_base64}"
