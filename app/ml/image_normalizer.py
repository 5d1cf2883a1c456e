"""
Image payload normalization.

Handles:
- data URLs (data:image/<subtype>;base64,<payload>)
- bare base64 strings (assumed JPEG)
- size limits

The image is treated as opaque bytes: decoding pixels is the vision
model's job, not ours.
"""

import base64
import binascii
import logging
import re
from typing import Any, Optional

from app.core.exceptions import InputError
from app.ml.base import ImagePayload

logger = logging.getLogger(__name__)

SUPPORTED_SUBTYPES = {
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}
DEFAULT_MIME_TYPE = "image/jpeg"

DATA_URL_PATTERN = re.compile(
    r"^\s*data:image/(?P<subtype>[a-zA-Z0-9.+-]+);base64,(?P<data>.*)$",
    flags=re.IGNORECASE | re.DOTALL,
)


class ImageNormalizer:
    """
    Decodes an inbound image string into an ImagePayload.

    Usage:
        normalizer = ImageNormalizer(max_size_mb=10)
        payload = normalizer.normalize("data:image/png;base64,iVBORw0...")
    """

    def __init__(self, max_size_mb: Optional[float] = None):
        """
        Args:
            max_size_mb: Reject decoded images larger than this; None disables the check
        """
        self.max_size_bytes = int(max_size_mb * 1024 * 1024) if max_size_mb else None

    def normalize(self, image: Any) -> ImagePayload:
        """
        Normalize an image string.

        Raises:
            InputError: empty or non-string input, unsupported data-URL
                subtype, or undecodable base64
        """
        if not isinstance(image, str):
            raise InputError("Image must be a base64 string or data URL")
        if not image.strip():
            raise InputError("No image provided")

        if image.lstrip()[:5].lower() == "data:":
            mime_type, encoded = self._split_data_url(image)
        else:
            mime_type, encoded = DEFAULT_MIME_TYPE, image

        data = self._decode(encoded)

        if self.max_size_bytes is not None and len(data) > self.max_size_bytes:
            raise InputError(
                f"Image exceeds {self.max_size_bytes // (1024 * 1024)}MB limit"
            )

        logger.debug(f"Normalized image: {mime_type}, {len(data)} bytes")
        return ImagePayload(data=data, mime_type=mime_type)

    def _split_data_url(self, image: str) -> tuple[str, str]:
        match = DATA_URL_PATTERN.match(image)
        if not match:
            raise InputError(
                "Invalid image format. Expected data:image/<type>;base64,<data>"
            )

        subtype = match.group("subtype").lower()
        if subtype not in SUPPORTED_SUBTYPES:
            supported = ", ".join(sorted(SUPPORTED_SUBTYPES))
            raise InputError(
                f"Unsupported image type 'image/{subtype}'. Supported: {supported}"
            )
        return SUPPORTED_SUBTYPES[subtype], match.group("data")

    @staticmethod
    def _decode(encoded: str) -> bytes:
        compact = re.sub(r"\s+", "", encoded)
        if not compact:
            raise InputError("Image payload is empty")
        try:
            data = base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InputError(f"Invalid base64 image data: {e}") from e
        if not data:
            raise InputError("Image payload is empty")
        return data


def normalize(image: Any, max_size_mb: Optional[float] = None) -> ImagePayload:
    """Module-level convenience wrapper around ImageNormalizer."""
    return ImageNormalizer(max_size_mb=max_size_mb).normalize(image)
