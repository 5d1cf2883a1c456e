"""
Exception hierarchy for the identification service.

Every request failure the caller can see is one of these. Each class
knows the HTTP status it maps to and whether the caller may retry,
so the API layer renders them without a lookup table.

Extraction failures and out-of-range model fields are deliberately
absent: they are handled as data (null / defaulted values), not raised.
"""

from typing import Any, Dict, Optional


class IdentificationError(Exception):
    """Base exception for all identification service errors."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_envelope(self) -> Dict[str, Any]:
        """Render the JSON error envelope returned to the caller."""
        return {"success": False, "error": self.message}


class InputError(IdentificationError):
    """Malformed or missing image payload."""

    status_code = 400


class ConfigError(IdentificationError):
    """Missing or invalid upstream credentials."""

    status_code = 500


# =============================================================================
# Upstream (vision model) errors
# =============================================================================

class UpstreamError(IdentificationError):
    """Base exception for failures of the vision-language model."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class UpstreamTransientError(UpstreamError):
    """Capacity, rate-limit, timeout or empty-response failure after retries."""

    retryable = True

    def __init__(self, message: str, attempts: int = 1, rate_limited: bool = False):
        super().__init__(message, attempts=attempts)
        self.rate_limited = rate_limited

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 429 if self.rate_limited else 500

    def to_envelope(self) -> Dict[str, Any]:
        envelope = super().to_envelope()
        envelope["retryable"] = True
        envelope["needs_review"] = True
        return envelope


class UpstreamPermanentError(UpstreamError):
    """Upstream failure that a retry would not fix."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message, attempts=1)
        self.upstream_status = upstream_status
