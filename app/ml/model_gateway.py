"""
Vision Model Gateway

Invokes the vision-language model with retry and exponential backoff.

The gateway knows nothing about JSON: it returns the model's raw text
for the response extractor. It only decides which failures are worth
retrying:
- Rate limit / quota exhaustion (429, RESOURCE_EXHAUSTED)
- 5xx service errors, overload, UNAVAILABLE
- Deadline exceeded / timeouts
- Empty or whitespace-only response text

Anything else is permanent and surfaces immediately.

The concrete client is Google Gemini via the google-genai SDK; tests
and alternative providers plug in through VisionModelClient.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    ConfigError,
    UpstreamPermanentError,
    UpstreamTransientError,
)
from app.ml.base import ImagePayload

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}

RATE_LIMIT_SIGNALS = (
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
    "quota",
    "resource_exhausted",
    "resource exhausted",
)

TRANSIENT_SIGNALS = RATE_LIMIT_SIGNALS + (
    "overloaded",
    "unavailable",
    "deadline",
    "timed out",
    "timeout",
    "internal error",
    "try again",
)

TRANSIENT_EXCEPTION_TYPES = (
    asyncio.TimeoutError,
    TimeoutError,
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


class EmptyModelResponse(Exception):
    """The model returned no text at all."""


@dataclass(frozen=True)
class ErrorClassification:
    """Whether an upstream failure is worth retrying."""
    transient: bool
    rate_limited: bool = False
    status_code: Optional[int] = None


def _status_code_of(exc: BaseException) -> Optional[int]:
    """Best-effort HTTP status from SDK and transport exceptions."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("code", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and 100 <= value < 600:
            return value
    return None


def classify_error(exc: BaseException) -> ErrorClassification:
    """Classify an exception raised by a model call as transient or permanent."""
    if isinstance(exc, EmptyModelResponse):
        return ErrorClassification(transient=True)

    status_code = _status_code_of(exc)
    status_text = str(getattr(exc, "status", "") or "")
    signal = f"{status_text} {exc}".lower()

    rate_limited = status_code == 429 or any(s in signal for s in RATE_LIMIT_SIGNALS)

    if isinstance(exc, TRANSIENT_EXCEPTION_TYPES):
        return ErrorClassification(transient=True, rate_limited=rate_limited, status_code=status_code)

    if status_code is not None:
        transient = status_code in TRANSIENT_STATUS_CODES or status_code >= 500
        return ErrorClassification(
            transient=transient, rate_limited=rate_limited, status_code=status_code
        )

    transient = any(s in signal for s in TRANSIENT_SIGNALS)
    return ErrorClassification(transient=transient, rate_limited=rate_limited)


# =============================================================================
# Model clients
# =============================================================================

class VisionModelClient(ABC):
    """A model that takes an image and a prompt and returns free-form text."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Human-readable model name."""
        pass

    @property
    def is_configured(self) -> bool:
        """Whether credentials are present."""
        return True

    @abstractmethod
    async def generate(self, prompt: str, image_bytes: bytes, mime_type: str) -> str:
        """Run the model and return its text output (possibly empty)."""
        pass


class GeminiVisionClient(VisionModelClient):
    """
    Google Gemini via the google-genai SDK.

    The SDK client is created on first use so that a missing API key
    surfaces as ConfigError on the request that needs it rather than
    failing application startup.
    """

    def __init__(self, api_key: Optional[str] = None, model: str = "gemini-2.5-flash"):
        self.api_key = api_key
        self.model = model
        self._client = None

    @property
    def model_name(self) -> str:
        return self.model

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        if not self.api_key:
            raise ConfigError(
                "Vision model API key not configured. "
                "Set CAMTRAP_ID_GEMINI_API_KEY or GEMINI_API_KEY."
            )
        if self._client is None:
            from google import genai

            logger.info(f"Creating Gemini client for model {self.model}")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def generate(self, prompt: str, image_bytes: bytes, mime_type: str) -> str:
        client = self._get_client()
        from google.genai import types

        response = await client.aio.models.generate_content(
            model=self.model,
            contents=[
                types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                prompt,
            ],
        )
        return response.text or ""


# =============================================================================
# Gateway
# =============================================================================

class ModelGateway:
    """
    Retrying front for a VisionModelClient.

    Delay before retry n (attempts numbered from 0) is
    base_delay * 2 ** n. Waiting uses the injected coroutine sleep, so
    other requests on the event loop keep running.
    """

    def __init__(
        self,
        client: VisionModelClient,
        max_retries: int = 2,
        base_delay: float = 1.0,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            client: Model client to call
            max_retries: Additional attempts after the first one
            base_delay: Backoff base in seconds
            timeout: Per-attempt deadline in seconds; None disables it
            sleep: Coroutine used to wait between attempts
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self.client = client
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        client: Optional[VisionModelClient] = None,
        settings: Optional[Settings] = None,
    ) -> "ModelGateway":
        settings = settings or get_settings()
        client = client or GeminiVisionClient(
            api_key=settings.resolved_api_key(),
            model=settings.gemini_model,
        )
        return cls(
            client=client,
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay_seconds,
            timeout=settings.model_timeout_seconds,
        )

    def backoff_delay(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    async def _call_once(self, prompt: str, image: ImagePayload) -> str:
        call = self.client.generate(prompt, image.data, image.mime_type)
        if self.timeout is not None:
            text = await asyncio.wait_for(call, timeout=self.timeout)
        else:
            text = await call
        if not isinstance(text, str) or not text.strip():
            raise EmptyModelResponse("Model returned an empty response")
        return text

    async def invoke(
        self,
        prompt: str,
        image: ImagePayload,
        max_retries: Optional[int] = None,
    ) -> str:
        """
        Call the model, retrying transient failures.

        Returns:
            The model's raw text, verbatim

        Raises:
            ConfigError: credentials missing
            UpstreamPermanentError: non-transient failure (no retry)
            UpstreamTransientError: transient failures outlasted the retry budget
            ValueError: max_retries is negative
        """
        retries = self.max_retries if max_retries is None else max_retries
        if retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {retries}")
        total_attempts = retries + 1
        last_error: Optional[BaseException] = None
        last_classification = ErrorClassification(transient=True)

        for attempt in range(total_attempts):
            start_time = time.time()
            try:
                text = await self._call_once(prompt, image)
            except ConfigError:
                raise
            except Exception as e:
                elapsed_ms = (time.time() - start_time) * 1000
                classification = classify_error(e)
                if not classification.transient:
                    logger.error(f"Permanent model error after {elapsed_ms:.0f}ms: {e}")
                    raise UpstreamPermanentError(
                        f"Vision model request failed: {e}",
                        upstream_status=classification.status_code,
                    ) from e

                last_error, last_classification = e, classification
                if attempt < retries:
                    delay = self.backoff_delay(attempt)
                    logger.warning(
                        f"Transient model error on attempt {attempt + 1}/{total_attempts} "
                        f"({e}); retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                continue

            elapsed_ms = (time.time() - start_time) * 1000
            logger.info(
                f"Model {self.client.model_name} responded in {elapsed_ms:.0f}ms "
                f"(attempt {attempt + 1}/{total_attempts})"
            )
            return text

        logger.error(f"Model still failing after {total_attempts} attempts: {last_error}")
        if last_classification.rate_limited:
            message = "Vision model rate limit reached. Please try again shortly."
        else:
            message = f"Vision model temporarily unavailable: {last_error}"
        raise UpstreamTransientError(
            message,
            attempts=total_attempts,
            rate_limited=last_classification.rate_limited,
        ) from last_error
