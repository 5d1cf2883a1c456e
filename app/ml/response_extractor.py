"""
Recovers a JSON object from free-form model text.

Strategies, first success wins:
1. Parse the whole text as JSON
2. Strip a leading/trailing ``` or ```json fence and parse the remainder
3. Parse the span from the first "{" to the last "}"

No semantic validation happens here; see schema_normalizer.
"""

import json
import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

# A fenced block anywhere in the text; prose before or after is ignored.
FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", flags=re.DOTALL | re.IGNORECASE)
# An opening fence whose closing fence never arrived (truncated output).
OPEN_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*", flags=re.IGNORECASE)


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None


def _parse_direct(text: str) -> Optional[Any]:
    return _loads(text)


def _parse_fenced(text: str) -> Optional[Any]:
    match = FENCE_PATTERN.search(text)
    if match:
        return _loads(match.group(1))
    if OPEN_FENCE_PATTERN.match(text):
        return _loads(OPEN_FENCE_PATTERN.sub("", text, count=1).rstrip("`").strip())
    return None


def _parse_brace_span(text: str) -> Optional[Any]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return _loads(text[start:end + 1])


STRATEGIES = (
    ("direct", _parse_direct),
    ("markdown_fence", _parse_fenced),
    ("brace_span", _parse_brace_span),
)


def extract(text: Optional[str]) -> Optional[Any]:
    """
    Extract a structured value from model text.

    Returns:
        The parsed value, or None if no strategy yields JSON
    """
    if not isinstance(text, str):
        return None

    stripped = text.strip()
    if not stripped:
        return None

    for name, strategy in STRATEGIES:
        value = strategy(stripped)
        if value is not None:
            if name != "direct":
                logger.debug(f"Recovered model JSON via {name} strategy")
            return value

    logger.warning(f"No JSON recoverable from model response ({len(stripped)} chars)")
    return None
