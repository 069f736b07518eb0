import json
from typing import Any, Dict

from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code block (```json ... ```), if any."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse an LLM response that must be a single JSON object.

    Only formatting noise (whitespace, code fences) is tolerated. Truncated,
    concatenated or non-object output is rejected rather than salvaged.

    Args:
        text: Raw model output

    Returns:
        The decoded JSON object

    Raises:
        ValueError: If the text is empty, not valid JSON, or not an object
    """
    if not text or not text.strip():
        raise ValueError("Empty response")

    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Model output is not valid JSON: {e}")
        raise ValueError(f"Invalid JSON at position {e.pos}: {e.msg}") from e

    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
