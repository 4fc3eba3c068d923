"""
Best-effort JSON extraction from raw provider text.

Providers asked for "JSON only" still wrap answers in Markdown fences or add a
sentence before the object; this module recovers the outermost JSON object.
"""
import json
import re
from typing import Any, Dict, Optional

_FENCE_OPEN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


class ExtractionError(ValueError):
    """Raised when no JSON object can be recovered from provider text."""


def strip_fences(text: str) -> str:
    return _FENCE_OPEN.sub("", text).replace("```", "")


def extract_json(raw: Optional[str]) -> Dict[str, Any]:
    """
    Decode the JSON object contained in ``raw``.

    Raises:
        ExtractionError: empty text, no braces, invalid JSON, or a top-level
            value that is not an object
    """
    if raw is None or not raw.strip():
        raise ExtractionError("empty response")

    text = strip_fences(raw).strip()
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        raise ExtractionError("no JSON object found")

    try:
        payload = json.loads(text[first : last + 1])
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"invalid JSON: {exc.msg}") from exc

    if not isinstance(payload, dict):
        raise ExtractionError("top-level JSON value is not an object")
    return payload
