"""
JSON output handling for generate_json.

Providers are asked for "JSON only" but routinely wrap it in Markdown fences
or add a sentence around it. clean_json_response() strips that, and
validate_json_shape() applies a minimal structural check (top-level type and
required keys) before the caller trusts the payload.

When every attempt fails, the router returns the safe default registered for
the request context in JSON_SAFE_DEFAULTS, so agents always get a value they
can branch on.
"""

import copy
import json
import logging
import re
from typing import Any

from agent.providers.errors import JSONParseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

JSON_TYPE_CHECKS: dict[str, type | tuple[type, ...]] = {
    "object": dict,
    "array": list,
    "string": str,
    "number": (int, float),
    "boolean": bool,
}

# Registered safe defaults, keyed by GenerationOptions.context
JSON_SAFE_DEFAULTS: dict[str, Any] = {
    "Overseer": {
        "reasoning": "AI system temporarily unavailable, continuing with booking",
        "agentToUse": "booking",
        "isNewBookingRequest": False,
    },
    "LanguageAgent": {
        "detectedLanguage": "en",
        "confidence": 0.1,
        "shouldLock": False,
        "reasoning": "AI system temporarily unavailable",
    },
    "ConfirmationAgent": {
        "confirmationStatus": "unclear",
        "reasoning": "AI system temporarily unavailable",
    },
    "SpecialRequestAnalysis": {
        "patterns": [],
        "reasoning": "AI system temporarily unavailable",
    },
    "name-choice-extraction": {
        "chosen_name": None,
        "confidence": 0.0,
        "reasoning": "AI system temporarily unavailable",
    },
    "confirmation-modification-extraction": {},
}

GENERIC_JSON_SAFE_DEFAULT: dict[str, Any] = {
    "reasoning": "AI system temporarily unavailable",
    "error": True,
    "fallback": True,
}


def get_json_safe_default(context: str) -> Any:
    """Return a fresh copy of the safe default registered for `context`."""
    default = JSON_SAFE_DEFAULTS.get(context, GENERIC_JSON_SAFE_DEFAULT)
    return copy.deepcopy(default)


def clean_json_response(response: str) -> str:
    """
    Strip Markdown fences and surrounding prose, keeping the outermost
    JSON object or array.

    Examples:
        >>> clean_json_response('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
        >>> clean_json_response('Sure! [1, 2] hope it helps')
        '[1, 2]'
    """
    cleaned = _FENCE_RE.sub("", response).strip()

    start_obj, end_obj = cleaned.find("{"), cleaned.rfind("}")
    start_arr, end_arr = cleaned.find("["), cleaned.rfind("]")

    candidates = []
    if start_obj != -1 and end_obj > start_obj:
        candidates.append((start_obj, end_obj))
    if start_arr != -1 and end_arr > start_arr:
        candidates.append((start_arr, end_arr))

    if not candidates:
        return cleaned

    # Whichever structure opens first is the outermost one
    start, end = min(candidates)
    return cleaned[start:end + 1]


def parse_json_response(response: str) -> Any:
    """
    Clean and parse a provider response.

    Raises:
        JSONParseError: If the cleaned text is not valid JSON.
    """
    cleaned = clean_json_response(response)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise JSONParseError(f"Invalid JSON: {e.msg} at position {e.pos}", raw_response=response) from e


def validate_json_shape(data: Any, schema: dict[str, Any] | None) -> None:
    """
    Minimal structural validation.

    Supported schema keys:
        type: "object" | "array" | "string" | "number" | "boolean"
        required: list of keys that must be present (objects only)

    Raises:
        JSONParseError: On a type mismatch or missing required key.
    """
    if not schema:
        return

    expected = schema.get("type")
    if expected:
        python_type = JSON_TYPE_CHECKS.get(expected)
        if python_type is not None and not isinstance(data, python_type):
            raise JSONParseError(f"Expected {expected}, got {type(data).__name__}")

    required = schema.get("required") or []
    if required:
        if not isinstance(data, dict):
            raise JSONParseError("Required fields declared but response is not an object")
        missing = [key for key in required if key not in data]
        if missing:
            raise JSONParseError(f"Missing required fields: {', '.join(missing)}")
