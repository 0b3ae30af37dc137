"""
Unit tests for agent/providers/json_output.py.

Tests coverage:
- clean_json_response() fence and prose stripping
- parse_json_response() error wrapping
- validate_json_shape() type / required checks
- get_json_safe_default() registry lookups
"""

import pytest

from agent.providers.errors import JSONParseError
from agent.providers.json_output import (
    GENERIC_JSON_SAFE_DEFAULT,
    clean_json_response,
    get_json_safe_default,
    parse_json_response,
    validate_json_shape,
)


class TestCleanJsonResponse:

    def test_strips_json_fence(self):
        assert clean_json_response('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strips_plain_fence(self):
        assert clean_json_response('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_cuts_surrounding_prose(self):
        raw = 'Here is the result: {"status": "ok", "nested": {"x": 1}} Let me know!'
        assert clean_json_response(raw) == '{"status": "ok", "nested": {"x": 1}}'

    def test_array_payload(self):
        assert clean_json_response("Sure! [1, 2] hope it helps") == "[1, 2]"

    def test_object_containing_array_keeps_object(self):
        assert clean_json_response('{"patterns": [1, 2]}') == '{"patterns": [1, 2]}'

    def test_no_json_returns_stripped_text(self):
        assert clean_json_response("  nothing here  ") == "nothing here"


class TestParseJsonResponse:

    def test_parses_valid(self):
        assert parse_json_response('```json\n{"ok": true}\n```') == {"ok": True}

    def test_invalid_raises_json_parse_error(self):
        with pytest.raises(JSONParseError) as exc_info:
            parse_json_response("{not: valid}")

        assert exc_info.value.raw_response == "{not: valid}"
        assert "Invalid JSON" in str(exc_info.value)


class TestValidateJsonShape:

    def test_no_schema_accepts_anything(self):
        validate_json_shape("text", None)

    def test_type_mismatch(self):
        with pytest.raises(JSONParseError, match="Expected object"):
            validate_json_shape([1, 2], {"type": "object"})

    def test_missing_required(self):
        with pytest.raises(JSONParseError, match="confirmationStatus"):
            validate_json_shape({"reasoning": "x"}, {"type": "object", "required": ["confirmationStatus"]})

    def test_valid_object(self):
        validate_json_shape({"confirmationStatus": "positive"}, {"type": "object", "required": ["confirmationStatus"]})

    def test_array_type(self):
        validate_json_shape([], {"type": "array"})


class TestSafeDefaults:

    def test_overseer_default(self):
        default = get_json_safe_default("Overseer")

        assert default["agentToUse"] == "booking"
        assert default["isNewBookingRequest"] is False

    def test_unknown_context_generic(self):
        assert get_json_safe_default("nope") == GENERIC_JSON_SAFE_DEFAULT

    def test_defaults_are_copies(self):
        """Mutating a returned default never leaks into the registry."""
        first = get_json_safe_default("SpecialRequestAnalysis")
        first["patterns"].append("x")

        assert get_json_safe_default("SpecialRequestAnalysis")["patterns"] == []
