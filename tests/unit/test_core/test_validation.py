"""
Unit tests for argument validation helpers.
"""

import pytest

from imessage_engine.core.validation import (
    is_email,
    validate_limit,
    validate_message_body,
    validate_non_empty_string,
    validate_positive_int,
)


class TestValidatePositiveInt:

    def test_none_passes_through(self):
        assert validate_positive_int(None, "limit") == (None, None)

    def test_numeric_strings_are_accepted(self):
        assert validate_positive_int("25", "limit") == (25, None)

    def test_bool_is_rejected(self):
        value, error = validate_positive_int(True, "limit")
        assert value is None
        assert "bool" in error

    def test_bounds(self):
        assert validate_positive_int(0, "limit")[1] is not None
        assert validate_positive_int(501, "limit", max_val=500)[1] is not None
        assert validate_positive_int(500, "limit", max_val=500) == (500, None)

    def test_non_integer_is_rejected(self):
        _, error = validate_positive_int("lots", "limit")
        assert "must be an integer" in error


class TestValidateLimit:

    def test_default_when_absent(self):
        assert validate_limit(None, default=20) == (20, None)

    def test_out_of_range_reports_error(self):
        _, error = validate_limit(1000, max_val=500)
        assert "at most 500" in error


class TestValidateNonEmptyString:

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_or_blank(self, value):
        stripped, error = validate_non_empty_string(value, "body")
        assert stripped is None
        assert error is not None

    def test_strips_whitespace(self):
        assert validate_non_empty_string("  hi  ", "body") == ("hi", None)

    def test_rejects_non_strings(self):
        _, error = validate_non_empty_string(42, "body")
        assert "must be a string" in error


class TestValidateMessageBody:

    def test_keeps_surrounding_whitespace(self):
        assert validate_message_body("  hi\n") == ("  hi\n", None)

    @pytest.mark.parametrize("value", [None, "", " \n\t", 42])
    def test_blank_or_non_string(self, value):
        body, error = validate_message_body(value)
        assert body is None
        assert error is not None

    def test_rejects_nul(self):
        body, error = validate_message_body("hi\x00there")
        assert body is None
        assert "NUL" in error


@pytest.mark.parametrize("identifier,expected", [
    ("jane@example.com", True),
    ("jane.doe+tag@mail.example.co.uk", True),
    ("jane@example", False),
    ("+14155551234", False),
    ("", False),
    (None, False),
])
def test_is_email(identifier, expected):
    assert is_email(identifier) is expected
