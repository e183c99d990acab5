"""
Unit tests for models._validation module.
"""

import pytest

from timetrace.models._validation import (
    validate_source_name,
    validate_str_no_null,
    validate_str_not_empty,
    validate_timestamp,
)


class TestValidateTimestamp:
    def test_valid(self):
        validate_timestamp(0, "time")
        validate_timestamp(1_700_000_000_000, "time")

    def test_bool_rejected(self):
        with pytest.raises(TypeError, match="time"):
            validate_timestamp(False, "time")


class TestValidateStrings:
    def test_no_null(self):
        validate_str_no_null("", "details")
        with pytest.raises(ValueError):
            validate_str_no_null("\x00", "details")
        with pytest.raises(TypeError):
            validate_str_no_null(None, "details")

    def test_not_empty(self):
        with pytest.raises(ValueError):
            validate_str_not_empty("", "name")


class TestValidateSourceName:
    @pytest.mark.parametrize("name", ["windows", "macos", "jira", "team-jira", "a.b_c", "0x"])
    def test_valid(self, name):
        validate_source_name(name)

    @pytest.mark.parametrize("name", ["", "Jira", "my source", "_x", "tab\t"])
    def test_invalid(self, name):
        with pytest.raises(ValueError):
            validate_source_name(name)
