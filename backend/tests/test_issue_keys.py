"""
Tracklane Backend: Issue Key Helper Tests
============================================

What:  Team key validation and the TEAM-123 key format.
"""

import pytest

from tracklane.exceptions import ValidationError
from tracklane.services.issue_keys import (
    format_issue_key,
    normalize_team_key,
    parse_issue_key,
    rekey,
)


class TestNormalizeTeamKey:

    @pytest.mark.parametrize("raw, expected", [
        ("eng", "ENG"),
        (" Ops ", "OPS"),
        ("A", "A"),
        ("Q3PLAN", "Q3PLAN"),
        ("ABCDEFGHIJ", "ABCDEFGHIJ"),
    ])
    def test_valid_keys(self, raw, expected):
        assert normalize_team_key(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "3D", "EN-G", "ABCDEFGHIJK", "ÉQUIPE", "EN G"])
    def test_invalid_keys(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            normalize_team_key(raw)
        assert exc_info.value.field == "key"


class TestIssueKeyFormat:

    def test_format(self):
        assert format_issue_key("ENG", 42) == "ENG-42"

    def test_parse(self):
        assert parse_issue_key("ENG-42") == ("ENG", 42)

    @pytest.mark.parametrize("key", ["ENG", "-42", "ENG-", "ENG-4a", "ENG-٣", "ENG-1\n"])
    def test_parse_rejects_malformed(self, key):
        with pytest.raises(ValidationError):
            parse_issue_key(key)

    @pytest.mark.parametrize("key", ["ENG-0", "ENG-0001", "ENG-007"])
    def test_parse_rejects_non_canonical_numbers(self, key):
        with pytest.raises(ValidationError):
            parse_issue_key(key)

    def test_parse_accepts_largest_number(self):
        assert parse_issue_key("ENG-2147483647") == ("ENG", 2**31 - 1)

    @pytest.mark.parametrize("key", [
        "ENG-2147483648",
        "ENG-99999999999",
        "ENG-" + "9" * 5000,
    ])
    def test_parse_rejects_numbers_too_large(self, key):
        with pytest.raises(ValidationError) as exc_info:
            parse_issue_key(key)
        assert exc_info.value.field == "issue_key"

    def test_rekey_replaces_prefix_only(self):
        assert rekey("ENG-7", "ENGR") == "ENGR-7"

    def test_rekey_is_idempotent(self):
        once = rekey("ENG-7", "ENGR")
        assert rekey(once, "ENGR") == once

    def test_rekey_without_separator(self):
        with pytest.raises(ValidationError):
            rekey("ENG7", "ENGR")
