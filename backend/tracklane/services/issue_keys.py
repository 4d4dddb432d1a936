"""
Tracklane Backend: Issue Key Helpers
=======================================

What:  Pure functions for the `{TEAM}-{number}` issue key format.
Who:   IssueService (building keys at creation, re-prefixing on team rename),
       request schemas (team key validation).

Format:
    ENG-42
    └┬┘ └┬┘
     │   └─ key_number, allocated once from the team's sequence counter
     └───── team key, may change; rewriting it never touches the number
"""

import re
from typing import Tuple

from tracklane.exceptions import ValidationError

KEY_SEPARATOR = "-"

# 1-10 chars, starts with a letter, uppercase letters and digits only
TEAM_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9]{0,9}$")

# key_number is a 32-bit Integer column; numbers start at 1, no leading zeros
MAX_ISSUE_NUMBER = 2**31 - 1
ISSUE_NUMBER_PATTERN = re.compile(r"[1-9][0-9]{0,9}")


def normalize_team_key(raw: str) -> str:
    """
    Upper-case and validate a team key.

    Raises:
        ValidationError: The key is empty, too long, or contains characters
                         other than A-Z and 0-9 (the separator included).
    """
    key = (raw or "").strip().upper()
    if not TEAM_KEY_PATTERN.match(key):
        raise ValidationError(
            message=(
                f"Invalid team key '{raw}'. Use 1-10 letters or digits, "
                "starting with a letter."
            ),
            field="key",
        )
    return key


def format_issue_key(team_key: str, number: int) -> str:
    return f"{team_key}{KEY_SEPARATOR}{number}"


def parse_issue_key(key: str) -> Tuple[str, int]:
    """
    Split `ENG-42` into ("ENG", 42).

    Only the canonical spelling is accepted: `ENG-042` and `ENG-0` are
    malformed, as is any number that does not fit the key_number column.

    Raises:
        ValidationError: No separator, empty prefix, or a bad number suffix.
    """
    prefix, sep, number = (key or "").partition(KEY_SEPARATOR)
    if (
        not sep
        or not prefix
        or not ISSUE_NUMBER_PATTERN.fullmatch(number)
        or int(number) > MAX_ISSUE_NUMBER
    ):
        raise ValidationError(
            message=f"Invalid issue key '{key}'. Expected the form TEAM-123.",
            field="issue_key",
        )
    return prefix, int(number)


def rekey(key: str, new_prefix: str) -> str:
    """
    Replace everything before the first separator with `new_prefix`.

    Idempotent: rekey(rekey(k, p), p) == rekey(k, p).
    """
    _, sep, rest = key.partition(KEY_SEPARATOR)
    if not sep:
        raise ValidationError(
            message=f"Invalid issue key '{key}'. Expected the form TEAM-123.",
            field="issue_key",
        )
    return f"{new_prefix}{KEY_SEPARATOR}{rest}"
