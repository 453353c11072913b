"""Shared validation functions for all entry points.

Pure functions with no transport dependencies. Each returns
``(cleaned_value, None)`` on success or ``(default, error_message)`` on failure
so transports can shape the error for their own wire format.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable
from typing import Any

from issue_tracker.models import VALID_CLASSIFICATIONS, VALID_RESOLUTIONS, VALID_STATUSES

_MAX_AGENT_LENGTH = 128
_MAX_TITLE_LENGTH = 500


def sanitize_agent(value: Any) -> tuple[str, str | None]:
    """Validate and clean an agent name.

    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "agent must be a string")
    # Check before stripping: reject "\nbad" rather than silently absorbing the newline.
    for ch in value:
        cat = unicodedata.category(ch)
        if cat.startswith("C"):  # Cc (control) and Cf (format)
            return ("", f"agent must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "agent must not be empty")
    if len(cleaned) > _MAX_AGENT_LENGTH:
        return ("", f"agent must be at most {_MAX_AGENT_LENGTH} characters")
    return (cleaned, None)


def sanitize_title(value: Any) -> tuple[str, str | None]:
    if not isinstance(value, str):
        return ("", "title must be a string")
    cleaned = value.strip()
    if not cleaned:
        return ("", "title must not be empty")
    if len(cleaned) > _MAX_TITLE_LENGTH:
        return ("", f"title must be at most {_MAX_TITLE_LENGTH} characters")
    return (cleaned, None)


def validate_issue_id(value: Any) -> tuple[str, str | None]:
    """Issue ids are matched exactly, so no stripping; blank is rejected."""
    if not isinstance(value, str):
        return ("", "issue_id must be a string")
    if not value.strip():
        return ("", "issue_id must not be empty")
    return (value, None)


def require_text(value: Any, name: str) -> tuple[str, str | None]:
    """Free text (descriptions, comments): must be a string, may be empty."""
    if not isinstance(value, str):
        return ("", f"{name} must be a string")
    return (value, None)


def _choice(value: Any, name: str, allowed: Iterable[str]) -> tuple[str, str | None]:
    allowed = tuple(allowed)
    if not isinstance(value, str) or value not in allowed:
        return ("", f"{name} must be one of: {', '.join(allowed)}")
    return (value, None)


def validate_classification(value: Any) -> tuple[str, str | None]:
    return _choice(value, "classification", VALID_CLASSIFICATIONS)


def validate_status(value: Any) -> tuple[str, str | None]:
    return _choice(value, "status", VALID_STATUSES)


def validate_resolution(value: Any) -> tuple[str, str | None]:
    return _choice(value, "resolution", sorted(VALID_RESOLUTIONS))


def validate_classification_list(value: Any) -> tuple[list[str], str | None]:
    if not isinstance(value, list):
        return ([], "classifications must be a list")
    cleaned: list[str] = []
    for item in value:
        c, err = validate_classification(item)
        if err:
            return ([], err)
        cleaned.append(c)
    return (cleaned, None)


def validate_non_negative_int(value: Any, name: str) -> tuple[int | None, str | None]:
    """Optional integer >= 0. ``None`` passes through."""
    if value is None:
        return (None, None)
    if isinstance(value, bool) or not isinstance(value, int):
        return (None, f"{name} must be an integer")
    if value < 0:
        return (None, f"{name} must be >= 0")
    return (value, None)
