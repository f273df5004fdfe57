"""Input normalisation helpers shared by the hierarchy services."""

import re
import uuid
from typing import Any, Optional


def is_valid_id(value: Any) -> bool:
    """Return True if ``value`` is a node id in its stored form.

    Ids are lower-case hyphenated UUID strings; other spellings of the same
    UUID (upper case, braces, ``urn:uuid:``) are rejected.
    """
    if not isinstance(value, str) or not value:
        return False
    try:
        return str(uuid.UUID(value)) == value
    except ValueError:
        return False


def collapse_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def to_title_case(value: str) -> str:
    """Upper-case the first letter after every word boundary.

    The rest of each word is left untouched, so ``DNA`` survives and
    ``x-ray`` becomes ``X-Ray``.
    """
    return re.sub(r"\b\w", lambda match: match.group().upper(), collapse_whitespace(value))


def normalize_name(kind: str, value: Optional[str]) -> str:
    """Normalise a node name for storage; exam names are stored upper case."""
    if not isinstance(value, str):
        return ""
    if kind == "exam":
        return collapse_whitespace(value).upper()
    return to_title_case(value)


def parse_position(value: Any) -> Optional[int]:
    """Coerce a position to ``int``; ``None`` when it is not a positive integer."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 1 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number >= 1 else None
    return None
