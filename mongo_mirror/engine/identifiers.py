"""
Identifier Normalization — Rewrite textual UUIDs as BSON Binary.

Tenant ids and most foreign keys are stored as UUIDs (BSON Binary
subtype 4), but filters are written by hand as JSON text. Any hyphenated
string in a filter is therefore taken to be a UUID and converted; a
hyphenated string that is not a valid UUID is an error rather than a
silent no-match.

## Rules

- str containing "-"       → Binary subtype 4 (or InvalidIdentifier)
- other str                → unchanged
- dict                     → recurse
- list                     → each element by the same rules
- Binary, numbers, bools,
  ObjectId, datetime, None → unchanged

Binary values are not strings, so normalizing twice is the same as
normalizing once.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List

from bson.binary import Binary, UuidRepresentation

from ..errors import InvalidIdentifier


def uuid_to_binary(value: str) -> Binary:
    """Parse a textual UUID into Binary subtype 4."""
    try:
        parsed = uuid.UUID(value)
    except (ValueError, TypeError, AttributeError):
        raise InvalidIdentifier(f"failed to parse UUID: {value!r}")
    return Binary.from_uuid(parsed, UuidRepresentation.STANDARD)


def looks_like_uuid(value: Any) -> bool:
    return isinstance(value, str) and "-" in value


def _normalize_value(value: Any) -> Any:
    if looks_like_uuid(value):
        return uuid_to_binary(value)
    if isinstance(value, dict):
        return normalize_identifiers(value)
    if isinstance(value, list):
        return _normalize_list(value)
    return value


def _normalize_list(items: List[Any]) -> List[Any]:
    for index, item in enumerate(items):
        items[index] = _normalize_value(item)
    return items


def normalize_identifiers(filter: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert UUID-looking strings in a filter tree to Binary, in place.

    Args:
        filter: Query filter (mutated)

    Returns:
        The same filter object, for chaining

    Raises:
        InvalidIdentifier: If a hyphenated string is not a valid UUID
    """
    for key, value in filter.items():
        filter[key] = _normalize_value(value)
    return filter
