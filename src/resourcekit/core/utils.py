"""
Utility functions for resourcekit.

Includes:
- Case conversion (camelCase <-> snake_case), used for aggregate aliases
  and resource type inference
- Stable signatures of field lists, used in cache keys
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Iterable, Optional


# =============================================================================
# Case conversion utilities
# =============================================================================

_CAMEL_TO_SNAKE_PATTERN = re.compile(r'(?<!^)(?=[A-Z])')
_SNAKE_TO_CAMEL_PATTERN = re.compile(r'_([a-z0-9])')


def to_snake_case(name: str) -> str:
    """
    Convert camelCase to snake_case.

    Examples:
        ownedProperties -> owned_properties
        firstName -> first_name
        HTTPResponse -> http_response
    """
    # Handle consecutive uppercase (HTTP -> http)
    result = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    result = _CAMEL_TO_SNAKE_PATTERN.sub('_', result)
    return result.lower()


def to_camel_case(name: str) -> str:
    """
    Convert snake_case to camelCase.

    Examples:
        owned_properties -> ownedProperties
        first_name -> firstName
    """
    return _SNAKE_TO_CAMEL_PATTERN.sub(lambda match: match.group(1).upper(), name)


def to_pascal_case(name: str) -> str:
    """
    Convert snake_case to PascalCase.

    Examples:
        total_amount -> TotalAmount
        total -> Total
    """
    camel = to_camel_case(name)
    return camel[0].upper() + camel[1:] if camel else camel


# =============================================================================
# Signatures
# =============================================================================


def unique(values: Iterable[str]) -> list[str]:
    """Deduplicate preserving first occurrence."""
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def signature(payload: Any) -> str:
    """
    md5 digest of a JSON-serializable payload.

    Keys are sorted so that equal mappings always hash the same.
    """
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def fields_signature(fields: Optional[Iterable[str]], *, preserve_order: bool = False) -> Optional[list[str]]:
    """
    Normalize a field list for hashing.

    None stays None (meaning "defaults"). Otherwise duplicates are dropped
    and, unless order matters, the list is sorted.
    """
    if fields is None:
        return None
    normalized = unique(fields)
    return normalized if preserve_order else sorted(normalized)
