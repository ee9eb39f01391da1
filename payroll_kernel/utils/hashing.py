"""
Deterministic hashing utilities.

Draft fingerprints and configuration checksums must be reproducible across
processes and machines.  This module provides the one canonical form.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Serialize types the json module does not know about.

    Decimals are normalized so 12000, 12000.00 and 1.2E+4 hash alike.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        if not obj.is_finite():
            return str(obj)
        normalized = obj.normalize()
        # normalize() turns 12000 into 1.2E+4; render it back positionally
        return format(normalized, "f")
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Produces a deterministic JSON representation:
    - Keys are sorted alphabetically
    - No whitespace
    - Consistent handling of Decimal, date/datetime, UUID and Enum
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict | list) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
