# src/castengine/core/canonical.py
"""
Canonical JSON serialization for patch bodies and payload comparison.

Two-phase approach:
1. Normalize: Convert YAML-decoded values to JSON-safe primitives (our code)
2. Serialize: Produce deterministic JSON per RFC 8785/JCS (rfc8785 package)

NaN and Infinity are rejected rather than converted.
"""

import datetime
import math
from typing import Any

import rfc8785


def _normalize_value(obj: Any) -> Any:
    """Convert a single YAML-decoded value to a JSON-safe primitive.

    Raises:
        ValueError: If value contains NaN or Infinity
    """
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            raise ValueError(f"Cannot canonicalize non-finite float: {obj}")
        if obj.is_integer():
            return int(obj)
        return obj

    if obj is None or isinstance(obj, (str, int, bool)):
        return obj

    # PyYAML decodes unquoted timestamps
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if isinstance(obj, bytes):
        return obj.decode("utf-8")

    return obj


def _normalize_for_canonical(data: Any) -> Any:
    """Recursively normalize a data structure for canonical serialization."""
    if isinstance(data, dict):
        return {str(k): _normalize_for_canonical(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_normalize_for_canonical(v) for v in data]
    return _normalize_value(data)


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize ``obj`` to canonical (RFC 8785) JSON bytes."""
    return rfc8785.dumps(_normalize_for_canonical(obj))


def canonical_json(obj: Any) -> str:
    """Serialize ``obj`` to a canonical (RFC 8785) JSON string."""
    return canonical_json_bytes(obj).decode("utf-8")
