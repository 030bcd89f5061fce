"""
Record value types.

Records are semi-structured: a mapping from field name to a JSON value.
Keeping the value space closed makes serialization and schema checks total.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Union

JSONValue = Union[None, bool, int, float, str, List["JSONValue"], Dict[str, "JSONValue"]]
Record = Dict[str, JSONValue]

# System-assigned identifiers, never taken from caller payloads
ID_FIELD = "id"
UID_FIELD = "uid"
SYSTEM_FIELDS = frozenset({ID_FIELD, UID_FIELD})


def find_invalid_value(value: Any, path: str = "$") -> Optional[str]:
    """Return the path of the first non-JSON value, or None if the value is valid."""
    if value is None or isinstance(value, (bool, int, str)):
        return None
    if isinstance(value, float):
        return None if math.isfinite(value) else path
    if isinstance(value, list):
        for i, item in enumerate(value):
            bad = find_invalid_value(item, f"{path}[{i}]")
            if bad:
                return bad
        return None
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                return f"{path}.{key!r}"
            bad = find_invalid_value(item, f"{path}.{key}")
            if bad:
                return bad
        return None
    return path


def strip_system_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of data without id/uid."""
    return {k: v for k, v in data.items() if k not in SYSTEM_FIELDS}
