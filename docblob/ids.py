"""
Record identifier allocation.

Two identifiers per record:
- id: decimal string, unique and increasing within one collection
- uid: random UUID4, unique across every collection

Invariants:
    - next_id() is always greater than every parseable id in the collection
    - Ids that are not decimal integers count as 0 and never block allocation
"""

from __future__ import annotations

import re
import uuid
from typing import Any, Iterable, Mapping

from .records import ID_FIELD

# Plain ASCII decimal; int() alone also accepts underscores and a leading +
_DECIMAL = re.compile(r"-?[0-9]+")


def parse_id(value: Any) -> int:
    """Numeric value of a stored id; 0 when absent or not a decimal integer."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        return int(text) if _DECIMAL.fullmatch(text) else 0
    return 0


def max_id(records: Iterable[Mapping[str, Any]]) -> int:
    """Largest numeric id in records, floored at 0."""
    return max(max((parse_id(r.get(ID_FIELD)) for r in records), default=0), 0)


def next_id(records: Iterable[Mapping[str, Any]]) -> str:
    """Next id for a collection: max(existing ids, 0) + 1 as a decimal string."""
    return str(max_id(records) + 1)


def mint_uid() -> str:
    """New globally unique record token (UUID4 from the OS CSPRNG)."""
    return str(uuid.uuid4())
