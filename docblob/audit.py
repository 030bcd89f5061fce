"""
In-memory audit trail of collection mutations.

One AuditLog belongs to one CollectionStore instance. It lives as long as
that instance: entries are appended, never modified or pruned, and are not
persisted anywhere.

Invariants:
    - Entries are appended only after the backing write succeeded
    - Entry data is a deep copy taken at append time
    - history() returns a new tuple; appending later does not change it

Caveat:
    The log is unbounded. Long-lived processes with heavy write traffic
    should create fresh stores periodically or read and drop history.
"""

from __future__ import annotations

import copy
import time
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Tuple


class AuditAction(str, Enum):
    """Kinds of audited mutation."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class AuditEntry:
    """One audited mutation.

    Attributes:
        action: What happened
        data: Resulting record (insert/update) or removed record (delete)
        timestamp: When it was recorded (Unix ms)
    """

    action: AuditAction
    data: Dict[str, Any]
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action.value, "data": copy.deepcopy(self.data), "timestamp": self.timestamp}


class AuditLog:
    """Append-only per-collection history."""

    def __init__(self) -> None:
        self._entries: Dict[str, List[AuditEntry]] = defaultdict(list)

    def record(self, collection: str, action: AuditAction, data: Dict[str, Any]) -> AuditEntry:
        entry = AuditEntry(
            action=AuditAction(action),
            data=copy.deepcopy(data),
            timestamp=int(time.time() * 1000),
        )
        self._entries[collection].append(entry)
        return entry

    def history(self, collection: str) -> Tuple[AuditEntry, ...]:
        return tuple(self._entries.get(collection, ()))

    def collections(self) -> List[str]:
        """Collections with at least one entry."""
        return sorted(name for name, entries in self._entries.items() if entries)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
