"""
Lazy, chainable queries over one collection.

A QueryBuilder is an immutable value: where(), sort() and project() return
new builders and never touch the store. Only exec() performs I/O: one read of
the collection, then, in this fixed order:
    1. every filter (logical AND, applied in the order added)
    2. the sort, if any (stable)
    3. the projection, if any

Example:
    >>> adults = store.query("users").where(lambda u: u.get("age", 0) >= 18)
    >>> names = await adults.sort("name").project(["name"]).exec()
    >>> everyone = await adults.exec()  # intermediate builders stay usable

Invariants:
    - Builders are never mutated after construction
    - exec() never writes and never caches; each call re-reads the collection
    - Results are fresh dicts; mutating them does not affect the store
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .errors import QueryError
from .records import Record

Predicate = Callable[[Record], bool]
Fetch = Callable[[], Awaitable[List[Record]]]


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortSpec:
    field: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class QueryBuilder:
    """Deferred query over one collection.

    Attributes:
        collection: Collection name
        fetch: Coroutine function returning the collection's current records
        filters: Predicates, applied in order
        sort_spec: Single sort key, or None
        projection: Field allowlist, or None
    """

    collection: str
    fetch: Fetch = field(repr=False, compare=False)
    filters: Tuple[Predicate, ...] = ()
    sort_spec: Optional[SortSpec] = None
    projection: Optional[Tuple[str, ...]] = None

    def where(self, predicate: Predicate) -> QueryBuilder:
        """Add a filter; records must satisfy every filter."""
        return replace(self, filters=self.filters + (predicate,))

    def sort(
        self,
        field_name: str,
        direction: Union[SortDirection, str] = SortDirection.ASC,
    ) -> QueryBuilder:
        """Sort by one field, replacing any earlier sort.

        Raises:
            ValueError: If direction is not "asc" or "desc"
        """
        if isinstance(direction, str) and not isinstance(direction, SortDirection):
            direction = direction.lower()
        return replace(self, sort_spec=SortSpec(field_name, SortDirection(direction)))

    def project(self, fields: Sequence[str]) -> QueryBuilder:
        """Keep only these fields in each result."""
        if isinstance(fields, str):
            fields = [fields]
        return replace(self, projection=tuple(fields))

    async def exec(self) -> List[Dict[str, Any]]:
        """Read the collection and evaluate the query."""
        results = await self.fetch()

        for predicate in self.filters:
            results = [r for r in results if predicate(r)]

        if self.sort_spec is not None:
            results = self._sorted(results, self.sort_spec)

        if self.projection is not None:
            return [
                {name: copy.deepcopy(r[name]) for name in self.projection if name in r}
                for r in results
            ]
        return [copy.deepcopy(r) for r in results]

    def _sorted(self, records: List[Record], spec: SortSpec) -> List[Record]:
        # Missing/null values go last in both directions
        present = [r for r in records if r.get(spec.field) is not None]
        absent = [r for r in records if r.get(spec.field) is None]
        try:
            present = sorted(
                present,
                key=lambda r: r[spec.field],
                reverse=spec.direction == SortDirection.DESC,
            )
        except TypeError as e:
            raise QueryError(
                f"Cannot sort {self.collection} by '{spec.field}': {e}",
                collection=self.collection,
            ) from e
        return present + absent
