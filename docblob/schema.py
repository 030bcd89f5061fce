"""
Per-collection schemas and record validation.

A schema declares:
- required: fields that must be present and non-null on insert
- types: field -> type name (advisory unless the validator enforces types)
- defaults: field -> value merged under the caller's payload

Invariants:
    - Validation errors are deterministic (fields are checked in declared order)
    - Defaults never win over caller-supplied values
    - Defaults are deep-copied, so records never share mutable default values

Example:
    >>> validator = SchemaValidator({"users": {"required": ["email"], "defaults": {"role": "customer"}}})
    >>> record = validator.schema_for("users").apply_defaults({"email": "a@b.c"})
    >>> validator.validate("users", record)
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError
from .records import find_invalid_value

TYPE_NAMES = ("string", "number", "integer", "boolean", "array", "object", "null")


class Schema(BaseModel):
    """Declarative rules for one collection."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    required: List[str] = Field(default_factory=list)
    types: Dict[str, str] = Field(default_factory=dict)
    defaults: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("types")
    @classmethod
    def _known_type_names(cls, value: Dict[str, str]) -> Dict[str, str]:
        for name, type_name in value.items():
            if type_name not in TYPE_NAMES:
                raise ValueError(f"Unknown type '{type_name}' for field '{name}'. Must be one of {TYPE_NAMES}")
        return value

    @field_validator("defaults")
    @classmethod
    def _json_defaults(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        bad = find_invalid_value(value)
        if bad:
            raise ValueError(f"Default at {bad} is not a JSON value")
        return value

    def apply_defaults(self, partial: Mapping[str, Any]) -> Dict[str, Any]:
        """Return defaults overlaid with partial (partial wins ties)."""
        merged = copy.deepcopy(self.defaults)
        merged.update(partial)
        return merged


SchemaLike = Union[Schema, Mapping[str, Any]]


def _matches_type(value: Any, type_name: str) -> bool:
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if type_name == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "array":
        return isinstance(value, list)
    if type_name == "object":
        return isinstance(value, dict)
    if type_name == "null":
        return value is None
    return False


def _type_mismatches(schema: Schema, record: Mapping[str, Any]) -> List[Tuple[str, str]]:
    """(field, declared type) pairs whose present, non-null value has another type."""
    mismatches = []
    for name, type_name in schema.types.items():
        if record.get(name) is None and type_name != "null":
            continue
        if name in record and not _matches_type(record[name], type_name):
            mismatches.append((name, type_name))
    return mismatches


class SchemaValidator:
    """Checks candidate records against per-collection schemas.

    Collections without a registered schema accept any record.

    Attributes:
        enforce_types: Also check values against declared types
    """

    def __init__(
        self,
        schemas: Optional[Mapping[str, SchemaLike]] = None,
        enforce_types: bool = False,
    ) -> None:
        self._schemas: Dict[str, Schema] = {}
        self.enforce_types = enforce_types
        for collection, schema in (schemas or {}).items():
            self.register(collection, schema)

    def register(self, collection: str, schema: SchemaLike) -> Schema:
        """Register (or replace) the schema for a collection."""
        if not isinstance(schema, Schema):
            schema = Schema.model_validate(dict(schema))
        self._schemas[collection] = schema
        return schema

    def schema_for(self, collection: str) -> Optional[Schema]:
        return self._schemas.get(collection)

    def apply_defaults(self, collection: str, partial: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge the collection's defaults under partial (copy of partial if no schema)."""
        schema = self._schemas.get(collection)
        if schema is None:
            return dict(partial)
        return schema.apply_defaults(partial)

    def check(self, collection: str, record: Mapping[str, Any]) -> Tuple[bool, List[str]]:
        """Validate a record and collect every problem.

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        schema = self._schemas.get(collection)
        if schema is None:
            return True, []

        errors: List[str] = []
        for name in schema.required:
            if record.get(name) is None:
                errors.append(f"Required field '{name}' is missing in {collection}")

        if self.enforce_types:
            for name, type_name in _type_mismatches(schema, record):
                errors.append(
                    f"Field '{name}' in {collection} must be {type_name}, got {type(record[name]).__name__}"
                )

        return len(errors) == 0, errors

    def validate(self, collection: str, record: Mapping[str, Any]) -> None:
        """Validate a record, raising on the first problem.

        Raises:
            ValidationError: Carrying the collection and offending field name
        """
        schema = self._schemas.get(collection)
        if schema is None:
            return

        for name in schema.required:
            if record.get(name) is None:
                raise ValidationError(
                    f"Required field '{name}' is missing in {collection}",
                    collection=collection,
                    field_name=name,
                )

        if self.enforce_types:
            mismatches = _type_mismatches(schema, record)
            if mismatches:
                errors = [
                    f"Field '{name}' in {collection} must be {type_name}, got {type(record[name]).__name__}"
                    for name, type_name in mismatches
                ]
                raise ValidationError(
                    "; ".join(errors),
                    collection=collection,
                    field_name=mismatches[0][0],
                    errors=errors,
                )
