"""
Error types for docblob.

This module defines all exception types raised by the library:
- DocBlobError: Base exception
- NotFoundError: Blob does not exist
- ValidationError: Record failed schema validation
- ConflictError: Conditional write rejected (content version changed)
- TransportError: Any other blob store failure (network, auth, rate limit)
- CorruptCollectionError: Stored blob is not a JSON array of objects
- QueryError: Query could not be evaluated

Invariants:
    - All errors inherit from DocBlobError
    - Errors include context for debugging
    - Secrets (tokens, credentials) never appear in messages or details
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class DocBlobError(Exception):
    """Base exception for all docblob errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DOCBLOB_ERROR"
        self.details = details or {}


class NotFoundError(DocBlobError):
    """Blob does not exist at the requested path.

    CollectionStore.get recovers from this by creating an empty collection,
    so callers of the record API never see it.
    """

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Blob not found: {path}",
            code="NOT_FOUND",
            details={"path": path},
        )
        self.path = path


class ValidationError(DocBlobError):
    """Record validation failed.

    Raised when:
    - Required field is missing or null
    - Field value has the wrong declared type (strict mode only)
    - Record contains values that cannot be stored as JSON
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={
                "collection": collection,
                "field": field_name,
                "errors": errors or [],
            },
        )
        self.collection = collection
        self.field_name = field_name
        self.errors = errors or []


class ConflictError(DocBlobError):
    """The collection blob changed between read and write.

    The write was rejected by the blob store because the expected content
    version no longer matches. Nothing was written; the caller may re-run
    the operation.
    """

    def __init__(
        self,
        collection: str,
        path: str,
        expected_version: Optional[str] = None,
    ) -> None:
        if expected_version:
            msg = f"Collection '{collection}' changed concurrently (expected version {expected_version})"
        else:
            msg = f"Collection '{collection}' was created concurrently"
        super().__init__(
            msg,
            code="CONFLICT",
            details={
                "collection": collection,
                "path": path,
                "expected_version": expected_version,
            },
        )
        self.collection = collection
        self.path = path
        self.expected_version = expected_version


class TransportError(DocBlobError):
    """Blob store request failed.

    Raised when:
    - Backend is unreachable or times out
    - Authentication or authorization fails
    - Rate limit is exceeded
    - Backend answers with an unexpected status
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="TRANSPORT_ERROR",
            details={"status_code": status_code, "path": path},
        )
        self.status_code = status_code
        self.path = path


class CorruptCollectionError(DocBlobError):
    """Stored collection blob is not a JSON array of objects."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Collection blob at {path} is corrupt: {reason}",
            code="CORRUPT_COLLECTION",
            details={"path": path, "reason": reason},
        )
        self.path = path
        self.reason = reason


class QueryError(DocBlobError):
    """Query could not be evaluated (e.g. sort over incomparable values)."""

    def __init__(self, message: str, collection: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="QUERY_ERROR",
            details={"collection": collection},
        )
        self.collection = collection
