"""
docblob - a document store on top of a versioned blob store.

Each collection is one JSON array of records kept as a single blob (a file in
a GitHub repository, an S3 object, ...). docblob provides:
- Record CRUD with optimistic concurrency (content-version conditional writes)
- Collision-free identifiers: per-collection numeric id, global uid
- Per-collection schemas (required fields, defaults, optional type checks)
- A lazy, chainable query builder
- An in-memory audit trail of mutations

Architecture:
    ┌──────────────┐     ┌─────────────────┐     ┌──────────────────┐
    │ QueryBuilder │────▶│ CollectionStore │────▶│    BlobStore     │
    └──────────────┘     └───────┬─────────┘     │ github/s3/memory │
                                 │               └──────────────────┘
                     ┌───────────┼───────────┐
                     ▼           ▼           ▼
              SchemaValidator   ids       AuditLog

Example:
    >>> from docblob import CollectionStore, InMemoryBlobStore
    >>> async with CollectionStore(InMemoryBlobStore()) as store:
    ...     await store.insert("posts", {"title": "Hello"})
    ...     posts = await store.query("posts").sort("title").exec()

Invariants:
    - Every mutation is read -> modify -> conditional write
    - Concurrent writers get ConflictError, never a silent overwrite
    - No collection data is cached between operations
"""

from ._version import __version__
from .audit import AuditAction, AuditEntry, AuditLog
from .collection import CollectionStore
from .config import (
    BlobBackend,
    DocBlobConfig,
    GitHubConfig,
    ObservabilityConfig,
    S3Config,
    StoreConfig,
)
from .errors import (
    ConflictError,
    CorruptCollectionError,
    DocBlobError,
    NotFoundError,
    QueryError,
    TransportError,
    ValidationError,
)
from .ids import mint_uid, next_id
from .query import QueryBuilder, SortDirection
from .schema import Schema, SchemaValidator
from .store import (
    BlobStore,
    GitHubBlobStore,
    InMemoryBlobStore,
    create_blob_store,
)

__all__ = [
    "__version__",
    # Store
    "CollectionStore",
    "QueryBuilder",
    "SortDirection",
    # Schema
    "Schema",
    "SchemaValidator",
    # Identifiers
    "next_id",
    "mint_uid",
    # Audit
    "AuditLog",
    "AuditEntry",
    "AuditAction",
    # Blob stores
    "BlobStore",
    "GitHubBlobStore",
    "InMemoryBlobStore",
    "create_blob_store",
    # Configuration
    "DocBlobConfig",
    "BlobBackend",
    "GitHubConfig",
    "S3Config",
    "StoreConfig",
    "ObservabilityConfig",
    # Errors
    "DocBlobError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "TransportError",
    "CorruptCollectionError",
    "QueryError",
]
