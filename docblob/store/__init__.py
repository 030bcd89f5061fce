"""
Blob store abstraction for docblob.

This module provides a pluggable backend interface supporting:
- GitHub contents API (commits per write, git SHA versions)
- S3 (ETag versions, conditional PUT)
- In-memory (for testing)

The S3 backend is imported lazily by create_blob_store() so that
GitHub-only deployments never load the AWS SDK.

Invariants:
    - Every backend reports a version per blob
    - Conditional writes either fully apply or leave the blob untouched
"""

from .base import (
    Blob,
    BlobEntry,
    BlobMissing,
    BlobStore,
    ReadResult,
    WriteConflict,
    WriteResult,
    Written,
    create_blob_store,
)
from .github import GitHubBlobStore
from .memory import InMemoryBlobStore

__all__ = [
    # Protocol and types
    "BlobStore",
    "Blob",
    "BlobMissing",
    "BlobEntry",
    "Written",
    "WriteConflict",
    "ReadResult",
    "WriteResult",
    # Factory
    "create_blob_store",
    # Implementations
    "GitHubBlobStore",
    "InMemoryBlobStore",
]
