"""
In-memory blob store implementation for testing.

This module provides a simple in-memory backend for:
- Unit tests
- Integration tests
- Local development without a remote repository

Invariants:
    - All data is lost on process exit
    - Same version and conditional-write semantics as the remote backends
    - Versions are git blob SHA-1 hashes, like the GitHub backend

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the BlobStore protocol
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..errors import TransportError
from .base import (
    Blob,
    BlobEntry,
    BlobMissing,
    ReadResult,
    WriteConflict,
    WriteResult,
    Written,
)

logger = logging.getLogger(__name__)


def git_blob_sha(content: bytes) -> str:
    """SHA-1 of a git blob object holding content."""
    header = f"blob {len(content)}\0".encode("ascii")
    return hashlib.sha1(header + content).hexdigest()


@dataclass
class StoredBlob:
    """Stored bytes plus bookkeeping."""

    content: bytes
    version: str
    message: str


class InMemoryBlobStore:
    """In-memory implementation of BlobStore for testing.

    Thread safety:
        Uses an asyncio lock so a version check and the write that follows
        it happen atomically. Safe to use from multiple coroutines.

    Example:
        >>> store = InMemoryBlobStore()
        >>> await store.connect()
        >>> await store.write("db/users.json", b"[]", "Create users")
    """

    def __init__(self) -> None:
        self._blobs: Dict[str, StoredBlob] = {}
        self._connected = False
        self._lock = asyncio.Lock()
        self._writes = 0
        self._reads = 0

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryBlobStore connected")

    async def close(self) -> None:
        """Close. Stored blobs are kept so a store can be reopened in tests."""
        self._connected = False
        logger.debug("InMemoryBlobStore closed")

    def _require_connection(self, path: str) -> None:
        if not self._connected:
            raise TransportError("Not connected", path=path)

    async def read(self, path: str) -> ReadResult:
        self._require_connection(path)
        async with self._lock:
            self._reads += 1
            stored = self._blobs.get(path)
            if stored is None:
                return BlobMissing(path)
            return Blob(path=path, content=stored.content, version=stored.version)

    async def write(
        self,
        path: str,
        content: bytes,
        message: str,
        expected_version: Optional[str] = None,
    ) -> WriteResult:
        self._require_connection(path)
        async with self._lock:
            current = self._blobs.get(path)
            if expected_version is None:
                if current is not None:
                    return WriteConflict(path)
            elif current is None or current.version != expected_version:
                return WriteConflict(path, expected_version)

            version = git_blob_sha(content)
            self._blobs[path] = StoredBlob(content=bytes(content), version=version, message=message)
            self._writes += 1

        logger.debug(
            "Blob written to in-memory store",
            extra={"path": path, "version": version, "size": len(content)},
        )
        return Written(path=path, version=version)

    async def list(self, directory: str) -> List[BlobEntry]:
        self._require_connection(directory)
        prefix = directory.strip("/") + "/" if directory.strip("/") else ""
        files = set()
        dirs = set()
        async with self._lock:
            for path in self._blobs:
                if not path.startswith(prefix):
                    continue
                rest = path[len(prefix):]
                if "/" in rest:
                    dirs.add(rest.split("/", 1)[0])
                else:
                    files.add(rest)
        entries = [BlobEntry(name=d, is_file=False) for d in sorted(dirs)]
        entries.extend(BlobEntry(name=f, is_file=True) for f in sorted(files))
        return entries

    # Testing helpers

    def get_raw(self, path: str) -> Optional[bytes]:
        """Stored bytes for path, or None (testing helper)."""
        stored = self._blobs.get(path)
        return stored.content if stored else None

    def put_raw(self, path: str, content: bytes, message: str = "seed") -> str:
        """Store bytes unconditionally and return the version (testing helper)."""
        version = git_blob_sha(content)
        self._blobs[path] = StoredBlob(content=content, version=version, message=message)
        return version

    def last_message(self, path: str) -> Optional[str]:
        """Change message of the last write to path (testing helper)."""
        stored = self._blobs.get(path)
        return stored.message if stored else None

    @property
    def write_count(self) -> int:
        """Number of successful writes (testing helper)."""
        return self._writes

    @property
    def read_count(self) -> int:
        """Number of reads (testing helper)."""
        return self._reads

    def paths(self) -> List[str]:
        """All stored paths (testing helper)."""
        return sorted(self._blobs)
