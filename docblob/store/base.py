"""
Base protocol and types for the blob store abstraction.

A blob store keeps named byte blobs, each with an opaque content version.
Writes may be conditioned on the version observed at read time, which is
what lets the collection layer detect concurrent modification.

Expected outcomes are returned as tagged results rather than raised:
    read()  -> Blob | BlobMissing
    write() -> Written | WriteConflict
so every caller has to handle the missing and conflict branches explicitly.
Unexpected failures (network, auth, rate limit) raise TransportError.

Invariants:
    - A version identifies the exact bytes of a blob
    - write() with expected_version succeeds only if the current version matches
    - write() without expected_version is create-only: an existing path conflicts
    - A failed write leaves the stored blob unchanged

How to change safely:
    - Protocol changes require updating all implementations
    - Keep memory.py semantics identical to the remote backends
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    List,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

if TYPE_CHECKING:
    from ..config import DocBlobConfig


@dataclass(frozen=True)
class Blob:
    """A blob read from the store.

    Attributes:
        path: Blob path
        content: Raw bytes
        version: Opaque content version (git SHA, ETag, ...)
    """

    path: str
    content: bytes
    version: str


@dataclass(frozen=True)
class BlobMissing:
    """Read outcome: nothing stored at path."""

    path: str


@dataclass(frozen=True)
class Written:
    """Write outcome: blob stored, new version returned."""

    path: str
    version: str


@dataclass(frozen=True)
class WriteConflict:
    """Write outcome: precondition failed, nothing written.

    expected_version is None when a create-only write found the path taken.
    """

    path: str
    expected_version: Optional[str] = None


@dataclass(frozen=True)
class BlobEntry:
    """One directory listing entry."""

    name: str
    is_file: bool


ReadResult = Union[Blob, BlobMissing]
WriteResult = Union[Written, WriteConflict]


@runtime_checkable
class BlobStore(Protocol):
    """Protocol for blob store backends.

    Example:
        >>> store = InMemoryBlobStore()
        >>> await store.connect()
        >>> result = await store.write("db/users.json", b"[]", "Create users")
        >>> blob = await store.read("db/users.json")
        >>> await store.write("db/users.json", b"[{}]", "Update users", blob.version)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Prepare the backend (open HTTP session, S3 client, ...)."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
    async def read(self, path: str) -> ReadResult:
        """Read a blob and its current version.

        Returns:
            Blob, or BlobMissing if the path does not exist

        Raises:
            TransportError: For any other failure
        """
        ...

    @abstractmethod
    async def write(
        self,
        path: str,
        content: bytes,
        message: str,
        expected_version: Optional[str] = None,
    ) -> WriteResult:
        """Write a blob, conditioned on its current version.

        Args:
            path: Blob path
            content: New bytes
            message: Change description (commit message on git backends)
            expected_version: Version observed at read time, None to create

        Returns:
            Written with the new version, or WriteConflict

        Raises:
            TransportError: For any other failure
        """
        ...

    @abstractmethod
    async def list(self, directory: str) -> List[BlobEntry]:
        """List entries directly under a directory.

        Returns:
            Entries, empty if the directory does not exist
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether connect() has been called."""
        ...


def create_blob_store(config: "DocBlobConfig") -> BlobStore:
    """Factory function to create a blob store from configuration.

    Args:
        config: Library configuration

    Returns:
        Appropriate BlobStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import BlobBackend

    if config.backend == BlobBackend.GITHUB:
        from .github import GitHubBlobStore

        return GitHubBlobStore(config.github)
    elif config.backend == BlobBackend.S3:
        from .s3 import S3BlobStore

        return S3BlobStore(config.s3)
    elif config.backend == BlobBackend.MEMORY:
        from .memory import InMemoryBlobStore

        return InMemoryBlobStore()
    else:
        raise ValueError(f"Unsupported blob backend: {config.backend}")
