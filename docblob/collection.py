"""
Collection store for docblob.

A collection is one JSON array of records kept as a single blob at
<base_path>/<collection>.json. The store provides record CRUD on top of a
BlobStore with optimistic concurrency: every mutation reads the whole
collection together with its content version, applies the change, and writes
it back conditioned on that version.

Invariants:
    - No collection data is cached between calls; every operation re-reads
    - A mutation writes at most once, and only after validation passed
    - A rejected conditional write raises ConflictError; nothing is retried
    - Within a collection, ids are unique and increasing; uids are unique everywhere
    - Audit entries are appended only after the write succeeded
    - Missing collections are created empty on first read

How to change safely:
    - Keep read -> modify -> write inside the collection lock
    - Never write without the version observed by the same operation
    - Run the conflict race tests in tests/unit/test_collection.py

Example:
    >>> async with CollectionStore(InMemoryBlobStore(), schemas={"users": {"required": ["email"]}}) as store:
    ...     user = await store.insert("users", {"email": "ada@example.com"})
    ...     await store.update("users", user["id"], {"name": "Ada"})
    ...     admins = await store.query("users").where(lambda u: u.get("role") == "admin").exec()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncContextManager,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
)

from .audit import AuditAction, AuditEntry, AuditLog
from .codec import decode_collection, encode_collection
from .errors import ConflictError, NotFoundError, ValidationError
from .ids import max_id, mint_uid, next_id
from .query import QueryBuilder
from .records import ID_FIELD, SYSTEM_FIELDS, UID_FIELD, Record, find_invalid_value, strip_system_fields
from .schema import SchemaLike, SchemaValidator
from .store.base import BlobMissing, BlobStore, WriteConflict

if TYPE_CHECKING:
    from .config import DocBlobConfig

logger = logging.getLogger(__name__)


def find_index(records: List[Record], key: str) -> int:
    """Position of the first record whose id or uid equals key, -1 if none."""
    key = str(key)
    for i, record in enumerate(records):
        value = record.get(ID_FIELD)
        if (value is not None and str(value) == key) or record.get(UID_FIELD) == key:
            return i
    return -1


class CollectionStore:
    """Document store over a versioned blob store.

    Owns its SchemaValidator and AuditLog for its whole lifetime; neither is
    shared with other instances.

    Attributes:
        blob_store: Backend holding the collection blobs
        base_path: Directory holding the collection blobs
        validator: Schema validator
        lock_collections: Serialize read-modify-write per collection in-process

    Thread safety:
        Safe for concurrent coroutines on one event loop. Other processes (or
        other store instances) writing the same collection are detected by the
        conditional write and surface as ConflictError.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        schemas: Optional[Mapping[str, SchemaLike]] = None,
        base_path: str = "db",
        lock_collections: bool = True,
        enforce_types: bool = False,
    ) -> None:
        """Initialize the store.

        Args:
            blob_store: Blob store backend
            schemas: Per-collection schemas (Schema objects or plain dicts)
            base_path: Directory for collection blobs
            lock_collections: Hold a per-collection lock around each mutation
            enforce_types: Check declared schema types on insert
        """
        self.blob_store = blob_store
        self.base_path = base_path.strip("/")
        self.validator = SchemaValidator(schemas, enforce_types=enforce_types)
        self.lock_collections = lock_collections
        self._audit = AuditLog()
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @classmethod
    def from_config(
        cls,
        config: "DocBlobConfig",
        schemas: Optional[Mapping[str, SchemaLike]] = None,
        blob_store: Optional[BlobStore] = None,
    ) -> CollectionStore:
        """Build a store (and, unless given, its blob store) from configuration."""
        from .store.base import create_blob_store

        return cls(
            blob_store or create_blob_store(config),
            schemas=schemas,
            base_path=config.store.base_path,
            lock_collections=config.store.lock_collections,
            enforce_types=config.store.enforce_types,
        )

    async def connect(self) -> None:
        await self.blob_store.connect()

    async def close(self) -> None:
        await self.blob_store.close()

    async def __aenter__(self) -> CollectionStore:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    # Paths and locking

    def path_for(self, collection: str) -> str:
        """Blob path of a collection.

        Raises:
            ValueError: If the name is empty or could escape the base path
        """
        if not collection or "/" in collection or "\\" in collection or collection in (".", ".."):
            raise ValueError(f"Invalid collection name: {collection!r}")
        if self.base_path:
            return f"{self.base_path}/{collection}.json"
        return f"{collection}.json"

    def _lock_for(self, collection: str) -> AsyncContextManager[Any]:
        if self.lock_collections:
            return self._locks[collection]
        return contextlib.nullcontext()

    # Blob I/O

    async def _create_empty(self, collection: str) -> bool:
        """Write an empty collection if none exists. False if someone beat us to it."""
        path = self.path_for(collection)
        result = await self.blob_store.write(path, encode_collection([], collection), f"Create {collection}")
        if isinstance(result, WriteConflict):
            logger.info(
                "Collection created concurrently",
                extra={"collection": collection, "path": path},
            )
            return False
        logger.info(
            "Collection created",
            extra={"collection": collection, "path": path, "version": result.version},
        )
        return True

    async def _load(self, collection: str) -> Tuple[List[Record], Optional[str]]:
        """Current records and version; ([], None) if the blob does not exist yet."""
        path = self.path_for(collection)
        result = await self.blob_store.read(path)
        if isinstance(result, BlobMissing):
            return [], None
        return decode_collection(result.content, path), result.version

    async def _save(
        self,
        collection: str,
        records: List[Record],
        version: Optional[str],
        message: str,
    ) -> str:
        """Conditionally write records back.

        Raises:
            ConflictError: If the blob changed since it was read
        """
        path = self.path_for(collection)
        content = encode_collection(records, collection)
        result = await self.blob_store.write(path, content, message, expected_version=version)
        if isinstance(result, WriteConflict):
            logger.warning(
                "Conditional write rejected",
                extra={"collection": collection, "path": path, "expected_version": version},
            )
            raise ConflictError(collection, path, version)
        logger.debug(
            "Collection written",
            extra={
                "collection": collection,
                "records": len(records),
                "version": result.version,
            },
        )
        return result.version

    def _prepare(self, collection: str, partial: Mapping[str, Any], record_id: str) -> Record:
        """Defaults, validation and identifiers for a new record."""
        if not isinstance(partial, Mapping):
            raise ValidationError(
                f"Records for {collection} must be mappings, got {type(partial).__name__}",
                collection=collection,
            )
        item = self.validator.apply_defaults(collection, partial)
        self.validator.validate(collection, item)
        _check_json(collection, item)

        ignored = SYSTEM_FIELDS & item.keys()
        if ignored:
            logger.debug(
                "Ignoring caller-supplied system fields",
                extra={"collection": collection, "fields": sorted(ignored)},
            )
        record: Record = {UID_FIELD: mint_uid(), ID_FIELD: record_id}
        record.update(strip_system_fields(item))
        return record

    # Reads

    async def get(self, collection: str) -> List[Record]:
        """All records of a collection, creating it empty if it does not exist.

        Raises:
            TransportError: If the blob store fails
            CorruptCollectionError: If the stored blob is not an array of objects
        """
        path = self.path_for(collection)
        result = await self.blob_store.read(path)
        if isinstance(result, BlobMissing):
            logger.info(
                "Collection doesn't exist, creating it",
                extra={"collection": collection, "path": path},
            )
            if await self._create_empty(collection):
                return []
            result = await self.blob_store.read(path)
            if isinstance(result, BlobMissing):
                raise NotFoundError(path)
        return decode_collection(result.content, path)

    async def get_item(self, collection: str, key: str) -> Optional[Record]:
        """Record whose id or uid equals key, or None."""
        records = await self.get(collection)
        index = find_index(records, key)
        return records[index] if index >= 0 else None

    def query(self, collection: str) -> QueryBuilder:
        """Lazy query over a collection; nothing is read until exec()."""
        self.path_for(collection)

        async def fetch() -> List[Record]:
            return await self.get(collection)

        return QueryBuilder(collection=collection, fetch=fetch)

    async def list_collections(self) -> List[str]:
        """Names of the collections stored under base_path."""
        entries = await self.blob_store.list(self.base_path)
        return sorted(
            entry.name[: -len(".json")]
            for entry in entries
            if entry.is_file and entry.name.endswith(".json")
        )

    async def ensure_collections(self, names: Iterable[str]) -> List[str]:
        """Create any of the named collections that do not exist yet.

        Returns:
            Names of the collections this call created
        """
        created = []
        for name in names:
            result = await self.blob_store.read(self.path_for(name))
            if isinstance(result, BlobMissing) and await self._create_empty(name):
                created.append(name)
        return created

    # Mutations

    async def insert(self, collection: str, partial: Mapping[str, Any]) -> Record:
        """Insert one record.

        Schema defaults are merged under partial, the result is validated,
        and the record gets the next id plus a fresh uid.

        Raises:
            ValidationError: If a required field is missing (nothing written)
            ConflictError: If the collection changed concurrently
        """
        async with self._lock_for(collection):
            records, version = await self._load(collection)
            record = self._prepare(collection, partial, next_id(records))
            records.append(record)
            await self._save(collection, records, version, f"Insert into {collection}")

        self._audit.record(collection, AuditAction.INSERT, record)
        logger.info(
            "Record inserted",
            extra={"collection": collection, "id": record[ID_FIELD], "uid": record[UID_FIELD]},
        )
        return record

    async def bulk_insert(self, collection: str, partials: Iterable[Mapping[str, Any]]) -> List[Record]:
        """Insert many records with one read and one write.

        Ids form a contiguous increasing run starting at max(existing, 0) + 1,
        in input order. Every item is validated before anything is written.

        Raises:
            ValidationError: If any item is invalid (nothing written)
            ConflictError: If the collection changed concurrently
        """
        partials = list(partials)
        if not partials:
            return []

        async with self._lock_for(collection):
            records, version = await self._load(collection)
            start = max_id(records) + 1
            created = [
                self._prepare(collection, partial, str(start + offset))
                for offset, partial in enumerate(partials)
            ]
            records.extend(created)
            await self._save(collection, records, version, f"Insert {len(created)} records into {collection}")

        for record in created:
            self._audit.record(collection, AuditAction.INSERT, record)
        logger.info(
            "Records inserted",
            extra={
                "collection": collection,
                "count": len(created),
                "first_id": created[0][ID_FIELD],
                "last_id": created[-1][ID_FIELD],
            },
        )
        return created

    async def update(self, collection: str, key: str, patch: Mapping[str, Any]) -> Optional[Record]:
        """Shallow-merge patch into the record matching key.

        Fields in patch overwrite, all other fields are kept; id and uid
        never change.

        Returns:
            Merged record, or None if no record matches (nothing written)

        Raises:
            ValidationError: If patch holds non-JSON values
            ConflictError: If the collection changed concurrently
        """
        async with self._lock_for(collection):
            records, version = await self._load(collection)
            index = find_index(records, key)
            if index < 0:
                logger.debug("Update target not found", extra={"collection": collection, "key": key})
                return None

            changes = strip_system_fields(patch)
            _check_json(collection, changes)
            merged = {**records[index], **changes}
            records[index] = merged
            await self._save(collection, records, version, f"Update {collection}/{merged.get(ID_FIELD)}")

        self._audit.record(collection, AuditAction.UPDATE, merged)
        logger.info(
            "Record updated",
            extra={"collection": collection, "id": merged.get(ID_FIELD), "fields": sorted(changes)},
        )
        return merged

    async def delete(self, collection: str, key: str) -> bool:
        """Remove the record matching key.

        Returns:
            True if a record was removed, False if none matched (nothing written)

        Raises:
            ConflictError: If the collection changed concurrently
        """
        async with self._lock_for(collection):
            records, version = await self._load(collection)
            index = find_index(records, key)
            if index < 0:
                logger.debug("Delete target not found", extra={"collection": collection, "key": key})
                return False

            removed = records.pop(index)
            await self._save(collection, records, version, f"Delete {collection}/{removed.get(ID_FIELD)}")

        self._audit.record(collection, AuditAction.DELETE, removed)
        logger.info("Record deleted", extra={"collection": collection, "id": removed.get(ID_FIELD)})
        return True

    # Audit

    @property
    def audit_log(self) -> AuditLog:
        return self._audit

    def audit_history(self, collection: str) -> Tuple[AuditEntry, ...]:
        """Mutations of a collection made through this store, oldest first."""
        return self._audit.history(collection)


def _check_json(collection: str, data: Mapping[str, Any]) -> None:
    bad = find_invalid_value(dict(data))
    if bad:
        field_name = bad[2:].split(".", 1)[0].split("[", 1)[0]
        raise ValidationError(
            f"Value at {bad} in {collection} is not a JSON value",
            collection=collection,
            field_name=field_name or None,
        )
