"""
S3 blob store.

Blobs are S3 objects; the version is the object ETag. Conditional writes use
S3 conditional PUTs:
    - IfMatch=<etag> when a version is expected
    - IfNoneMatch="*" when creating

Object layout:
    s3://<bucket>/<key_prefix>/<path>

Invariants:
    - PreconditionFailed (412) and ConditionalRequestConflict (409) are conflicts
    - NoSuchKey on read means missing
    - Every other client or connection error surfaces as TransportError

How to change safely:
    - S3-compatible stores (MinIO, R2) differ in conditional write support;
      verify IfMatch/IfNoneMatch on the target before switching endpoints
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import S3Config
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

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}
_CONFLICT_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


def _status_code(e: ClientError) -> Optional[int]:
    return e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


class S3BlobStore:
    """BlobStore backed by an S3 bucket.

    Example:
        >>> store = S3BlobStore(S3Config(bucket="acme-data"))
        >>> await store.connect()
        >>> result = await store.write("db/users.json", b"[]", "Create users")
    """

    def __init__(self, config: S3Config, client: Any = None) -> None:
        """Initialize the store.

        Args:
            config: S3 configuration
            client: Optional pre-built S3 client (owned by the caller)
        """
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._client_ctx: Any = None
        self._session = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Initialize S3 client."""
        if self._client is not None:
            return
        self._session = get_session()

        client_kwargs: Dict[str, Any] = {
            "region_name": self.config.region,
        }

        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url

        if self.config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.config.secret_access_key

        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()
        self._owns_client = True
        logger.info("S3 blob store connected", extra={"bucket": self.config.bucket})

    async def close(self) -> None:
        """Close S3 client."""
        if self._client is not None and self._owns_client and self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client_ctx = None
        self._client = None

    def _key(self, path: str) -> str:
        prefix = self.config.key_prefix.strip("/")
        path = path.strip("/")
        return f"{prefix}/{path}" if prefix else path

    def _require_client(self, path: str) -> Any:
        if self._client is None:
            raise TransportError("Not connected", path=path)
        return self._client

    async def read(self, path: str) -> ReadResult:
        client = self._require_client(path)
        try:
            response = await client.get_object(Bucket=self.config.bucket, Key=self._key(path))
            content = await response["Body"].read()
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return BlobMissing(path)
            raise TransportError(
                f"S3 get_object failed: {_error_code(e)}",
                status_code=_status_code(e),
                path=path,
            ) from e
        except BotoCoreError as e:
            raise TransportError(f"S3 get_object failed: {e}", path=path) from e
        return Blob(path=path, content=content, version=response["ETag"])

    async def write(
        self,
        path: str,
        content: bytes,
        message: str,
        expected_version: Optional[str] = None,
    ) -> WriteResult:
        client = self._require_client(path)
        kwargs: Dict[str, Any] = {
            "Bucket": self.config.bucket,
            "Key": self._key(path),
            "Body": content,
            "ContentType": "application/json",
            "Metadata": {"message": message[:1024]},
        }
        if expected_version:
            kwargs["IfMatch"] = expected_version
        else:
            kwargs["IfNoneMatch"] = "*"

        try:
            response = await client.put_object(**kwargs)
        except ClientError as e:
            if _error_code(e) in _CONFLICT_CODES:
                logger.info(
                    "S3 rejected conditional write",
                    extra={"path": path, "code": _error_code(e), "expected_version": expected_version},
                )
                return WriteConflict(path, expected_version)
            raise TransportError(
                f"S3 put_object failed: {_error_code(e)}",
                status_code=_status_code(e),
                path=path,
            ) from e
        except BotoCoreError as e:
            raise TransportError(f"S3 put_object failed: {e}", path=path) from e

        logger.debug(
            "Blob uploaded to S3",
            extra={"path": path, "version": response["ETag"], "size": len(content)},
        )
        return Written(path=path, version=response["ETag"])

    async def list(self, directory: str) -> List[BlobEntry]:
        client = self._require_client(directory)
        prefix = self._key(directory)
        prefix = f"{prefix}/" if prefix else ""

        entries: List[BlobEntry] = []
        kwargs: Dict[str, Any] = {
            "Bucket": self.config.bucket,
            "Prefix": prefix,
            "Delimiter": "/",
        }
        try:
            while True:
                response = await client.list_objects_v2(**kwargs)
                for common in response.get("CommonPrefixes", []):
                    name = common["Prefix"][len(prefix):].rstrip("/")
                    entries.append(BlobEntry(name=name, is_file=False))
                for obj in response.get("Contents", []):
                    name = obj["Key"][len(prefix):]
                    if name:
                        entries.append(BlobEntry(name=name, is_file=True))
                if not response.get("IsTruncated"):
                    break
                kwargs["ContinuationToken"] = response["NextContinuationToken"]
        except ClientError as e:
            raise TransportError(
                f"S3 list_objects_v2 failed: {_error_code(e)}",
                status_code=_status_code(e),
                path=directory,
            ) from e
        except BotoCoreError as e:
            raise TransportError(f"S3 list_objects_v2 failed: {e}", path=directory) from e
        return entries
