"""
GitHub contents API blob store.

Each blob is a file in a repository branch; its version is the git blob SHA
that the contents API reports. Conditional writes pass that SHA back, and
GitHub rejects the commit if the file moved on in the meantime.

API mapping:
    read   GET  /repos/{owner}/{repo}/contents/{path}?ref={branch}
    write  PUT  /repos/{owner}/{repo}/contents/{path}   {message, content, branch, sha?}
    list   GET  /repos/{owner}/{repo}/contents/{dir}?ref={branch}

Invariants:
    - Content travels base64 encoded in both directions
    - 404 on read means missing; 409/412 on write means conflict
    - A PUT without sha on an existing file is answered with 422, a conflict
    - The token is only ever sent in the Authorization header
    - Paths are percent-encoded per segment; every name maps to exactly one file

How to change safely:
    - Test against httpx.MockTransport before touching status handling
    - Keep the large-file fallback (git blobs API) in sync with read()
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..config import GitHubConfig
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

_CONFLICT_STATUSES = {409, 412}


class GitHubBlobStore:
    """BlobStore backed by a GitHub repository branch.

    Attributes:
        config: GitHub configuration

    Example:
        >>> store = GitHubBlobStore(GitHubConfig(owner="acme", repo="data", token="..."))
        >>> await store.connect()
        >>> blob = await store.read("db/users.json")
    """

    def __init__(
        self,
        config: GitHubConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the store.

        Args:
            config: GitHub configuration
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.config.api_url,
            headers={
                "Authorization": f"token {self.config.token}",
                "Accept": "application/vnd.github+json",
                "Content-Type": "application/json",
            },
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )
        logger.info(
            "GitHub blob store connected",
            extra={
                "repo": f"{self.config.owner}/{self.config.repo}",
                "branch": self.config.branch,
            },
        )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _contents_url(self, path: str) -> str:
        # Percent-encode names; a raw '#' or '?' would cut the path short
        return f"/repos/{self.config.owner}/{self.config.repo}/contents/{quote(path.strip('/'), safe='/')}"

    async def _request(
        self,
        method: str,
        url: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        if self._client is None:
            raise TransportError("Not connected", path=path)
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"GitHub request failed: {e}", path=path) from e

    def _raise_for_status(self, response: httpx.Response, path: str) -> None:
        if response.is_success:
            return
        raise TransportError(
            f"GitHub API returned {response.status_code}: {_error_message(response)}",
            status_code=response.status_code,
            path=path,
        )

    async def read(self, path: str) -> ReadResult:
        response = await self._request(
            "GET",
            self._contents_url(path),
            path,
            params={"ref": self.config.branch},
        )
        if response.status_code == 404:
            return BlobMissing(path)
        self._raise_for_status(response, path)

        data = response.json()
        if isinstance(data, list) or data.get("type", "file") != "file":
            raise TransportError(f"Path is not a file: {path}", path=path)

        sha = data["sha"]
        encoded = data.get("content") or ""
        if not encoded and data.get("size", 0) > 0:
            # Files over 1MB come back without inline content
            encoded = await self._read_git_blob(sha, path)
        return Blob(path=path, content=base64.b64decode(encoded), version=sha)

    async def _read_git_blob(self, sha: str, path: str) -> str:
        response = await self._request(
            "GET",
            f"/repos/{self.config.owner}/{self.config.repo}/git/blobs/{sha}",
            path,
        )
        self._raise_for_status(response, path)
        return response.json().get("content", "")

    async def write(
        self,
        path: str,
        content: bytes,
        message: str,
        expected_version: Optional[str] = None,
    ) -> WriteResult:
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.config.branch,
        }
        if expected_version:
            body["sha"] = expected_version

        response = await self._request("PUT", self._contents_url(path), path, json=body)

        if response.status_code in _CONFLICT_STATUSES or _is_missing_sha(response):
            logger.info(
                "GitHub rejected conditional write",
                extra={
                    "path": path,
                    "status": response.status_code,
                    "expected_version": expected_version,
                },
            )
            return WriteConflict(path, expected_version)
        self._raise_for_status(response, path)

        version = response.json()["content"]["sha"]
        logger.debug(
            "Blob committed to GitHub",
            extra={"path": path, "version": version, "size": len(content)},
        )
        return Written(path=path, version=version)

    async def list(self, directory: str) -> List[BlobEntry]:
        response = await self._request(
            "GET",
            self._contents_url(directory),
            directory,
            params={"ref": self.config.branch},
        )
        if response.status_code == 404:
            return []
        self._raise_for_status(response, directory)

        data = response.json()
        if not isinstance(data, list):
            return []
        return [
            BlobEntry(name=item["name"], is_file=item.get("type") == "file")
            for item in data
        ]


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and "message" in data:
        return str(data["message"])
    return response.text


def _is_missing_sha(response: httpx.Response) -> bool:
    """422 answer to a PUT without sha on a file that already exists."""
    if response.status_code != 422:
        return False
    return "sha" in _error_message(response).lower()
