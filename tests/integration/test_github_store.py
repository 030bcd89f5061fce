"""
Integration tests for the GitHub contents API blob store.

A fake contents API is served through httpx.MockTransport; it keeps files
in memory, computes git blob SHAs, and answers conditional PUTs the way
GitHub does (409 on a stale sha, 422 when sha is missing for an existing
file).
"""

import base64
import json

import httpx
import pytest

from docblob.collection import CollectionStore
from docblob.config import GitHubConfig
from docblob.errors import ConflictError, TransportError
from docblob.store.base import Blob, BlobEntry, BlobMissing, WriteConflict, Written
from docblob.store.github import GitHubBlobStore
from docblob.store.memory import git_blob_sha

OWNER = "acme"
REPO = "data"
TOKEN = "ghp_test_token"
CONTENTS_PREFIX = f"/repos/{OWNER}/{REPO}/contents/"
BLOBS_PREFIX = f"/repos/{OWNER}/{REPO}/git/blobs/"


def encode_wrapped(content: bytes) -> str:
    """Base64 with newlines every 60 characters, as the contents API sends it."""
    encoded = base64.b64encode(content).decode("ascii")
    return "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60)) + "\n"


class FakeGitHub:
    """In-memory stand-in for one branch of a repository."""

    def __init__(self):
        self.files = {}
        self.commits = []
        self.requests = []
        self.large_files = set()
        self.status_override = None
        self.before_write = None

    def seed(self, path, content):
        self.files[path] = content

    def sha(self, path):
        return git_blob_sha(self.files[path])

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"token {TOKEN}":
            return httpx.Response(401, json={"message": "Bad credentials"})
        if self.status_override is not None:
            return httpx.Response(self.status_override, json={"message": "API rate limit exceeded"})

        url_path = request.url.path
        if url_path.startswith(BLOBS_PREFIX):
            return self._get_git_blob(url_path[len(BLOBS_PREFIX):])
        if not url_path.startswith(CONTENTS_PREFIX):
            return httpx.Response(404, json={"message": "Not Found"})

        path = url_path[len(CONTENTS_PREFIX):]
        if request.method == "GET":
            return self._get_contents(path)
        if request.method == "PUT":
            return self._put_contents(path, json.loads(request.content))
        return httpx.Response(405, json={"message": "Method not allowed"})

    def _get_git_blob(self, sha):
        for content in self.files.values():
            if git_blob_sha(content) == sha:
                return httpx.Response(200, json={"sha": sha, "encoding": "base64", "content": encode_wrapped(content)})
        return httpx.Response(404, json={"message": "Not Found"})

    def _get_contents(self, path):
        if path in self.files:
            content = self.files[path]
            return httpx.Response(
                200,
                json={
                    "type": "file",
                    "name": path.rsplit("/", 1)[-1],
                    "path": path,
                    "sha": self.sha(path),
                    "size": len(content),
                    "encoding": "base64",
                    "content": "" if path in self.large_files else encode_wrapped(content),
                },
            )

        prefix = path.rstrip("/") + "/"
        entries = {}
        for file_path in self.files:
            if file_path.startswith(prefix):
                rest = file_path[len(prefix):]
                name = rest.split("/", 1)[0]
                entries[name] = "dir" if "/" in rest else "file"
        if not entries:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(
            200,
            json=[{"name": name, "path": prefix + name, "type": kind} for name, kind in sorted(entries.items())],
        )

    def _put_contents(self, path, body):
        if self.before_write is not None:
            hook, self.before_write = self.before_write, None
            hook()

        sha = body.get("sha")
        if path in self.files:
            if sha is None:
                return httpx.Response(
                    422,
                    json={"message": "Invalid request.\n\n\"sha\" wasn't supplied."},
                )
            if sha != self.sha(path):
                return httpx.Response(409, json={"message": f"{path} does not match {sha}"})
        elif sha is not None:
            return httpx.Response(409, json={"message": f"{path} does not match {sha}"})

        self.files[path] = base64.b64decode(body["content"])
        self.commits.append({"path": path, "message": body["message"], "branch": body["branch"]})
        return httpx.Response(
            201 if sha is None else 200,
            json={"content": {"name": path.rsplit("/", 1)[-1], "path": path, "sha": self.sha(path)}},
        )


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
async def blob_store(github):
    store = GitHubBlobStore(
        GitHubConfig(owner=OWNER, repo=REPO, token=TOKEN, branch="data"),
        transport=httpx.MockTransport(github.handler),
    )
    await store.connect()
    yield store
    await store.close()


class TestGitHubBlobStore:
    """Tests for the contents API mapping."""

    @pytest.mark.asyncio
    async def test_read_missing(self, blob_store):
        assert await blob_store.read("db/users.json") == BlobMissing("db/users.json")

    @pytest.mark.asyncio
    async def test_read_sends_branch_and_token(self, blob_store, github):
        github.seed("db/users.json", b"[]")

        await blob_store.read("db/users.json")

        request = github.requests[-1]
        assert request.url.params["ref"] == "data"
        assert request.headers["Authorization"] == f"token {TOKEN}"

    @pytest.mark.asyncio
    async def test_read_decodes_content(self, blob_store, github):
        content = json.dumps([{"id": str(i), "text": "x" * 50} for i in range(5)]).encode()
        github.seed("db/notes.json", content)

        blob = await blob_store.read("db/notes.json")

        assert blob == Blob(path="db/notes.json", content=content, version=git_blob_sha(content))

    @pytest.mark.asyncio
    async def test_read_large_file_falls_back_to_git_blob(self, blob_store, github):
        github.seed("db/big.json", b'[{"id": "1"}]')
        github.large_files.add("db/big.json")

        blob = await blob_store.read("db/big.json")

        assert blob.content == b'[{"id": "1"}]'
        assert github.requests[-1].url.path.startswith(BLOBS_PREFIX)

    @pytest.mark.asyncio
    async def test_read_directory_is_transport_error(self, blob_store, github):
        github.seed("db/users.json", b"[]")

        with pytest.raises(TransportError):
            await blob_store.read("db")

    @pytest.mark.asyncio
    async def test_create(self, blob_store, github):
        result = await blob_store.write("db/users.json", b"[]", "Create users")

        assert result == Written(path="db/users.json", version=git_blob_sha(b"[]"))
        assert github.files["db/users.json"] == b"[]"
        assert github.commits == [{"path": "db/users.json", "message": "Create users", "branch": "data"}]
        assert "sha" not in json.loads(github.requests[-1].content)

    @pytest.mark.asyncio
    async def test_create_existing_is_conflict(self, blob_store, github):
        github.seed("db/users.json", b"[]")

        result = await blob_store.write("db/users.json", b"[{}]", "Create users")

        assert result == WriteConflict("db/users.json")
        assert github.files["db/users.json"] == b"[]"

    @pytest.mark.asyncio
    async def test_conditional_update(self, blob_store, github):
        github.seed("db/users.json", b"[]")
        blob = await blob_store.read("db/users.json")

        result = await blob_store.write("db/users.json", b'[{"id": "1"}]', "Insert", blob.version)

        assert isinstance(result, Written)
        assert json.loads(github.requests[-1].content)["sha"] == blob.version
        assert result.version == github.sha("db/users.json")

    @pytest.mark.asyncio
    async def test_stale_sha_is_conflict(self, blob_store, github):
        github.seed("db/users.json", b"[]")
        blob = await blob_store.read("db/users.json")
        github.seed("db/users.json", b'[{"id": "1"}]')

        result = await blob_store.write("db/users.json", b'[{"id": "2"}]', "Insert", blob.version)

        assert result == WriteConflict("db/users.json", blob.version)
        assert github.files["db/users.json"] == b'[{"id": "1"}]'

    @pytest.mark.asyncio
    async def test_bad_credentials(self, github):
        store = GitHubBlobStore(
            GitHubConfig(owner=OWNER, repo=REPO, token="wrong-token"),
            transport=httpx.MockTransport(github.handler),
        )
        await store.connect()

        with pytest.raises(TransportError) as exc_info:
            await store.read("db/users.json")

        assert exc_info.value.status_code == 401
        assert "Bad credentials" in str(exc_info.value)
        assert "wrong-token" not in str(exc_info.value)
        await store.close()

    @pytest.mark.asyncio
    async def test_rate_limit_on_write(self, blob_store, github):
        github.status_override = 403

        with pytest.raises(TransportError) as exc_info:
            await blob_store.write("db/users.json", b"[]", "Create users")

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = GitHubBlobStore(
            GitHubConfig(owner=OWNER, repo=REPO, token=TOKEN),
            transport=httpx.MockTransport(handler),
        )
        await store.connect()

        with pytest.raises(TransportError, match="connection refused"):
            await store.read("db/users.json")
        await store.close()

    @pytest.mark.asyncio
    async def test_not_connected(self):
        store = GitHubBlobStore(GitHubConfig(owner=OWNER, repo=REPO, token=TOKEN))

        with pytest.raises(TransportError):
            await store.read("db/users.json")

    @pytest.mark.asyncio
    async def test_list(self, blob_store, github):
        github.seed("db/users.json", b"[]")
        github.seed("db/orders.json", b"[]")
        github.seed("db/archive/2023.json", b"[]")

        entries = await blob_store.list("db")

        assert entries == [
            BlobEntry(name="archive", is_file=False),
            BlobEntry(name="orders.json", is_file=True),
            BlobEntry(name="users.json", is_file=True),
        ]

    @pytest.mark.asyncio
    async def test_list_missing_directory(self, blob_store):
        assert await blob_store.list("db") == []

    @pytest.mark.asyncio
    async def test_reserved_url_characters_are_encoded(self, blob_store, github):
        await blob_store.write("db/a#b.json", b"[]", "Create a#b")
        await blob_store.read("db/q?x=1.json")

        assert github.requests[0].url.raw_path.endswith(b"/contents/db/a%23b.json")
        assert b"/contents/db/q%3Fx%3D1.json" in github.requests[1].url.raw_path
        assert list(github.files) == ["db/a#b.json"]


class TestCollectionStoreOverGitHub:
    """End-to-end record operations against the fake contents API."""

    @pytest.fixture
    def store(self, blob_store):
        return CollectionStore(
            blob_store,
            schemas={"users": {"required": ["email"], "defaults": {"role": "customer"}}},
        )

    @pytest.mark.asyncio
    async def test_crud_round(self, store, github):
        user = await store.insert("users", {"email": "ada@example.com"})
        await store.update("users", user["id"], {"name": "Ada"})
        second = await store.insert("users", {"email": "grace@example.com"})
        await store.delete("users", user["uid"])

        records = json.loads(github.files["db/users.json"])
        assert records == [second]
        assert [c["message"] for c in github.commits] == [
            "Insert into users",
            "Update users/1",
            "Insert into users",
            "Delete users/1",
        ]

    @pytest.mark.asyncio
    async def test_get_creates_collection_file(self, store, github):
        assert await store.get("orders") == []
        assert github.files["db/orders.json"] == b"[]"

    @pytest.mark.asyncio
    async def test_concurrent_external_commit_raises_conflict(self, store, github):
        user = await store.insert("users", {"email": "ada@example.com"})
        external = json.dumps([{**user, "name": "From elsewhere"}]).encode()
        github.before_write = lambda: github.seed("db/users.json", external)

        with pytest.raises(ConflictError) as exc_info:
            await store.update("users", user["id"], {"name": "Local"})

        assert exc_info.value.collection == "users"
        assert github.files["db/users.json"] == external
        assert [e.action.value for e in store.audit_history("users")] == ["insert"]

    @pytest.mark.asyncio
    async def test_fragment_in_name_does_not_alias_other_collection(self, store, github):
        await store.insert("x", {"title": "keep"})
        before = github.files["db/x.json"]

        await store.insert("x.json#y", {"title": "other"})

        assert github.files["db/x.json"] == before
        assert json.loads(github.files["db/x.json#y.json"])[0]["title"] == "other"
        assert [r["title"] for r in await store.get("x")] == ["keep"]

    @pytest.mark.asyncio
    async def test_list_and_ensure_collections(self, store):
        await store.insert("users", {"email": "ada@example.com"})

        created = await store.ensure_collections(["users", "orders"])

        assert created == ["orders"]
        assert await store.list_collections() == ["orders", "users"]
