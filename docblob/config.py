"""
Configuration management for docblob.

Configuration is done via environment variables, or by constructing the
dataclasses directly when the library is embedded in an application.

Invariants:
    - All settings have sensible defaults for local development
    - Remote backends MUST be given explicit credentials/locations
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and the dataclass defaults in sync
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class BlobBackend(Enum):
    """Supported blob store backends."""

    GITHUB = "github"
    S3 = "s3"
    MEMORY = "memory"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class GitHubConfig:
    """GitHub contents API backend configuration.

    Attributes:
        owner: Repository owner (user or organization)
        repo: Repository name
        token: Personal access token with contents read/write permission
        branch: Branch holding the collections
        api_url: API root (override for GitHub Enterprise)
        timeout_seconds: HTTP timeout per request
    """

    owner: str = ""
    repo: str = ""
    token: str = field(default="", repr=False)
    branch: str = "main"
    api_url: str = "https://api.github.com"
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> GitHubConfig:
        """Load configuration from environment variables."""
        return cls(
            owner=os.getenv("GITHUB_OWNER", ""),
            repo=os.getenv("GITHUB_REPO", ""),
            token=os.getenv("GITHUB_TOKEN", ""),
            branch=os.getenv("GITHUB_BRANCH", "main"),
            api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            timeout_seconds=float(os.getenv("GITHUB_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class S3Config:
    """S3 backend configuration.

    Attributes:
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        key_prefix: Prefix prepended to every blob path
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str = "docblob"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    key_prefix: str = ""
    access_key_id: str | None = None
    secret_access_key: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET", "docblob"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            key_prefix=os.getenv("S3_KEY_PREFIX", ""),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class StoreConfig:
    """Collection store configuration.

    Attributes:
        base_path: Directory holding one <collection>.json blob per collection
        lock_collections: Serialize read-modify-write per collection in-process
        enforce_types: Check declared schema types, not just required fields
    """

    base_path: str = "db"
    lock_collections: bool = True
    enforce_types: bool = False

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            base_path=os.getenv("DOCBLOB_BASE_PATH", "db"),
            lock_collections=_env_bool("DOCBLOB_LOCK_COLLECTIONS", "true"),
            enforce_types=_env_bool("DOCBLOB_ENFORCE_TYPES", "false"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class DocBlobConfig:
    """Complete library configuration.

    Attributes:
        backend: Which blob store backend to use
        github: GitHub configuration (if backend is GITHUB)
        s3: S3 configuration (if backend is S3)
        store: Collection store configuration
        observability: Logging configuration
    """

    backend: BlobBackend = BlobBackend.GITHUB
    github: GitHubConfig = field(default_factory=GitHubConfig)
    s3: S3Config = field(default_factory=S3Config)
    store: StoreConfig = field(default_factory=StoreConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> DocBlobConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("DOCBLOB_BACKEND", "github").lower()
        try:
            backend = BlobBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid DOCBLOB_BACKEND '{backend_str}'. Must be one of: github, s3, memory"
            )

        config = cls(
            backend=backend,
            github=GitHubConfig.from_env(),
            s3=S3Config.from_env(),
            store=StoreConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.backend == BlobBackend.GITHUB:
            if not self.github.owner or not self.github.repo:
                raise ValueError("GITHUB_OWNER and GITHUB_REPO are required when DOCBLOB_BACKEND=github")
            if not self.github.token:
                raise ValueError("GITHUB_TOKEN is required when DOCBLOB_BACKEND=github")
        elif self.backend == BlobBackend.S3:
            if not self.s3.bucket:
                raise ValueError("S3_BUCKET is required when DOCBLOB_BACKEND=s3")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be json or text")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "docblob configuration loaded",
            extra={
                "backend": self.backend.value,
                "github_repo": f"{self.github.owner}/{self.github.repo}"
                if self.backend == BlobBackend.GITHUB
                else None,
                "github_branch": self.github.branch if self.backend == BlobBackend.GITHUB else None,
                "s3_bucket": self.s3.bucket if self.backend == BlobBackend.S3 else None,
                "base_path": self.store.base_path,
                "lock_collections": self.store.lock_collections,
                "enforce_types": self.store.enforce_types,
                "log_level": self.observability.log_level,
            },
        )
