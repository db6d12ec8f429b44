"""bucketfs configuration and factories.

Environment Variables:
    BUCKETFS_STORAGE_BACKEND: "filesystem" or "gcs" (default: "filesystem")
    BUCKETFS_BUCKET: Bucket name (required for "gcs"; default "local")
    BUCKETFS_GCP_PROJECT: Google Cloud project for the gcs client (optional)
    BUCKETFS_BASE_DIR: Base directory for the filesystem backend
        (default: OS temp dir / bucketfs_objects)
    BUCKETFS_SIGNING_SECRET: HMAC secret for filesystem signed URLs (optional)
    BUCKETFS_PUBLIC_BASE_URL: Base URL of filesystem signed URLs
    BUCKETFS_UPLOAD_CONTENT_TYPE: Default content type of upload URLs
        (default: "video/mp4")
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from bucketfs.client import StorageClient
from bucketfs.filesystem_client import (
    BUCKETFS_BASE_DIR_ENV,
    DEFAULT_PUBLIC_BASE_URL,
    FilesystemStorageClient,
)
from bucketfs.online_filesystem import DEFAULT_UPLOAD_CONTENT_TYPE, OnlineFilesystem

logger = logging.getLogger(__name__)

BUCKETFS_STORAGE_BACKEND_ENV = "BUCKETFS_STORAGE_BACKEND"
BUCKETFS_BUCKET_ENV = "BUCKETFS_BUCKET"
BUCKETFS_GCP_PROJECT_ENV = "BUCKETFS_GCP_PROJECT"
BUCKETFS_SIGNING_SECRET_ENV = "BUCKETFS_SIGNING_SECRET"
BUCKETFS_PUBLIC_BASE_URL_ENV = "BUCKETFS_PUBLIC_BASE_URL"
BUCKETFS_UPLOAD_CONTENT_TYPE_ENV = "BUCKETFS_UPLOAD_CONTENT_TYPE"

BACKEND_FILESYSTEM = "filesystem"
BACKEND_GCS = "gcs"
VALID_BACKENDS = frozenset({BACKEND_FILESYSTEM, BACKEND_GCS})

DEFAULT_LOCAL_BUCKET = "local"


class StorageConfigError(Exception):
    """Raised when storage settings are missing or invalid."""

    pass


@dataclass(frozen=True)
class StorageSettings:
    """Resolved storage settings.

    Attributes:
        backend: "filesystem" or "gcs".
        bucket: Bucket name.
        project: Google Cloud project (gcs only).
        base_dir: Base directory (filesystem only).
        signing_secret: HMAC secret for signed URLs (filesystem only).
        public_base_url: Base URL of signed URLs (filesystem only).
        upload_content_type: Default content type signed into upload URLs.
    """

    backend: str = BACKEND_FILESYSTEM
    bucket: str = DEFAULT_LOCAL_BUCKET
    project: str | None = None
    base_dir: str | None = None
    signing_secret: str | None = None
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    upload_content_type: str = DEFAULT_UPLOAD_CONTENT_TYPE


def _env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def load_storage_settings() -> StorageSettings:
    """Read StorageSettings from the environment.

    Raises:
        StorageConfigError: If the backend is unknown, or gcs is selected
            without a bucket.
    """
    backend = (_env(BUCKETFS_STORAGE_BACKEND_ENV) or BACKEND_FILESYSTEM).lower()
    if backend not in VALID_BACKENDS:
        raise StorageConfigError(
            f"Unknown storage backend {backend!r} in {BUCKETFS_STORAGE_BACKEND_ENV}; "
            f"expected one of {sorted(VALID_BACKENDS)}"
        )

    bucket = _env(BUCKETFS_BUCKET_ENV)
    if bucket is None:
        if backend == BACKEND_GCS:
            raise StorageConfigError(
                f"Missing required environment variable: {BUCKETFS_BUCKET_ENV}"
            )
        bucket = DEFAULT_LOCAL_BUCKET

    return StorageSettings(
        backend=backend,
        bucket=bucket,
        project=_env(BUCKETFS_GCP_PROJECT_ENV),
        base_dir=_env(BUCKETFS_BASE_DIR_ENV),
        signing_secret=_env(BUCKETFS_SIGNING_SECRET_ENV),
        public_base_url=_env(BUCKETFS_PUBLIC_BASE_URL_ENV) or DEFAULT_PUBLIC_BASE_URL,
        upload_content_type=_env(BUCKETFS_UPLOAD_CONTENT_TYPE_ENV) or DEFAULT_UPLOAD_CONTENT_TYPE,
    )


def create_storage_client(settings: StorageSettings | None = None) -> StorageClient:
    """Create the storage client selected by ``settings`` (or the environment)."""
    if settings is None:
        settings = load_storage_settings()

    logger.debug("Creating storage client: backend=%s bucket=%s", settings.backend, settings.bucket)

    if settings.backend == BACKEND_GCS:
        from bucketfs.gcs_client import GcsStorageClient

        return GcsStorageClient.from_bucket_name(settings.bucket, project=settings.project)

    if settings.backend == BACKEND_FILESYSTEM:
        return FilesystemStorageClient(
            settings.bucket,
            settings.base_dir,
            signing_secret=settings.signing_secret,
            public_base_url=settings.public_base_url,
        )

    raise StorageConfigError(f"Unknown storage backend: {settings.backend!r}")


def create_online_filesystem(settings: StorageSettings | None = None) -> OnlineFilesystem:
    """Create an OnlineFilesystem over the configured storage client."""
    if settings is None:
        settings = load_storage_settings()
    return OnlineFilesystem(
        create_storage_client(settings),
        default_upload_content_type=settings.upload_content_type,
    )
