"""bucketfs: a filesystem-shaped view of a cloud storage bucket.

Provides OnlineFilesystem, which maps paths, streams, directory listings,
stat and metadata onto the flat-key primitives of an object store, plus
signed and token-gated URLs for out-of-band transfer.

Backends:
- GcsStorageClient: Google Cloud Storage / Firebase Storage (production)
- FilesystemStorageClient: Local filesystem (dev/test)

Environment Variables:
    BUCKETFS_STORAGE_BACKEND: "filesystem" or "gcs" (default: "filesystem")
    BUCKETFS_BUCKET: Bucket name
"""

from bucketfs.client import StorageClient
from bucketfs.config import (
    StorageConfigError,
    StorageSettings,
    create_online_filesystem,
    create_storage_client,
    load_storage_settings,
)
from bucketfs.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageBackendError,
)
from bucketfs.filesystem_client import FilesystemStorageClient
from bucketfs.models import (
    FileMetadata,
    ReadOptions,
    Stat,
    TokenUrl,
    UrlOptions,
    WriteOptions,
)
from bucketfs.online_filesystem import OnlineFilesystem
from bucketfs.public_urls import create_url, generate_token_and_url
from bucketfs.streams import ObjectReader, ObjectWriter

__all__ = [
    "OnlineFilesystem",
    "StorageClient",
    "FilesystemStorageClient",
    "FileMetadata",
    "Stat",
    "TokenUrl",
    "ReadOptions",
    "WriteOptions",
    "UrlOptions",
    "ObjectReader",
    "ObjectWriter",
    "create_url",
    "generate_token_and_url",
    "StorageSettings",
    "StorageConfigError",
    "load_storage_settings",
    "create_storage_client",
    "create_online_filesystem",
    "ObjectStorageError",
    "ObjectNotFoundError",
    "InvalidArgumentError",
    "PathTraversalError",
    "StorageBackendError",
]
