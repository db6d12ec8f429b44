"""bucketfs error types.

Provides typed exceptions for storage operations. Backends translate provider
errors into these types at their boundary; the filesystem adapter passes them
through to callers unchanged.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        key: Object key associated with the operation (if applicable).
        bucket: Bucket name associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        bucket: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.key = key
        self.bucket = bucket

    def __str__(self) -> str:
        parts = [self.message]
        if self.bucket:
            parts.append(f"bucket={self.bucket}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when an object does not exist in the bucket."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        key: str | None = None,
        bucket: str | None = None,
    ) -> None:
        super().__init__(message, key=key, bucket=bucket)


class InvalidArgumentError(ObjectStorageError):
    """Raised when the storage backend rejects a key or option."""

    def __init__(
        self,
        message: str = "Invalid argument",
        *,
        key: str | None = None,
        bucket: str | None = None,
    ) -> None:
        super().__init__(message, key=key, bucket=bucket)


class PathTraversalError(InvalidArgumentError):
    """Raised when an object key would escape a local storage sandbox.

    Keys like "../x", absolute paths, backslashes and control characters
    are rejected by backends that map keys onto a real filesystem.
    """

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        key: str | None = None,
        bucket: str | None = None,
    ) -> None:
        super().__init__(message, key=key, bucket=bucket)


class StorageBackendError(ObjectStorageError):
    """Raised when the storage backend cannot complete an operation.

    Covers transport and provider failures (network errors, permission
    denied, quota, disk full) rather than logical errors like not found.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        key: str | None = None,
        bucket: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, key=key, bucket=bucket)
        self.cause = cause
