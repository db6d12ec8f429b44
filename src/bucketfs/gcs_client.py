"""Google Cloud Storage backend.

Wraps a google.cloud.storage Bucket. Firebase Storage buckets are plain GCS
buckets, so the object returned by ``firebase_admin.storage.bucket()`` can be
passed in directly.

Writes are single-shot by default: content is spooled locally and sent with
one upload call when the writer finishes. The client library itself switches
to a resumable session for payloads above its multipart ceiling (8 MiB).
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, Any

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage
from google.cloud.storage import Blob, Bucket
from google.cloud.storage.fileio import BlobWriter

from bucketfs.client import StorageClient
from bucketfs.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    StorageBackendError,
)
from bucketfs.models import (
    WRITABLE_EXTRA_FIELDS,
    FileMetadata,
    ReadOptions,
    SignedUrlRequest,
    WriteOptions,
)
from bucketfs.streams import ErrorGuard, ObjectReader, ObjectWriter, SpooledObjectWriter

logger = logging.getLogger(__name__)

_OBJECT_KIND = "storage#object"

_SIGNED_URL_METHODS = {"read": "GET", "write": "PUT"}

_INVALID_ARGUMENT_ERRORS: tuple[type[gcs_exceptions.GoogleAPICallError], ...] = (
    gcs_exceptions.BadRequest,
    gcs_exceptions.PreconditionFailed,
    gcs_exceptions.RequestRangeNotSatisfiable,
)


def blob_to_metadata(blob: Blob) -> FileMetadata:
    """Project a Blob's loaded properties onto FileMetadata."""
    extras = {
        wire: getattr(blob, attr)
        for wire, attr in WRITABLE_EXTRA_FIELDS.items()
        if getattr(blob, attr) is not None
    }
    return FileMetadata(
        kind=_OBJECT_KIND,
        id=blob.id,
        name=blob.name,
        content_type=blob.content_type,
        size=blob.size,
        time_created=blob.time_created,
        updated=blob.updated,
        metadata=dict(blob.metadata or {}),
        **extras,
    )


class _ResumableBlobWriter(ObjectWriter):
    """ObjectWriter over the client library's chunked BlobWriter."""

    def __init__(self, blob: Blob, writer: BlobWriter, guard: ErrorGuard) -> None:
        super().__init__()
        self._blob = blob
        self._writer = writer
        self._guard = guard

    def _write(self, data: bytes) -> int:
        with self._guard():
            return self._writer.write(data)

    def _commit(self) -> FileMetadata | None:
        with self._guard():
            self._writer.close()
            self._blob.reload()
        return blob_to_metadata(self._blob)

    def _discard(self) -> None:
        # terminate() cancels any started session and closes the buffer, so the
        # writer's close() can no longer finalize the upload.
        with self._guard():
            self._writer.terminate()
        logger.debug("Abandoned resumable upload for blob=%s", self._blob.name)


class GcsStorageClient(StorageClient):
    """Storage client bound to a single Cloud Storage bucket."""

    def __init__(self, bucket: Bucket) -> None:
        self._bucket = bucket
        logger.debug("GcsStorageClient initialized for bucket=%s", bucket.name)

    @classmethod
    def from_bucket_name(cls, bucket_name: str, project: str | None = None) -> GcsStorageClient:
        """Create a client using application default credentials."""
        client = storage.Client(project=project)
        return cls(client.bucket(bucket_name))

    @property
    def backend_name(self) -> str:
        return "gcs"

    @property
    def bucket_name(self) -> str:
        return str(self._bucket.name)

    @contextmanager
    def _translate_errors(self, key: str | None) -> Iterator[None]:
        """Map google-api-core errors onto bucketfs errors."""
        try:
            yield
        except gcs_exceptions.NotFound as e:
            raise ObjectNotFoundError(key=key, bucket=self.bucket_name) from e
        except _INVALID_ARGUMENT_ERRORS as e:
            raise InvalidArgumentError(
                f"Request rejected by storage: {e.message}",
                key=key,
                bucket=self.bucket_name,
            ) from e
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageBackendError(
                f"Storage request failed: {e}",
                key=key,
                bucket=self.bucket_name,
                cause=e,
            ) from e

    def _guard(self, key: str) -> ErrorGuard:
        return functools.partial(self._translate_errors, key)

    def _validate_key(self, key: str) -> None:
        if not key:
            raise InvalidArgumentError("Object key must not be empty", bucket=self.bucket_name)

    def open_read(self, key: str, options: ReadOptions) -> ObjectReader:
        self._validate_key(key)
        blob = self._bucket.blob(key)

        def opener() -> IO[bytes]:
            kwargs: dict[str, Any] = {}
            if options.chunk_size:
                kwargs["chunk_size"] = options.chunk_size
            return blob.open("rb", **kwargs)

        return ObjectReader(opener, start=options.start, end=options.end, guard=self._guard(key))

    def open_write(self, key: str, options: WriteOptions) -> ObjectWriter:
        self._validate_key(key)
        blob = self._bucket.blob(key, chunk_size=options.chunk_size)
        if options.metadata:
            blob.metadata = dict(options.metadata)

        upload_kwargs: dict[str, Any] = dict(options.provider_options)
        if options.content_type:
            upload_kwargs["content_type"] = options.content_type

        if options.resumable:
            with self._translate_errors(key):
                writer = blob.open("wb", ignore_flush=True, **upload_kwargs)
            logger.debug("Opened resumable upload: bucket=%s key=%s", self.bucket_name, key)
            return _ResumableBlobWriter(blob, writer, self._guard(key))

        def commit(buffer: IO[bytes], size: int) -> FileMetadata:
            with self._translate_errors(key):
                blob.upload_from_file(buffer, size=size, **upload_kwargs)
            logger.debug(
                "Uploaded object: bucket=%s key=%s size=%d", self.bucket_name, key, size
            )
            return blob_to_metadata(blob)

        return SpooledObjectWriter(commit)

    def exists(self, key: str) -> bool:
        with self._translate_errors(key):
            return bool(self._bucket.blob(key).exists())

    def download(self, key: str) -> bytes:
        self._validate_key(key)
        with self._translate_errors(key):
            return bytes(self._bucket.blob(key).download_as_bytes())

    def delete(self, key: str) -> None:
        self._validate_key(key)
        with self._translate_errors(key):
            self._bucket.blob(key).delete()
        logger.debug("Deleted object: bucket=%s key=%s", self.bucket_name, key)

    def list_objects(self, prefix: str) -> list[FileMetadata]:
        with self._translate_errors(None):
            return [blob_to_metadata(blob) for blob in self._bucket.list_blobs(prefix=prefix)]

    def signed_url(self, key: str, request: SignedUrlRequest) -> str:
        self._validate_key(key)
        blob = self._bucket.blob(key)
        with self._translate_errors(key):
            return str(
                blob.generate_signed_url(
                    version=request.version,
                    expiration=request.expires,
                    method=_SIGNED_URL_METHODS[request.action],
                    content_type=request.content_type,
                )
            )

    def get_metadata(self, key: str) -> FileMetadata:
        self._validate_key(key)
        with self._translate_errors(key):
            blob = self._bucket.get_blob(key)
        if blob is None:
            raise ObjectNotFoundError(key=key, bucket=self.bucket_name)
        return blob_to_metadata(blob)

    def set_metadata(self, key: str, metadata: FileMetadata) -> FileMetadata:
        self._validate_key(key)
        extras = metadata.writable_extras()
        blob = self._bucket.blob(key)
        if metadata.content_type:
            blob.content_type = metadata.content_type
        if metadata.metadata:
            blob.metadata = dict(metadata.metadata)
        for wire_name, value in extras.items():
            setattr(blob, WRITABLE_EXTRA_FIELDS[wire_name], value)
        with self._translate_errors(key):
            blob.patch()
        return blob_to_metadata(blob)
