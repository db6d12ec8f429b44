"""Storage client interface definition.

The storage client is the only collaborator the online filesystem talks to.
It exposes key-addressed object operations on a single bucket and maps its
provider's failures onto bucketfs.errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from bucketfs.models import FileMetadata, ReadOptions, SignedUrlRequest, WriteOptions
from bucketfs.streams import ObjectReader, ObjectWriter


class StorageClient(ABC):
    """Abstract base class for bucket-scoped storage clients.

    Implementations:
    - GcsStorageClient: Google Cloud Storage / Firebase Storage (production)
    - FilesystemStorageClient: Local filesystem (dev/test)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability (e.g. "gcs")."""
        ...

    @property
    @abstractmethod
    def bucket_name(self) -> str:
        """Return the name of the bucket this client is bound to."""
        ...

    @abstractmethod
    def open_read(self, key: str, options: ReadOptions) -> ObjectReader:
        """Open an object for lazy reading.

        Nothing is fetched until the first read. A missing object raises
        ObjectNotFoundError from read(), not from this call.
        """
        ...

    @abstractmethod
    def open_write(self, key: str, options: WriteOptions) -> ObjectWriter:
        """Open an object for writing.

        The object is committed only when the returned writer's finish()
        returns.

        Raises:
            InvalidArgumentError: If the key is not acceptable to the backend.
        """
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True if an object is stored under ``key``."""
        ...

    @abstractmethod
    def download(self, key: str) -> bytes:
        """Return the full object content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...

    @abstractmethod
    def list_objects(self, prefix: str) -> list[FileMetadata]:
        """List every object whose key starts with ``prefix``.

        The listing is recursive (no delimiter). Order is backend-defined.
        """
        ...

    @abstractmethod
    def signed_url(self, key: str, request: SignedUrlRequest) -> str:
        """Issue a time-limited URL scoped to ``request.action`` on one object."""
        ...

    @abstractmethod
    def get_metadata(self, key: str) -> FileMetadata:
        """Return the metadata record of an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        ...

    @abstractmethod
    def set_metadata(self, key: str, metadata: FileMetadata) -> FileMetadata:
        """Update the writable metadata of an object.

        Writable fields are ``content_type`` and custom ``metadata``. Custom
        keys are merged into the stored map; keys set to None are removed.

        Returns:
            The metadata record as confirmed by the store.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        ...
