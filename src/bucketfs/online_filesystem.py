"""Filesystem-shaped adapter over a flat-namespace bucket.

OnlineFilesystem translates filesystem operations into storage client calls:

- Directories do not exist. mkdir() is a no-op and read_dir() is a prefix
  listing relative to the requested directory.
- Existence is never cached; every call asks the storage client.
- Errors from the storage client reach the caller unchanged, except that
  exists() turns not-found into False and lstat() tolerates a missing or
  malformed size.
- Nothing is retried here; retry policy belongs to the storage client.

The adapter holds no mutable state, so one instance can be shared across
threads.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import IO

from bucketfs.client import StorageClient
from bucketfs.errors import ObjectNotFoundError
from bucketfs.models import (
    FileMetadata,
    ReadOptions,
    SignedUrlRequest,
    Stat,
    UrlOptions,
    WriteOptions,
)
from bucketfs.public_urls import create_url, generate_token_and_url
from bucketfs.streams import ObjectReader, ObjectWriter, pipe_to_writer
from bucketfs.tracing import traced_fs_operation

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_CONTENT_TYPE = "video/mp4"
PATH_SEPARATOR = "/"

_LEADING_INT = re.compile(r"^\s*(\d+)")


def parse_size(raw: str | None) -> int:
    """Parse a metadata size string, returning 0 if absent or non-numeric.

    Leading digits are honoured ("1024 bytes" -> 1024).
    """
    if raw is None:
        return 0
    match = _LEADING_INT.match(str(raw))
    if match is None:
        return 0
    return int(match.group(1))


def truncate_to_utc_date(instant: datetime) -> datetime:
    """Return midnight UTC of the calendar date ``instant`` falls on in UTC.

    Naive datetimes are taken to be UTC.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    day = instant.astimezone(UTC).date()
    return datetime(day.year, day.month, day.day, tzinfo=UTC)


def as_directory_prefix(path: str) -> str:
    """Normalize a directory path to a listing prefix ending with "/"."""
    return path if path.endswith(PATH_SEPARATOR) else path + PATH_SEPARATOR


class OnlineFilesystem:
    """Filesystem operations over an injected storage client.

    Args:
        client: Storage client bound to the bucket.
        default_upload_content_type: Content type signed into upload URLs
            when the caller does not give one.
    """

    create_url = staticmethod(create_url)
    generate_token_and_url = staticmethod(generate_token_and_url)

    def __init__(
        self,
        client: StorageClient,
        *,
        default_upload_content_type: str = DEFAULT_UPLOAD_CONTENT_TYPE,
    ) -> None:
        self._client = client
        self._default_upload_content_type = default_upload_content_type

    @property
    def client(self) -> StorageClient:
        return self._client

    def create_write_stream(self, path: str, options: WriteOptions | None = None) -> ObjectWriter:
        """Open a write stream to ``path``.

        Uploads are single-shot unless ``options.resumable`` is set. The
        object is only durable once the writer's finish() returns.
        """
        return self._client.open_write(path, options or WriteOptions())

    def create_read_stream(self, path: str, options: ReadOptions | None = None) -> ObjectReader:
        """Open a lazy read stream over ``path``.

        A missing object raises ObjectNotFoundError from the first read.
        """
        return self._client.open_read(path, options or ReadOptions())

    @traced_fs_operation("exists")
    def exists(self, path: str) -> bool:
        try:
            return self._client.exists(path)
        except ObjectNotFoundError:
            return False

    def mkdir(self, path: str) -> None:
        """No-op: the bucket has no directory entities."""
        logger.debug("mkdir is a no-op for object storage: %s", path)

    @traced_fs_operation("read_file")
    def read_file(self, path: str, encoding: str | None = None) -> str | bytes:
        """Download a whole object.

        Args:
            path: Object key.
            encoding: Text encoding (e.g. "utf8"). When given, the content
                is decoded and returned as str; otherwise raw bytes.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        data = self._client.download(path)
        if encoding:
            return data.decode(encoding)
        return data

    @traced_fs_operation("unlink")
    def unlink(self, path: str) -> None:
        self._client.delete(path)

    @traced_fs_operation("write_stream_to_file")
    def write_stream_to_file(
        self,
        path: str,
        stream: IO[bytes],
        options: WriteOptions | None = None,
    ) -> FileMetadata | None:
        """Copy a readable binary stream into the object at ``path``.

        Returns once the store has confirmed the write, with the committed
        object's metadata when the backend reports it. If ``stream`` raises,
        nothing is committed and the error propagates.
        """
        writer = self.create_write_stream(path, options)
        return pipe_to_writer(stream, writer)

    @traced_fs_operation("read_dir")
    def read_dir(self, path: str) -> list[str]:
        """List object names below a directory, relative to it.

        The listing is recursive: "a/" returns "b.txt" and "c/d.txt". The
        directory's own placeholder key, if any, is left out. Order is the
        storage client's.
        """
        prefix = as_directory_prefix(path)
        entries = self._client.list_objects(prefix)
        names = [(entry.name or "")[len(prefix) :] for entry in entries]
        return [name for name in names if name]

    @traced_fs_operation("get_upload_url")
    def get_upload_url(
        self,
        path: str,
        valid_until: datetime,
        options: UrlOptions | None = None,
    ) -> str:
        """Issue a V4 signed URL allowing a PUT of ``path`` until ``valid_until``."""
        content_type = (options.content_type if options else None) or (
            self._default_upload_content_type
        )
        request = SignedUrlRequest(
            action="write",
            expires=valid_until,
            content_type=content_type,
            version="v4",
        )
        return self._client.signed_url(path, request)

    @traced_fs_operation("get_download_url")
    def get_download_url(
        self,
        path: str,
        valid_until: datetime,
        options: UrlOptions | None = None,
    ) -> str:
        """Issue a signed URL allowing a GET of ``path``.

        Only the UTC calendar date of ``valid_until`` is honoured: the URL
        expires at midnight UTC starting that date, so an instant later the
        same day yields the same expiry (and an instant on the current day
        yields an already-expired URL). Signed with V2 because V4 caps
        lifetimes at seven days.
        """
        request = SignedUrlRequest(
            action="read",
            expires=truncate_to_utc_date(valid_until),
            content_type=options.content_type if options and options.content_type else None,
            version="v2",
        )
        return self._client.signed_url(path, request)

    @traced_fs_operation("lstat")
    def lstat(self, path: str) -> Stat:
        metadata = self.get_metadata(path)
        size = parse_size(metadata.size)
        if size == 0 and metadata.size not in (None, "0"):
            logger.warning("Unparseable size %r in metadata; reporting 0", metadata.size)
        return Stat(size=size)

    @traced_fs_operation("get_metadata")
    def get_metadata(self, path: str) -> FileMetadata:
        return self._client.get_metadata(path)

    @traced_fs_operation("set_metadata")
    def set_metadata(self, path: str, metadata: FileMetadata) -> FileMetadata:
        """Pass ``metadata`` to the store and return the record it confirms."""
        return self._client.set_metadata(path, metadata)
