"""Filesystem storage backend.

Provides a local-disk bucket for development and testing with:
- Path traversal protection on every key
- Atomic commits (stage in tmp/, rename into place)
- JSON sidecar metadata in the Cloud Storage resource shape
- HMAC-signed URLs that can be verified locally

Layout:
    {base_dir}/{bucket}/
        objects/{escaped key}            # content
        metadata/{escaped key}.json      # FileMetadata sidecar
        tmp/                             # in-flight writes

Keys are stored as flat file names with every reserved character
percent-escaped (quote(key, safe="")), so "a" and "a/b" are independent
objects just as in a real bucket. Keys whose escaped form exceeds the
file-name limit of the host filesystem cannot be stored.

Environment Variables:
    BUCKETFS_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / bucketfs_objects)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
import re
import shutil
import tempfile
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import IO
from urllib.parse import parse_qs, quote, unquote, urlsplit

from bucketfs.client import StorageClient
from bucketfs.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from bucketfs.models import FileMetadata, ReadOptions, SignedUrlRequest, WriteOptions
from bucketfs.streams import ObjectReader, ObjectWriter, SpooledObjectWriter

logger = logging.getLogger(__name__)

BUCKETFS_BASE_DIR_ENV = "BUCKETFS_BASE_DIR"

DEFAULT_PUBLIC_BASE_URL = "http://localhost:8080/objects"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

PARAM_ACTION = "X-Bucketfs-Action"
PARAM_EXPIRES = "X-Bucketfs-Expires"
PARAM_CONTENT_TYPE = "X-Bucketfs-Content-Type"
PARAM_SIGNATURE = "X-Bucketfs-Signature"

_OBJECTS_DIR = "objects"
_METADATA_DIR = "metadata"
_TMP_DIR = "tmp"
_METADATA_SUFFIX = ".json"
_OBJECT_KIND = "storage#object"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_SAFE_BUCKET_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._\-]*$")


def _is_path_traversal(key: str) -> bool:
    """Check if a key cannot be mapped safely below the objects directory.

    Detects:
    - Empty keys and keys ending in "/"
    - ".." and "." segments, empty segments
    - Absolute paths (leading / or ~) and drive letters like C:
    - Backslashes (Windows path separators)
    - NUL and other control characters
    """
    if not key or key.endswith("/"):
        return True
    if "\\" in key or _CONTROL_CHARS.search(key):
        return True
    if key.startswith("/") or key.startswith("~"):
        return True
    if len(key) >= 2 and key[1] == ":":
        return True
    return any(segment in ("", ".", "..") for segment in key.split("/"))


def _file_name(key: str) -> str:
    """Map an object key to its flat on-disk file name."""
    return quote(key, safe="")


def _now_rfc3339() -> str:
    return datetime.now(UTC).isoformat()


def compute_url_signature(
    secret: str,
    action: str,
    key: str,
    expires: int,
    content_type: str | None,
) -> str:
    """Compute the HMAC-SHA256 signature for a local signed URL.

    Canonical string: "{action}\\n{key}\\n{expires}\\n{content_type}"
    """
    canonical = f"{action}\n{key}\n{expires}\n{content_type or ''}"
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=canonical.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()


class FilesystemStorageClient(StorageClient):
    """Filesystem-based storage client for a single bucket."""

    def __init__(
        self,
        bucket: str,
        base_dir: str | Path | None = None,
        *,
        signing_secret: str | None = None,
        public_base_url: str = DEFAULT_PUBLIC_BASE_URL,
    ) -> None:
        """Initialize filesystem storage.

        Args:
            bucket: Bucket name; becomes a directory under base_dir.
            base_dir: Base directory for storage. If None, uses
                BUCKETFS_BASE_DIR env var or the OS temp directory.
            signing_secret: HMAC secret for signed URLs. A random secret is
                generated when omitted, so URLs only verify in this process.
            public_base_url: Base URL prefixed to signed URLs.
        """
        if not _SAFE_BUCKET_PATTERN.match(bucket):
            raise InvalidArgumentError(f"Invalid bucket name: {bucket!r}", bucket=bucket)

        if base_dir is None:
            base_dir = os.environ.get(BUCKETFS_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "bucketfs_objects"
        else:
            base_dir = Path(base_dir)

        self._bucket = bucket
        self._base_dir = base_dir.resolve()
        self._root = self._base_dir / bucket
        self._signing_secret = signing_secret or uuid.uuid4().hex
        self._public_base_url = public_base_url.rstrip("/")
        logger.debug(
            "FilesystemStorageClient initialized with base_dir=%s bucket=%s",
            self._base_dir,
            bucket,
        )

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def bucket_name(self) -> str:
        return self._bucket

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _validate_key(self, key: str) -> None:
        if _is_path_traversal(key):
            raise PathTraversalError(
                message="Invalid key: path traversal or unsafe characters detected",
                key=key,
                bucket=self._bucket,
            )

    def _resolve_within(self, root: Path, relative: str, key: str) -> Path:
        """Join and ensure the result stays below ``root``."""
        path = (root / relative).resolve()
        try:
            path.relative_to(root.resolve())
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage directory",
                key=key,
                bucket=self._bucket,
            ) from e
        return path

    def _object_path(self, key: str) -> Path:
        self._validate_key(key)
        return self._resolve_within(self._root / _OBJECTS_DIR, _file_name(key), key)

    def _metadata_path(self, key: str) -> Path:
        self._validate_key(key)
        return self._resolve_within(
            self._root / _METADATA_DIR, _file_name(key) + _METADATA_SUFFIX, key
        )

    @contextmanager
    def _translate_errors(self, key: str) -> Iterator[None]:
        try:
            yield
        except FileNotFoundError as e:
            raise ObjectNotFoundError(key=key, bucket=self._bucket) from e
        except (IsADirectoryError, NotADirectoryError) as e:
            raise ObjectNotFoundError(key=key, bucket=self._bucket) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Filesystem operation failed: {e}",
                key=key,
                bucket=self._bucket,
                cause=e,
            ) from e

    def _read_metadata(self, key: str) -> FileMetadata | None:
        meta_file = self._metadata_path(key)
        if not meta_file.exists():
            return None
        try:
            return FileMetadata.model_validate(json.loads(meta_file.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            logger.warning("Failed to read metadata %s: %s", meta_file, e)
            return None

    def _write_metadata(self, key: str, metadata: FileMetadata) -> None:
        """Write the metadata sidecar atomically."""
        meta_file = self._metadata_path(key)
        tmp_file = self._root / _TMP_DIR / f"meta.{uuid.uuid4().hex}.tmp"
        try:
            meta_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(json.dumps(metadata.to_dict(), indent=2), encoding="utf-8")
            tmp_file.replace(meta_file)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write metadata: {e}",
                key=key,
                bucket=self._bucket,
                cause=e,
            ) from e

    def _fallback_metadata(self, key: str, content_file: Path) -> FileMetadata:
        """Build metadata for an object whose sidecar is missing or unreadable."""
        st = content_file.stat()
        return FileMetadata(
            kind=_OBJECT_KIND,
            id=f"{self._bucket}/{key}",
            name=key,
            content_type=DEFAULT_CONTENT_TYPE,
            size=st.st_size,
            time_created=datetime.fromtimestamp(st.st_mtime, UTC),
            updated=datetime.fromtimestamp(st.st_mtime, UTC),
        )

    def _commit(
        self,
        key: str,
        options: WriteOptions,
        buffer: IO[bytes],
        size: int,
    ) -> FileMetadata:
        content_file = self._object_path(key)
        tmp_dir = self._root / _TMP_DIR
        tmp_file = tmp_dir / f"data.{uuid.uuid4().hex}.tmp"
        try:
            tmp_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "wb") as out:
                shutil.copyfileobj(buffer, out)
            content_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.replace(content_file)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write content: {e}",
                key=key,
                bucket=self._bucket,
                cause=e,
            ) from e

        now = _now_rfc3339()
        generation = uuid.uuid4().int >> 64
        metadata = FileMetadata(
            kind=_OBJECT_KIND,
            id=f"{self._bucket}/{key}/{generation}",
            name=key,
            content_type=options.content_type or DEFAULT_CONTENT_TYPE,
            size=size,
            time_created=now,
            updated=now,
            metadata=dict(options.metadata or {}),
        )
        self._write_metadata(key, metadata)
        logger.debug("Stored object: bucket=%s key=%s size=%d", self._bucket, key, size)
        return metadata

    def open_read(self, key: str, options: ReadOptions) -> ObjectReader:
        content_file = self._object_path(key)

        def opener() -> IO[bytes]:
            return open(content_file, "rb")

        return ObjectReader(
            opener,
            start=options.start,
            end=options.end,
            guard=lambda: self._translate_errors(key),
        )

    def open_write(self, key: str, options: WriteOptions) -> ObjectWriter:
        self._validate_key(key)
        if options.resumable:
            logger.debug("Resumable uploads are not used by the filesystem backend; key=%s", key)

        def commit(buffer: IO[bytes], size: int) -> FileMetadata:
            return self._commit(key, options, buffer, size)

        return SpooledObjectWriter(commit)

    def exists(self, key: str) -> bool:
        if _is_path_traversal(key):
            return False
        return self._object_path(key).is_file()

    def download(self, key: str) -> bytes:
        content_file = self._object_path(key)
        with self._translate_errors(key):
            return content_file.read_bytes()

    def delete(self, key: str) -> None:
        content_file = self._object_path(key)
        if not content_file.is_file():
            raise ObjectNotFoundError(key=key, bucket=self._bucket)
        with self._translate_errors(key):
            content_file.unlink()
            self._metadata_path(key).unlink(missing_ok=True)
        logger.debug("Deleted object: bucket=%s key=%s", self._bucket, key)

    def _iter_keys(self) -> Iterator[str]:
        objects_dir = self._root / _OBJECTS_DIR
        if not objects_dir.exists():
            return
        with os.scandir(objects_dir) as entries:
            for entry in entries:
                if entry.is_file():
                    yield unquote(entry.name)

    def list_objects(self, prefix: str) -> list[FileMetadata]:
        keys = sorted(k for k in self._iter_keys() if k.startswith(prefix))
        return [self.get_metadata(k) for k in keys]

    def signed_url(self, key: str, request: SignedUrlRequest) -> str:
        self._validate_key(key)
        expires = int(request.expires.timestamp())
        signature = compute_url_signature(
            self._signing_secret, request.action, key, expires, request.content_type
        )
        params = [f"{PARAM_ACTION}={request.action}", f"{PARAM_EXPIRES}={expires}"]
        if request.content_type:
            params.append(f"{PARAM_CONTENT_TYPE}={quote(request.content_type, safe='')}")
        params.append(f"{PARAM_SIGNATURE}={signature}")
        return f"{self._public_base_url}/{self._bucket}/{quote(key)}?{'&'.join(params)}"

    def verify_signed_url(self, url: str, action: str, now: datetime | None = None) -> bool:
        """Check that a URL from signed_url() is authentic, unexpired and for ``action``."""
        parts = urlsplit(url)
        bucket_prefix = urlsplit(f"{self._public_base_url}/{self._bucket}/").path
        if not parts.path.startswith(bucket_prefix):
            return False
        key = unquote(parts.path[len(bucket_prefix) :])
        query = {k: v[0] for k, v in parse_qs(parts.query).items()}
        try:
            expires = int(query[PARAM_EXPIRES])
            signature = query[PARAM_SIGNATURE]
            url_action = query[PARAM_ACTION]
        except (KeyError, ValueError):
            return False
        if url_action != action:
            return False
        current = (now or datetime.now(UTC)).timestamp()
        if current > expires:
            return False
        expected = compute_url_signature(
            self._signing_secret, url_action, key, expires, query.get(PARAM_CONTENT_TYPE)
        )
        return hmac.compare_digest(expected, signature)

    def get_metadata(self, key: str) -> FileMetadata:
        content_file = self._object_path(key)
        if not content_file.is_file():
            raise ObjectNotFoundError(key=key, bucket=self._bucket)
        metadata = self._read_metadata(key)
        if metadata is None:
            with self._translate_errors(key):
                metadata = self._fallback_metadata(key, content_file)
        return metadata

    def set_metadata(self, key: str, metadata: FileMetadata) -> FileMetadata:
        extras = metadata.writable_extras()
        current = self.get_metadata(key)
        custom = dict(current.metadata)
        for k, v in metadata.metadata.items():
            if v is None:
                custom.pop(k, None)
            else:
                custom[k] = v
        updated = current.model_copy(
            update={
                "content_type": metadata.content_type or current.content_type,
                "metadata": custom,
                "updated": _now_rfc3339(),
                **extras,
            }
        )
        self._write_metadata(key, updated)
        return updated
