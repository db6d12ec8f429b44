"""Binary stream types shared by storage backends.

ObjectReader is a lazy, pull-based reader: nothing is fetched until the first
read, so a missing object surfaces as an error from read() rather than from
open. ObjectWriter separates local buffering from durable completion: bytes
written are only visible in the bucket once finish() (or close()) returns.
"""

from __future__ import annotations

import contextlib
import io
import logging
import shutil
import tempfile
from abc import abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager
from types import TracebackType
from typing import IO, TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bucketfs.models import FileMetadata

logger = logging.getLogger(__name__)

DEFAULT_SPOOL_MAX_MEMORY = 8 * 1024 * 1024
DEFAULT_COPY_CHUNK_SIZE = 256 * 1024

ErrorGuard = Callable[[], AbstractContextManager[Any]]


class ObjectReader(io.RawIOBase):
    """Lazy binary reader over a single object.

    Args:
        opener: Callable returning the provider's binary file object.
            Invoked on the first read.
        start: First byte offset to return (inclusive).
        end: Last byte offset to return (inclusive).
        guard: Context manager factory wrapped around every provider call,
            used by backends to translate provider errors.
    """

    def __init__(
        self,
        opener: Callable[[], IO[bytes]],
        *,
        start: int | None = None,
        end: int | None = None,
        guard: ErrorGuard | None = None,
    ) -> None:
        super().__init__()
        self._opener = opener
        self._start = start or 0
        self._end = end
        self._guard: ErrorGuard = guard or contextlib.nullcontext
        self._raw: IO[bytes] | None = None
        self._remaining: int | None = None

    def readable(self) -> bool:
        return True

    def _ensure_open(self) -> IO[bytes]:
        if self._raw is None:
            with self._guard():
                raw = self._opener()
                if self._start:
                    raw.seek(self._start)
            self._raw = raw
            if self._end is not None:
                self._remaining = max(0, self._end - self._start + 1)
        return self._raw

    def readinto(self, buffer: Any) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed reader")
        raw = self._ensure_open()
        view = memoryview(buffer).cast("B")
        size = len(view)
        if self._remaining is not None:
            if self._remaining == 0:
                return 0
            size = min(size, self._remaining)
        with self._guard():
            data = raw.read(size)
        n = len(data)
        view[:n] = data
        if self._remaining is not None:
            self._remaining -= n
        return n

    def close(self) -> None:
        if self._raw is not None:
            self._raw.close()
            self._raw = None
        super().close()


class ObjectWriter(io.RawIOBase):
    """Write channel to a single object with explicit completion.

    write() only buffers or streams bytes to the provider. The object is
    committed when finish() returns; close() and a clean exit from a ``with``
    block call finish(). An exception inside the ``with`` block, or abort(),
    discards the write. A writer that is garbage collected without being
    finished is discarded, never committed.
    """

    def __init__(self) -> None:
        super().__init__()
        self._finished = False
        self._aborted = False
        self._result: FileMetadata | None = None

    @abstractmethod
    def _write(self, data: bytes) -> int: ...

    @abstractmethod
    def _commit(self) -> FileMetadata | None: ...

    @abstractmethod
    def _discard(self) -> None: ...

    @property
    def finished(self) -> bool:
        """True once the store has confirmed the write."""
        return self._finished

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def metadata(self) -> FileMetadata | None:
        """Metadata of the committed object, once finished."""
        return self._result

    def writable(self) -> bool:
        return True

    def write(self, data: Any) -> int:
        if self.closed:
            raise ValueError("write to closed writer")
        return self._write(bytes(data))

    def finish(self) -> FileMetadata | None:
        """Commit the object and wait for the store to confirm it.

        Returns:
            Metadata of the committed object, when the backend reports it.

        Raises:
            ValueError: If the writer was aborted.
            ObjectStorageError: If the store rejects the write.
        """
        if self._finished:
            return self._result
        if self._aborted:
            raise ValueError("write was aborted")
        try:
            self._result = self._commit()
        except BaseException:
            self._aborted = True
            super().close()
            raise
        self._finished = True
        super().close()
        return self._result

    def abort(self) -> None:
        """Discard everything written so far. No-op once finished."""
        if self._finished or self._aborted:
            return
        self._aborted = True
        try:
            self._discard()
        finally:
            super().close()

    def close(self) -> None:
        if self._aborted or self._finished:
            super().close()
            return
        self.finish()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def __del__(self) -> None:
        if not self._finished and not self._aborted:
            self._aborted = True
            with contextlib.suppress(Exception):
                self._discard()


class SpooledObjectWriter(ObjectWriter):
    """Writer that buffers the whole object and commits it in one call.

    Content is spooled in memory up to ``max_memory`` bytes, then on disk.
    On finish() the buffer (rewound) and its size are handed to ``commit``.
    """

    def __init__(
        self,
        commit: Callable[[IO[bytes], int], FileMetadata | None],
        *,
        max_memory: int = DEFAULT_SPOOL_MAX_MEMORY,
    ) -> None:
        super().__init__()
        self._commit_fn = commit
        self._buffer: IO[bytes] = tempfile.SpooledTemporaryFile(max_size=max_memory)  # noqa: SIM115
        self._size = 0

    @property
    def size(self) -> int:
        """Number of bytes buffered so far."""
        return self._size

    def _write(self, data: bytes) -> int:
        n = self._buffer.write(data)
        self._size += n
        return n

    def _commit(self) -> FileMetadata | None:
        self._buffer.seek(0)
        try:
            return self._commit_fn(self._buffer, self._size)
        finally:
            self._buffer.close()

    def _discard(self) -> None:
        self._buffer.close()


def pipe_to_writer(
    source: IO[bytes],
    writer: ObjectWriter,
    *,
    chunk_size: int = DEFAULT_COPY_CHUNK_SIZE,
) -> FileMetadata | None:
    """Copy a readable binary stream into a writer and commit it.

    Returns only after the destination has confirmed the write. If reading
    the source fails, the writer is aborted (nothing is committed) and the
    source error propagates.
    """
    try:
        shutil.copyfileobj(source, writer, chunk_size)
    except BaseException:
        logger.debug("Source stream failed; aborting destination write")
        writer.abort()
        raise
    return writer.finish()
