"""Tests for ObjectReader, ObjectWriter and pipe_to_writer."""

from __future__ import annotations

import gc
import io
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, Any

import pytest

from bucketfs.errors import ObjectNotFoundError
from bucketfs.models import FileMetadata
from bucketfs.streams import ObjectReader, SpooledObjectWriter, pipe_to_writer


class RecordingCommit:
    """Commit callable that records what a SpooledObjectWriter hands over."""

    def __init__(self) -> None:
        self.calls: list[tuple[bytes, int]] = []

    def __call__(self, buffer: IO[bytes], size: int) -> FileMetadata:
        self.calls.append((buffer.read(), size))
        return FileMetadata(name="obj", size=size)


class BrokenSource(io.RawIOBase):
    """Readable stream that yields some bytes and then fails."""

    def __init__(self) -> None:
        super().__init__()
        self._sent = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        if not self._sent:
            self._sent = True
            buffer[:4] = b"part"
            return 4
        raise OSError("connection reset")


@contextmanager
def _not_found_guard() -> Iterator[None]:
    try:
        yield
    except KeyError as e:
        raise ObjectNotFoundError(key="k", bucket="b") from e


class TestObjectReader:
    """Tests for lazy ranged reads."""

    def test_opener_not_called_until_read(self) -> None:
        calls: list[int] = []

        def opener() -> IO[bytes]:
            calls.append(1)
            return io.BytesIO(b"data")

        reader = ObjectReader(opener)
        assert calls == []

        assert reader.read() == b"data"
        assert calls == [1]

    def test_inclusive_range(self) -> None:
        reader = ObjectReader(lambda: io.BytesIO(b"0123456789"), start=3, end=6)

        assert reader.read() == b"3456"

    def test_start_only(self) -> None:
        reader = ObjectReader(lambda: io.BytesIO(b"0123456789"), start=7)

        assert reader.read() == b"789"

    def test_end_only(self) -> None:
        reader = ObjectReader(lambda: io.BytesIO(b"0123456789"), end=1)

        assert reader.read() == b"01"

    def test_small_reads_respect_range(self) -> None:
        reader = ObjectReader(lambda: io.BytesIO(b"0123456789"), start=2, end=5)

        assert reader.read(3) == b"234"
        assert reader.read(3) == b"5"
        assert reader.read(3) == b""

    def test_guard_translates_open_errors(self) -> None:
        def opener() -> IO[bytes]:
            raise KeyError("missing")

        reader = ObjectReader(opener, guard=_not_found_guard)

        with pytest.raises(ObjectNotFoundError):
            reader.read()

    def test_close_closes_underlying(self) -> None:
        raw = io.BytesIO(b"data")
        reader = ObjectReader(lambda: raw)
        reader.read(1)

        reader.close()

        assert raw.closed
        with pytest.raises(ValueError):
            reader.read()

    def test_usable_with_buffered_reader(self) -> None:
        reader = io.BufferedReader(ObjectReader(lambda: io.BytesIO(b"line1\nline2\n")))

        assert reader.readline() == b"line1\n"


class TestSpooledObjectWriter:
    """Tests for the write / finish / abort lifecycle."""

    def test_finish_commits_once(self) -> None:
        commit = RecordingCommit()
        writer = SpooledObjectWriter(commit)
        writer.write(b"hello ")
        writer.write(b"world")

        result = writer.finish()
        again = writer.finish()

        assert commit.calls == [(b"hello world", 11)]
        assert result is again
        assert result is not None and result.size == "11"
        assert writer.finished is True
        assert writer.metadata is result

    def test_nothing_committed_before_finish(self) -> None:
        commit = RecordingCommit()
        writer = SpooledObjectWriter(commit)
        writer.write(b"x" * 100)
        writer.flush()

        assert commit.calls == []
        assert writer.size == 100
        assert writer.finished is False

    def test_spills_to_disk_past_memory_limit(self) -> None:
        commit = RecordingCommit()
        writer = SpooledObjectWriter(commit, max_memory=16)
        writer.write(b"a" * 64)

        writer.finish()

        assert commit.calls == [(b"a" * 64, 64)]

    def test_close_commits(self) -> None:
        commit = RecordingCommit()
        writer = SpooledObjectWriter(commit)
        writer.write(b"abc")

        writer.close()

        assert commit.calls == [(b"abc", 3)]

    def test_context_manager_commits_on_clean_exit(self) -> None:
        commit = RecordingCommit()

        with SpooledObjectWriter(commit) as writer:
            writer.write(b"abc")

        assert commit.calls == [(b"abc", 3)]

    def test_context_manager_aborts_on_exception(self) -> None:
        commit = RecordingCommit()

        with pytest.raises(RuntimeError), SpooledObjectWriter(commit) as writer:
            writer.write(b"abc")
            raise RuntimeError("boom")

        assert commit.calls == []
        assert writer.aborted is True

    def test_abort_then_finish_raises(self) -> None:
        commit = RecordingCommit()
        writer = SpooledObjectWriter(commit)
        writer.write(b"abc")

        writer.abort()

        with pytest.raises(ValueError):
            writer.finish()
        assert commit.calls == []

    def test_abort_after_finish_is_noop(self) -> None:
        writer = SpooledObjectWriter(RecordingCommit())
        writer.finish()

        writer.abort()

        assert writer.finished is True
        assert writer.aborted is False

    def test_write_after_finish_raises(self) -> None:
        writer = SpooledObjectWriter(RecordingCommit())
        writer.finish()

        with pytest.raises(ValueError):
            writer.write(b"late")

    def test_failed_commit_marks_aborted(self) -> None:
        def commit(buffer: IO[bytes], size: int) -> FileMetadata:
            raise ObjectNotFoundError(key="k", bucket="b")

        writer = SpooledObjectWriter(commit)

        with pytest.raises(ObjectNotFoundError):
            writer.finish()
        assert writer.aborted is True
        assert writer.finished is False

    def test_garbage_collected_writer_never_commits(self) -> None:
        commit = RecordingCommit()
        writer = SpooledObjectWriter(commit)
        writer.write(b"abandoned")

        del writer
        gc.collect()

        assert commit.calls == []


class TestPipeToWriter:
    """Tests for copying a source stream into a writer."""

    def test_copies_and_commits(self) -> None:
        commit = RecordingCommit()
        payload = bytes(range(256)) * 64

        result = pipe_to_writer(io.BytesIO(payload), SpooledObjectWriter(commit), chunk_size=1000)

        assert commit.calls == [(payload, len(payload))]
        assert result is not None

    def test_empty_source_commits_empty_object(self) -> None:
        commit = RecordingCommit()

        pipe_to_writer(io.BytesIO(b""), SpooledObjectWriter(commit))

        assert commit.calls == [(b"", 0)]

    def test_source_failure_aborts_and_propagates(self) -> None:
        commit = RecordingCommit()
        writer = SpooledObjectWriter(commit)

        with pytest.raises(OSError, match="connection reset"):
            pipe_to_writer(BrokenSource(), writer)

        assert commit.calls == []
        assert writer.aborted is True
