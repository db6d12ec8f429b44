"""Pytest configuration and fixtures for bucketfs tests."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from bucketfs.filesystem_client import FilesystemStorageClient
from bucketfs.online_filesystem import OnlineFilesystem

TEST_BUCKET = "test-bucket"
TEST_SIGNING_SECRET = "test-signing-secret"


@pytest.fixture(autouse=True)
def isolate_bucketfs_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove BUCKETFS_* variables so tests never see the developer's config."""
    for name in list(os.environ):
        if name.startswith("BUCKETFS_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_storage_dir(tmp_path: Path) -> Iterator[Path]:
    """Return a fresh directory for filesystem storage."""
    storage_dir = tmp_path / "bucketfs_storage"
    storage_dir.mkdir()
    yield storage_dir


@pytest.fixture
def fs_client(temp_storage_dir: Path) -> FilesystemStorageClient:
    """Create a FilesystemStorageClient in a temp directory."""
    return FilesystemStorageClient(
        TEST_BUCKET,
        temp_storage_dir,
        signing_secret=TEST_SIGNING_SECRET,
    )


@pytest.fixture
def online_fs(fs_client: FilesystemStorageClient) -> OnlineFilesystem:
    """Create an OnlineFilesystem over the filesystem backend."""
    return OnlineFilesystem(fs_client)
