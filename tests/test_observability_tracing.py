"""Tests for bucketfs OpenTelemetry tracing.

- Tracing OFF by default, ON via BUCKETFS_OTEL_ENABLED=1
- Fail-closed only when BUCKETFS_REQUIRE_OTEL=1 and setup fails
- Filesystem operation spans carry path hashes, never raw paths
- Tests use in-memory exporter (no external collector required)
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from io import BytesIO
from typing import Any
from unittest.mock import patch

import pytest

from bucketfs.errors import ObjectNotFoundError
from bucketfs.observability import tracing
from bucketfs.observability.tracing import (
    TracingConfigError,
    TracingSettings,
    clear_test_spans,
    configure_tracing,
    get_test_spans,
    load_tracing_settings,
    parse_resource_attributes,
)
from bucketfs.online_filesystem import OnlineFilesystem
from bucketfs.tracing import path_sha256


@pytest.fixture(autouse=True)
def clear_captured_spans() -> Iterator[None]:
    clear_test_spans()
    yield
    clear_test_spans()


@pytest.fixture
def capture_spans(monkeypatch: pytest.MonkeyPatch) -> None:
    """Enable tracing with the in-memory exporter."""
    monkeypatch.setenv("BUCKETFS_OTEL_ENABLED", "1")
    monkeypatch.setenv("BUCKETFS_OTEL_TEST_CAPTURE", "1")

    configure_tracing()
    clear_test_spans()


@pytest.fixture
def no_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pretend no provider has been installed in this process yet."""
    monkeypatch.setattr(tracing, "_provider", None)


def _spans_named(name: str) -> list[Any]:
    return [s for s in get_test_spans() if s.name == name]


class TestTracingConfiguration:
    """Tests for tracing configuration behavior."""

    def test_tracing_disabled_by_default(self) -> None:
        """Tracing should be OFF when BUCKETFS_OTEL_ENABLED is not set."""
        assert configure_tracing() is False
        assert get_test_spans() == []

    def test_explicit_settings_override_environment(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("BUCKETFS_OTEL_ENABLED", "1")

        assert configure_tracing(TracingSettings(enabled=False)) is False

    def test_tracing_enabled_with_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BUCKETFS_OTEL_ENABLED", "1")
        monkeypatch.setenv("BUCKETFS_OTEL_TEST_CAPTURE", "1")

        assert configure_tracing() is True

    def test_tracing_idempotent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BUCKETFS_OTEL_ENABLED", "1")
        monkeypatch.setenv("BUCKETFS_OTEL_TEST_CAPTURE", "1")

        first = configure_tracing()
        provider = tracing._provider

        assert configure_tracing() is first is True
        assert tracing._provider is provider

    def test_require_otel_fails_closed(
        self, monkeypatch: pytest.MonkeyPatch, no_provider: None
    ) -> None:
        """BUCKETFS_REQUIRE_OTEL=1 should raise if tracing setup fails."""
        monkeypatch.setenv("BUCKETFS_OTEL_ENABLED", "1")
        monkeypatch.setenv("BUCKETFS_REQUIRE_OTEL", "1")

        with (
            patch(
                "opentelemetry.sdk.trace.TracerProvider",
                side_effect=Exception("Simulated init failure"),
            ),
            pytest.raises(TracingConfigError) as exc_info,
        ):
            configure_tracing()

        assert "setup failed" in str(exc_info.value).lower()

    def test_setup_failure_tolerated_without_require(
        self, monkeypatch: pytest.MonkeyPatch, no_provider: None
    ) -> None:
        monkeypatch.setenv("BUCKETFS_OTEL_ENABLED", "1")

        with patch(
            "opentelemetry.sdk.trace.TracerProvider",
            side_effect=Exception("Simulated init failure"),
        ):
            assert configure_tracing() is False

        assert tracing._provider is None

    def test_unknown_exporter_rejected_when_required(self, no_provider: None) -> None:
        settings = TracingSettings(enabled=True, required=True, exporter="zipkin")

        with pytest.raises(TracingConfigError, match="zipkin"):
            configure_tracing(settings)

        assert tracing._provider is None

    def test_settings_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BUCKETFS_OTEL_ENABLED", "yes")
        monkeypatch.setenv("BUCKETFS_OTEL_SERVICE_NAME", "media-api")
        monkeypatch.setenv("BUCKETFS_OTEL_EXPORTER", "Console")
        monkeypatch.setenv("BUCKETFS_OTEL_EXPORTER_OTLP_PROTOCOL", "http")
        monkeypatch.setenv("BUCKETFS_OTEL_RESOURCE_ATTRS", "env=prod")

        settings = load_tracing_settings()

        assert settings.enabled is True
        assert settings.required is False
        assert settings.service_name == "media-api"
        assert settings.exporter == "console"
        assert settings.otlp_protocol == "http"
        assert settings.otlp_endpoint is None
        assert settings.resource_attributes == {"env": "prod"}
        assert settings.test_capture is False

    def test_settings_defaults(self) -> None:
        assert load_tracing_settings() == TracingSettings()

    def test_resource_attrs_parsing(self) -> None:
        assert parse_resource_attributes("env=prod, region = eu ,junk,=x") == {
            "env": "prod",
            "region": "eu",
        }
        assert parse_resource_attributes("") == {}


class TestFilesystemOperationSpans:
    """Tests for spans emitted by OnlineFilesystem operations."""

    def test_read_file_span_has_safe_attributes(
        self, capture_spans: None, online_fs: OnlineFilesystem
    ) -> None:
        """Raw paths must not appear in spans, only their SHA256 hash."""
        path = "users/u-123/private.txt"
        online_fs.write_stream_to_file(path, BytesIO(b"hello"))

        online_fs.read_file(path)

        spans = _spans_named("bucketfs.fs.read_file")
        assert len(spans) == 1
        attrs = dict(spans[0].attributes or {})

        assert attrs.get("bucketfs.path_sha256") == path_sha256(path)
        assert attrs.get("storage.backend") == "filesystem"
        assert attrs.get("bucketfs.bucket") == "test-bucket"
        assert attrs.get("bucketfs.object_size_bytes") == 5

        for attr_key, attr_value in attrs.items():
            attr_str = str(attr_value)
            assert "u-123" not in attr_str, f"Attribute {attr_key} leaks the raw path"
            if os.name != "nt":
                assert "/tmp/" not in attr_str, f"Attribute {attr_key} contains temp path"

    def test_failed_operation_marks_span(
        self, capture_spans: None, online_fs: OnlineFilesystem
    ) -> None:
        with pytest.raises(ObjectNotFoundError):
            online_fs.unlink("missing.txt")

        spans = _spans_named("bucketfs.fs.unlink")
        assert len(spans) == 1
        attrs = dict(spans[0].attributes or {})
        assert attrs.get("error") is True
        assert attrs.get("error.type") == "ObjectNotFoundError"

    def test_exists_span_records_result(
        self, capture_spans: None, online_fs: OnlineFilesystem
    ) -> None:
        online_fs.exists("nothing-here.txt")

        spans = _spans_named("bucketfs.fs.exists")
        assert len(spans) == 1
        assert dict(spans[0].attributes or {}).get("bucketfs.exists") is False

    def test_read_dir_span_records_entry_count(
        self, capture_spans: None, online_fs: OnlineFilesystem
    ) -> None:
        online_fs.write_stream_to_file("d/a.txt", BytesIO(b"a"))
        online_fs.write_stream_to_file("d/b.txt", BytesIO(b"b"))

        online_fs.read_dir("d")

        spans = _spans_named("bucketfs.fs.read_dir")
        assert len(spans) == 1
        assert dict(spans[0].attributes or {}).get("bucketfs.entry_count") == 2

    def test_signed_url_not_exported(
        self, capture_spans: None, online_fs: OnlineFilesystem
    ) -> None:
        url = online_fs.get_download_url("v.mp4", datetime.now(UTC) + timedelta(days=2))

        spans = _spans_named("bucketfs.fs.get_download_url")
        assert len(spans) == 1
        for attr_value in (spans[0].attributes or {}).values():
            assert str(attr_value) != url
            assert "Signature" not in str(attr_value)

    def test_no_spans_when_disabled(self, online_fs: OnlineFilesystem) -> None:
        online_fs.exists("a.txt")

        assert get_test_spans() == []
