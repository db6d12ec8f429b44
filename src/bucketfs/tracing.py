"""OpenTelemetry tracing for online filesystem operations.

Security:
    - Never export raw paths; they may embed user identifiers. Paths are
      exported as SHA256 hashes for correlation.
    - Never export signed URLs or download tokens.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

BUCKETFS_OTEL_ENABLED_ENV = "BUCKETFS_OTEL_ENABLED"


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool(BUCKETFS_OTEL_ENABLED_ENV, False)


def path_sha256(path: str) -> str:
    """Return the hex SHA256 of a path, as exported in span attributes."""
    return hashlib.sha256(path.encode("utf-8")).hexdigest()


def traced_fs_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace OnlineFilesystem operations with OpenTelemetry.

    The decorated method must take the path as its first positional
    argument and the instance must expose a ``client`` with ``backend_name``
    and ``bucket_name``.

    Args:
        operation: Operation name (e.g., "read_file", "read_dir").

    Returns:
        Decorated function that emits a ``bucketfs.fs.<operation>`` span
        when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, path: str, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, path, *args, **kwargs)

            try:
                from opentelemetry import trace
            except ImportError:
                return func(self, path, *args, **kwargs)

            tracer = trace.get_tracer("bucketfs.fs")
            with tracer.start_as_current_span(f"bucketfs.fs.{operation}") as span:
                span.set_attribute("bucketfs.path_sha256", path_sha256(path))
                client = getattr(self, "client", None)
                span.set_attribute("storage.backend", getattr(client, "backend_name", "unknown"))
                bucket = getattr(client, "bucket_name", None)
                if bucket:
                    span.set_attribute("bucketfs.bucket", bucket)

                try:
                    result = func(self, path, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                if result is not None:
                    _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add result-based attributes to span safely.

    Only sizes, counts, content types and booleans are exported.
    """
    try:
        from bucketfs.models import FileMetadata, Stat

        if isinstance(result, Stat):
            span.set_attribute("bucketfs.object_size_bytes", result.size)
        elif isinstance(result, FileMetadata):
            if result.size is not None and result.size.isdigit():
                span.set_attribute("bucketfs.object_size_bytes", int(result.size))
            if result.content_type:
                span.set_attribute("bucketfs.object_content_type", result.content_type)
        elif isinstance(result, bool):
            span.set_attribute("bucketfs.exists", result)
        elif isinstance(result, bytes) and operation == "read_file":
            span.set_attribute("bucketfs.object_size_bytes", len(result))
        elif isinstance(result, list) and operation == "read_dir":
            span.set_attribute("bucketfs.entry_count", len(result))
    except Exception as e:
        logger.debug("Failed to add result attributes to span: %s", e)
