"""bucketfs observability module.

Provides OpenTelemetry span export setup.
"""

from bucketfs.observability.tracing import (
    TracingConfigError,
    TracingSettings,
    configure_tracing,
    load_tracing_settings,
)

__all__ = ["TracingConfigError", "TracingSettings", "configure_tracing", "load_tracing_settings"]
