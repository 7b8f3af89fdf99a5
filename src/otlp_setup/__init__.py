"""OpenTelemetry export pipeline setup.

Turns a destination, resource attributes and per-signal settings into a
running export pipeline, installs it into a caller-owned registry, and shuts
it down with a bounded flush:

    import otlp_setup

    attrs = otlp_setup.Attributes.builder().with_attr("service.name", "svc").finish()
    destination = otlp_setup.Destination(otlp_setup.Protocol.HTTP_BINARY, "http://localhost:4318/v1")
    pipeline = (
        otlp_setup.Pipeline.builder(destination)
        .with_trace(attrs, otlp_setup.TraceSettings(sample_rate=1.0))
        .finish()
    )
    registry = pipeline.install("svc", otlp_setup.SubscriberRegistry())
    ...
    pipeline.shutdown(5.0)

The ``propagation``, ``excepthook`` and ``config`` submodules are loaded on
first access.
"""

from __future__ import annotations

from otlp_setup.api.types import (
    Destination,
    MetricsSettings,
    Protocol,
    Temporality,
    TraceSettings,
)
from otlp_setup.attributes import Attributes, AttributesBuilder
from otlp_setup.exceptions import (
    AlreadyInstalled,
    AlreadyShutDown,
    BuildError,
    ConfigurationError,
    ExporterInitFailed,
    ExportFailed,
    ExportRejected,
    InvalidDestination,
    InvalidSampleRate,
    LifecycleError,
    NothingToExport,
    OtlpSetupError,
    ShutdownError,
    ShutdownTimeout,
    SignalAlreadyConfigured,
    UnsupportedProtocol,
)
from otlp_setup.registry import ExportLayer, SubscriberRegistry
from otlp_setup.sdk.builder import PipelineBuilder
from otlp_setup.sdk.pipeline import Pipeline, PipelineState

__version__ = "0.1.0"

_LAZY_MODULES = {"config", "excepthook", "propagation"}

__all__ = [
    "AlreadyInstalled",
    "AlreadyShutDown",
    "Attributes",
    "AttributesBuilder",
    "BuildError",
    "ConfigurationError",
    "Destination",
    "ExportFailed",
    "ExportLayer",
    "ExportRejected",
    "ExporterInitFailed",
    "InvalidDestination",
    "InvalidSampleRate",
    "LifecycleError",
    "MetricsSettings",
    "NothingToExport",
    "OtlpSetupError",
    "Pipeline",
    "PipelineBuilder",
    "PipelineState",
    "Protocol",
    "ShutdownError",
    "ShutdownTimeout",
    "SignalAlreadyConfigured",
    "SubscriberRegistry",
    "Temporality",
    "TraceSettings",
    "UnsupportedProtocol",
    "__version__",
    "config",
    "excepthook",
    "propagation",
]


def __getattr__(name: str):
    if name in _LAZY_MODULES:
        import importlib

        return importlib.import_module(f"otlp_setup.{name}")
    raise AttributeError(f"module 'otlp_setup' has no attribute '{name}'")


def __dir__() -> list[str]:
    return sorted(__all__)
