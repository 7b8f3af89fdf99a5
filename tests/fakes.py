"""Test fakes for transports and export signals.

These typed doubles stand in for network exporters so builder and lifecycle
behaviour can be verified without a collector:

- ``InMemoryTransport`` builds real SDK-compatible exporters that keep
  everything in memory and counts how often each factory ran.
- ``RejectingTransport`` builds SDK exporters whose collector rejects every
  batch, or raises a given error.
- ``FakeSignal`` implements the export-signal contract with controllable
  flush outcomes (success, incomplete, error, blocking).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from opentelemetry.sdk._logs.export import LogExporter, LogExportResult
from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otlp_setup.api.types import Temporality
from otlp_setup.sdk.transports import Endpoint, Transport, preferred_temporality


class InMemoryLogExporter:
    """Log exporter keeping exported records in memory.

    The SDK log processors only call ``export``, ``force_flush`` and
    ``shutdown`` and do not inspect the export result.
    """

    def __init__(self) -> None:
        self.records: list[Any] = []
        self.is_shutdown = False

    def export(self, batch: Any) -> None:
        self.records.extend(batch)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True

    def shutdown(self) -> None:
        self.is_shutdown = True


class InMemoryMetricExporter(MetricExporter):
    """Metric exporter keeping exported batches in memory."""

    def __init__(self, temporality: Temporality = Temporality.CUMULATIVE) -> None:
        super().__init__(preferred_temporality=preferred_temporality(temporality))
        self.batches: list[Any] = []
        self.is_shutdown = False

    def export(self, metrics_data: Any, timeout_millis: float = 10_000, **kwargs: Any) -> MetricExportResult:
        self.batches.append(metrics_data)
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs: Any) -> None:
        self.is_shutdown = True


@dataclass
class InMemoryTransport(Transport):
    """Transport constructing in-memory exporters.

    Records every endpoint it was asked to build for, so tests can assert
    on header merging and on whether construction happened at all.
    """

    span_exporter: InMemorySpanExporter = field(default_factory=InMemorySpanExporter)
    log_exporter: InMemoryLogExporter = field(default_factory=InMemoryLogExporter)
    metric_exporter: InMemoryMetricExporter | None = None
    endpoints: list[Endpoint] = field(default_factory=list)
    constructed: list[str] = field(default_factory=list)

    def create_span_exporter(self, endpoint: Endpoint) -> InMemorySpanExporter:
        self.endpoints.append(endpoint)
        self.constructed.append("trace")
        return self.span_exporter

    def create_log_exporter(self, endpoint: Endpoint) -> InMemoryLogExporter:
        self.endpoints.append(endpoint)
        self.constructed.append("logs")
        return self.log_exporter

    def create_metric_exporter(
        self, endpoint: Endpoint, temporality: Temporality
    ) -> InMemoryMetricExporter:
        self.endpoints.append(endpoint)
        self.constructed.append("metrics")
        self.metric_exporter = InMemoryMetricExporter(temporality)
        return self.metric_exporter


class UnavailableTransport(Transport):
    """Transport whose exporter package is never installed."""

    requires = "otlp_setup_missing_exporter_package"


class FailingTransport(InMemoryTransport):
    """Transport whose exporter construction fails for one signal."""

    def __init__(self, failing_signal: str = "trace") -> None:
        super().__init__()
        self.failing_signal = failing_signal

    def create_span_exporter(self, endpoint: Endpoint) -> InMemorySpanExporter:
        if self.failing_signal == "trace":
            raise OSError("connection setup failed")
        return super().create_span_exporter(endpoint)

    def create_metric_exporter(
        self, endpoint: Endpoint, temporality: Temporality
    ) -> InMemoryMetricExporter:
        if self.failing_signal == "metrics":
            raise OSError("connection setup failed")
        return super().create_metric_exporter(endpoint, temporality)


class RejectingSpanExporter(SpanExporter):
    """Span exporter reporting every batch as failed, or raising ``error``."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0

    def export(self, spans: Any) -> SpanExportResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return SpanExportResult.FAILURE

    def shutdown(self) -> None:
        pass


class RejectingLogExporter(LogExporter):
    """Log exporter reporting every batch as failed, or raising ``error``."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0

    def export(self, batch: Any) -> LogExportResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return LogExportResult.FAILURE

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True

    def shutdown(self) -> None:
        pass


class RejectingMetricExporter(InMemoryMetricExporter):
    """Metric exporter reporting every collection as failed."""

    def export(self, metrics_data: Any, timeout_millis: float = 10_000, **kwargs: Any) -> MetricExportResult:
        self.batches.append(metrics_data)
        return MetricExportResult.FAILURE


class RejectingTransport(Transport):
    """Transport whose collector rejects everything it receives."""

    def __init__(self, error: Exception | None = None) -> None:
        self.span_exporter = RejectingSpanExporter(error)
        self.log_exporter = RejectingLogExporter(error)
        self.metric_exporter: RejectingMetricExporter | None = None

    def create_span_exporter(self, endpoint: Endpoint) -> RejectingSpanExporter:
        return self.span_exporter

    def create_log_exporter(self, endpoint: Endpoint) -> RejectingLogExporter:
        return self.log_exporter

    def create_metric_exporter(
        self, endpoint: Endpoint, temporality: Temporality
    ) -> RejectingMetricExporter:
        self.metric_exporter = RejectingMetricExporter(temporality)
        return self.metric_exporter


class FakeSignal:
    """Export signal with a scripted flush outcome.

    Args:
        name: Signal name reported to the pipeline.
        flush_result: Value returned by ``flush``.
        flush_error: Exception raised by ``flush``.
        block: Event ``flush`` waits on before returning.
        shutdown_error: Exception raised by ``shutdown``.
    """

    provider = None

    def __init__(
        self,
        name: str = "trace",
        flush_result: bool = True,
        flush_error: Exception | None = None,
        block: threading.Event | None = None,
        shutdown_error: Exception | None = None,
    ) -> None:
        self.name = name
        self._flush_result = flush_result
        self._flush_error = flush_error
        self._block = block
        self._shutdown_error = shutdown_error
        self.flush_calls: list[int] = []
        self.shutdown_calls = 0
        self.shut_down = threading.Event()

    def flush(self, timeout_millis: int) -> bool:
        self.flush_calls.append(timeout_millis)
        if self._block is not None:
            self._block.wait(timeout=10)
        if self._flush_error is not None:
            raise self._flush_error
        return self._flush_result

    def shutdown(self) -> None:
        self.shutdown_calls += 1
        self.shut_down.set()
        if self._shutdown_error is not None:
            raise self._shutdown_error
