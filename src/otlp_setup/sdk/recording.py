"""Exporter wrappers that remember failed exports.

The SDK batch processors and the periodic metric reader log and discard both
the ``FAILURE`` result of an export and any exception it raises, so a rejected
final batch would otherwise look like a clean flush. Each wrapper forwards to
the transport's exporter and records such failures in an ``ExportFailures``
the owning signal checks after flushing.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Any

from opentelemetry.sdk._logs.export import LogExporter, LogExportResult
from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from otlp_setup.exceptions import ExportRejected


class ExportFailures:
    """Thread-safe record of the first export failure since the last clear."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._error: BaseException | None = None

    def record(self, error: BaseException) -> None:
        with self._lock:
            if self._error is None:
                self._error = error

    def clear(self) -> None:
        with self._lock:
            self._error = None

    @property
    def error(self) -> BaseException | None:
        with self._lock:
            return self._error

    def raise_first(self) -> None:
        """Raise the recorded failure, if any."""
        error = self.error
        if error is not None:
            raise error


class RecordingSpanExporter(SpanExporter):
    def __init__(self, exporter: SpanExporter) -> None:
        self.exporter = exporter
        self.failures = ExportFailures()

    def export(self, spans: Sequence[Any]) -> SpanExportResult:
        try:
            result = self.exporter.export(spans)
        except Exception as exc:
            self.failures.record(exc)
            raise
        if result is SpanExportResult.FAILURE:
            self.failures.record(ExportRejected(f"Span exporter rejected {len(spans)} spans"))
        return result

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self.exporter.force_flush(timeout_millis)

    def shutdown(self) -> None:
        self.exporter.shutdown()


class RecordingLogExporter(LogExporter):
    def __init__(self, exporter: Any) -> None:
        self.exporter = exporter
        self.failures = ExportFailures()

    def export(self, batch: Sequence[Any]) -> Any:
        try:
            result = self.exporter.export(batch)
        except Exception as exc:
            self.failures.record(exc)
            raise
        if result is LogExportResult.FAILURE:
            self.failures.record(ExportRejected(f"Log exporter rejected {len(batch)} records"))
        return result

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        force_flush = getattr(self.exporter, "force_flush", None)
        return force_flush(timeout_millis) if force_flush is not None else True

    def shutdown(self) -> None:
        self.exporter.shutdown()


class RecordingMetricExporter(MetricExporter):
    """Metric exporter wrapper keeping the wrapped exporter's preferences."""

    def __init__(self, exporter: MetricExporter) -> None:
        super().__init__(
            preferred_temporality=exporter._preferred_temporality,
            preferred_aggregation=exporter._preferred_aggregation,
        )
        self.exporter = exporter
        self.failures = ExportFailures()

    def export(
        self, metrics_data: Any, timeout_millis: float = 10_000, **kwargs: Any
    ) -> MetricExportResult:
        try:
            result = self.exporter.export(metrics_data, timeout_millis=timeout_millis, **kwargs)
        except Exception as exc:
            self.failures.record(exc)
            raise
        if result is MetricExportResult.FAILURE:
            self.failures.record(ExportRejected("Metric exporter rejected a collection"))
        return result

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return self.exporter.force_flush(timeout_millis=timeout_millis)

    def shutdown(self, timeout_millis: float = 30_000, **kwargs: Any) -> None:
        self.exporter.shutdown(timeout_millis=timeout_millis, **kwargs)
