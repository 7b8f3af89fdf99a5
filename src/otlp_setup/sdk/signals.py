"""Export signals owned by a pipeline.

Each signal wraps one SDK provider and exposes the narrow contract the
pipeline lifecycle needs: flush with a timeout, then shut down.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from opentelemetry.sdk._logs import LoggerProvider
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.trace import TracerProvider

    from otlp_setup.sdk.recording import ExportFailures

TRACE = "trace"
LOGS = "logs"
METRICS = "metrics"


class ExportSignal(Protocol):
    """Contract between the pipeline and an exporter-backed provider."""

    @property
    def name(self) -> str:
        """Signal identifier ('trace', 'logs' or 'metrics')."""
        ...

    @property
    def provider(self) -> Any:
        """SDK provider handed to the export layer on install."""
        ...

    def flush(self, timeout_millis: int) -> bool:
        """Flush buffered telemetry.

        Returns False if the flush did not complete within the timeout.
        Raises if the exporter reported an error.
        """
        ...

    def shutdown(self) -> None:
        """Stop accepting records and release exporter resources."""
        ...


class _ProviderSignal:
    name: str

    def __init__(self, provider: Any, failures: ExportFailures | None = None) -> None:
        self.provider = provider
        self.failures = failures

    def flush(self, timeout_millis: int) -> bool:
        # Only failures of exports running during this flush are reported
        if self.failures is not None:
            self.failures.clear()
        completed = self.provider.force_flush(timeout_millis=timeout_millis)
        if completed and self.failures is not None:
            self.failures.raise_first()
        return completed

    def shutdown(self) -> None:
        self.provider.shutdown()


class TraceSignal(_ProviderSignal):
    name = TRACE

    provider: TracerProvider


class LogsSignal(_ProviderSignal):
    name = LOGS

    provider: LoggerProvider


class MetricsSignal(_ProviderSignal):
    """Metrics signal backed by a periodic exporting reader.

    ``MeterProvider.force_flush`` raises when a reader fails to collect;
    failed exports are reported through the recorded failures.
    """

    name = METRICS

    provider: MeterProvider
