"""Pipeline builder: accumulates configuration, validates it, builds exporters.

``finish()`` validates in a fixed order before anything is constructed:

1. the destination protocol has an available transport
2. the destination URL and headers are usable
3. the trace sample rate lies within [0.0, 1.0]
4. at least one signal is enabled

Only then are exporters constructed. A construction failure releases the
providers already built and is raised as ``ExporterInitFailed``.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from opentelemetry.sdk.resources import Resource

from otlp_setup.api.types import Destination, MetricsSettings, Protocol, TraceSettings
from otlp_setup.exceptions import (
    ExporterInitFailed,
    InvalidDestination,
    InvalidSampleRate,
    NothingToExport,
    SignalAlreadyConfigured,
    UnsupportedProtocol,
)
from otlp_setup.sdk.pipeline import Pipeline
from otlp_setup.sdk.recording import (
    RecordingLogExporter,
    RecordingMetricExporter,
    RecordingSpanExporter,
)
from otlp_setup.sdk.sampling import build_sampler, build_span_limits
from otlp_setup.sdk.signals import LOGS, METRICS, TRACE, LogsSignal, MetricsSignal, TraceSignal
from otlp_setup.sdk.transports import (
    Endpoint,
    TlsSettings,
    Transport,
    TransportRegistry,
    default_transports,
)

if TYPE_CHECKING:
    from otlp_setup.attributes import Attributes
    from otlp_setup.sdk.signals import ExportSignal

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
ALLOWED_SCHEMES = ("http", "https")


@dataclass
class _SignalRequest:
    attributes: Attributes | None
    settings: Any = None


def _resource(attributes: Attributes | None) -> Resource:
    if attributes is None:
        return Resource.create({})
    return attributes.to_resource()


def _is_valid_header_text(text: object) -> bool:
    return isinstance(text, str) and all(32 <= ord(ch) < 127 for ch in text)


class PipelineBuilder:
    """Accumulates pipeline configuration.

    Args:
        destination: Where telemetry is sent.
        transports: Transport capabilities to resolve the protocol against.
            Defaults to the HTTP and gRPC transports shipped with the package.

    Example:
        >>> attrs = Attributes.builder().with_attr("service.name", "svc").finish()
        >>> pipeline = (
        ...     PipelineBuilder(Destination(Protocol.HTTP_BINARY, "http://localhost:4318/v1"))
        ...     .with_header("authorization", "Bearer <token>")
        ...     .with_trace(attrs, TraceSettings(sample_rate=1.0))
        ...     .finish()
        ... )
    """

    def __init__(
        self,
        destination: Destination,
        transports: TransportRegistry | None = None,
    ) -> None:
        self._destination = destination
        self._transports = transports if transports is not None else default_transports()
        self._headers: dict[str, str] = {}
        self._timeout = DEFAULT_TIMEOUT
        self._compression = True
        self._batch = True
        self._tls: TlsSettings | None = None
        self._trace: _SignalRequest | None = None
        self._logs: _SignalRequest | None = None
        self._metrics: _SignalRequest | None = None

    def with_header(self, key: str, value: str) -> PipelineBuilder:
        """Add a transport header for every exporter; last write wins per key."""
        self._headers[key] = value
        return self

    def with_timeout(self, timeout: float) -> PipelineBuilder:
        """Set the exporter timeout in seconds. Defaults to 5 seconds."""
        self._timeout = float(timeout)
        return self

    def with_compression(self, compression: bool) -> PipelineBuilder:
        """Enable or disable gzip compression. Defaults to enabled."""
        self._compression = compression
        return self

    def with_batch(self, batch: bool) -> PipelineBuilder:
        """Use batch (default) or simple span and log processing."""
        self._batch = batch
        return self

    def with_certificate(
        self,
        certificate_file: str | None,
        client_key_file: str | None = None,
        client_certificate_file: str | None = None,
    ) -> PipelineBuilder:
        """Use TLS material for the exporters, loaded when they are constructed."""
        self._tls = TlsSettings(
            certificate_file=certificate_file,
            client_key_file=client_key_file,
            client_certificate_file=client_certificate_file,
        )
        return self

    def with_trace(
        self, attributes: Attributes | None, settings: TraceSettings
    ) -> PipelineBuilder:
        """Enable trace export annotated with a copy of ``attributes``."""
        if self._trace is not None:
            raise SignalAlreadyConfigured("Trace export is already configured")
        self._trace = _SignalRequest(attributes, settings)
        return self

    def with_logs(self, attributes: Attributes | None) -> PipelineBuilder:
        """Enable log export annotated with a copy of ``attributes``."""
        if self._logs is not None:
            raise SignalAlreadyConfigured("Log export is already configured")
        self._logs = _SignalRequest(attributes)
        return self

    def with_metrics(
        self,
        attributes: Attributes | None,
        settings: MetricsSettings | None = None,
    ) -> PipelineBuilder:
        """Enable metrics export annotated with a copy of ``attributes``."""
        if self._metrics is not None:
            raise SignalAlreadyConfigured("Metrics export is already configured")
        self._metrics = _SignalRequest(attributes, settings or MetricsSettings())
        return self

    def finish(self) -> Pipeline:
        """Validate the configuration and construct the pipeline.

        Returns:
            A ``Pipeline`` in state ``BUILT``.

        Raises:
            UnsupportedProtocol: No available transport for the protocol.
            InvalidDestination: The URL or a header is not usable.
            InvalidSampleRate: The trace sample rate is outside [0.0, 1.0].
            NothingToExport: No signal was enabled.
            ExporterInitFailed: An exporter or the provider around it could not
                be set up. Signals built before the failure are released.
        """
        protocol, transport = self._resolve_transport()
        endpoint = self._resolve_endpoint()
        if self._trace is not None:
            self._validate_sample_rate(self._trace.settings.sample_rate)
        if self._trace is None and self._logs is None and self._metrics is None:
            raise NothingToExport("Enable at least one of trace, logs or metrics")

        signals: dict[str, ExportSignal] = {}
        resource = Resource.create({})
        try:
            if self._trace is not None:
                resource = _resource(self._trace.attributes)
                signals[TRACE] = self._build_trace(transport, endpoint, resource)
            if self._logs is not None:
                logs_resource = _resource(self._logs.attributes)
                signals[LOGS] = self._build_logs(transport, endpoint, logs_resource)
                if self._trace is None:
                    resource = logs_resource
            if self._metrics is not None:
                metrics_resource = _resource(self._metrics.attributes)
                signals[METRICS] = self._build_metrics(transport, endpoint, metrics_resource)
                if self._trace is None and self._logs is None:
                    resource = metrics_resource
        except Exception:
            self._release(signals)
            raise

        logger.debug(
            "Pipeline built for %s (%s) with signals: %s",
            endpoint.url,
            protocol.value,
            ", ".join(signals),
        )
        return Pipeline(signals, resource=resource, flush_timeout=self._timeout)

    def _resolve_transport(self) -> tuple[Protocol, Transport]:
        protocol = self._destination.protocol
        if not isinstance(protocol, Protocol):
            try:
                protocol = Protocol(protocol)
            except ValueError:
                raise UnsupportedProtocol(protocol, "unknown protocol") from None
        transport, reason = self._transports.resolve(protocol)
        if transport is None:
            raise UnsupportedProtocol(protocol, reason)
        return protocol, transport

    def _resolve_endpoint(self) -> Endpoint:
        url = self._destination.url
        if not isinstance(url, str) or not url.strip():
            raise InvalidDestination("Destination URL is empty")
        try:
            parts = urlsplit(url)
            # Accessing port validates it
            parts.port
        except ValueError as exc:
            raise InvalidDestination(f"Invalid destination URL '{url}': {exc}") from exc
        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            raise InvalidDestination(
                f"Invalid destination URL '{url}': scheme must be one of "
                f"{', '.join(ALLOWED_SCHEMES)}"
            )
        if not parts.hostname:
            raise InvalidDestination(f"Invalid destination URL '{url}': missing host")

        headers = {**self._destination.headers, **self._headers}
        for key, value in headers.items():
            if not key or not _is_valid_header_text(key) or " " in key:
                raise InvalidDestination(f"Header '{key}' is not a valid ASCII name")
            if not _is_valid_header_text(value):
                raise InvalidDestination(f"Header '{key}' has invalid value")

        return Endpoint(
            url=url,
            headers=headers,
            timeout=self._timeout,
            compression=self._compression,
            tls=self._tls,
        )

    @staticmethod
    def _validate_sample_rate(sample_rate: object) -> None:
        if isinstance(sample_rate, bool) or not isinstance(sample_rate, numbers.Real):
            raise InvalidSampleRate(sample_rate)
        rate = float(sample_rate)
        if math.isnan(rate) or not 0.0 <= rate <= 1.0:
            raise InvalidSampleRate(sample_rate)

    def _build_trace(
        self, transport: Transport, endpoint: Endpoint, resource: Resource
    ) -> TraceSignal:
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
        from opentelemetry.sdk.trace.id_generator import RandomIdGenerator

        settings: TraceSettings = self._trace.settings  # type: ignore[union-attr]
        exporter = RecordingSpanExporter(
            self._construct(TRACE, transport.create_span_exporter, endpoint)
        )
        try:
            provider = TracerProvider(
                sampler=build_sampler(settings),
                resource=resource,
                shutdown_on_exit=False,
                id_generator=RandomIdGenerator(),
                span_limits=build_span_limits(settings),
            )
            processor = (
                BatchSpanProcessor(exporter) if self._batch else SimpleSpanProcessor(exporter)
            )
            provider.add_span_processor(processor)
        except Exception as exc:
            raise self._abandon(TRACE, exc, exporter) from exc
        return TraceSignal(provider, exporter.failures)

    def _build_logs(
        self, transport: Transport, endpoint: Endpoint, resource: Resource
    ) -> LogsSignal:
        from opentelemetry.sdk._logs import LoggerProvider
        from opentelemetry.sdk._logs.export import (
            BatchLogRecordProcessor,
            SimpleLogRecordProcessor,
        )

        exporter = RecordingLogExporter(
            self._construct(LOGS, transport.create_log_exporter, endpoint)
        )
        try:
            provider = LoggerProvider(resource=resource, shutdown_on_exit=False)
            processor = (
                BatchLogRecordProcessor(exporter)
                if self._batch
                else SimpleLogRecordProcessor(exporter)
            )
            provider.add_log_record_processor(processor)
        except Exception as exc:
            raise self._abandon(LOGS, exc, exporter) from exc
        return LogsSignal(provider, exporter.failures)

    def _build_metrics(
        self, transport: Transport, endpoint: Endpoint, resource: Resource
    ) -> MetricsSignal:
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

        settings: MetricsSettings = self._metrics.settings  # type: ignore[union-attr]
        constructed = self._construct(
            METRICS,
            lambda ep: transport.create_metric_exporter(ep, settings.temporality),
            endpoint,
        )
        reader_kwargs: dict[str, Any] = {}
        if settings.export_interval_millis is not None:
            reader_kwargs["export_interval_millis"] = settings.export_interval_millis
        reader = None
        try:
            exporter = RecordingMetricExporter(constructed)
            reader = PeriodicExportingMetricReader(exporter, **reader_kwargs)
            provider = MeterProvider(
                metric_readers=[reader], resource=resource, shutdown_on_exit=False
            )
        except Exception as exc:
            # The reader owns the exporter once it exists
            raise self._abandon(METRICS, exc, reader if reader is not None else constructed) from exc
        return MetricsSignal(provider, exporter.failures)

    @staticmethod
    def _construct(signal: str, factory: Any, endpoint: Endpoint) -> Any:
        try:
            return factory(endpoint)
        except Exception as exc:
            raise ExporterInitFailed(signal, exc) from exc

    @staticmethod
    def _abandon(signal: str, cause: Exception, owner: Any) -> ExporterInitFailed:
        try:
            owner.shutdown()
        except Exception as exc:
            logger.warning("Failed to release %s exporter: %s", signal, exc)
        return ExporterInitFailed(signal, cause)

    @staticmethod
    def _release(signals: dict[str, ExportSignal]) -> None:
        for name, signal in signals.items():
            try:
                signal.shutdown()
            except Exception as exc:
                logger.warning("Failed to release %s exporter: %s", name, exc)
