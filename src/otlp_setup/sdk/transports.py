"""Transport capabilities keyed by protocol.

A transport turns a resolved ``Endpoint`` into concrete OTLP exporters. The
default registry holds the HTTP (protobuf) and gRPC transports; a transport
whose exporter package is not installed is reported as unavailable, which the
builder surfaces as ``UnsupportedProtocol``.
"""

from __future__ import annotations

import importlib.util
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from otlp_setup.api.types import Protocol, Temporality

if TYPE_CHECKING:
    from opentelemetry.sdk.metrics.export import MetricExporter
    from opentelemetry.sdk.trace.export import SpanExporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TlsSettings:
    """Paths to TLS material used by the exporters."""

    certificate_file: str | None = None
    client_key_file: str | None = None
    client_certificate_file: str | None = None

    def read(self) -> tuple[bytes | None, bytes | None, bytes | None]:
        """Load the configured files.

        Raises:
            OSError: If a configured file cannot be read.
        """
        return (
            _read_optional(self.certificate_file),
            _read_optional(self.client_key_file),
            _read_optional(self.client_certificate_file),
        )


def _read_optional(path: str | None) -> bytes | None:
    if path is None:
        return None
    return Path(path).read_bytes()


@dataclass(frozen=True)
class Endpoint:
    """Resolved destination handed to a transport."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = 5.0
    compression: bool = True
    tls: TlsSettings | None = None


def preferred_temporality(temporality: Temporality) -> dict[type, Any]:
    """Map a temporality preset to the SDK's per-instrument preference."""
    from opentelemetry.sdk.metrics import (
        Counter,
        Histogram,
        ObservableCounter,
        ObservableGauge,
        ObservableUpDownCounter,
        UpDownCounter,
    )
    from opentelemetry.sdk.metrics.export import AggregationTemporality

    cumulative = AggregationTemporality.CUMULATIVE
    delta = AggregationTemporality.DELTA

    if temporality is Temporality.DELTA:
        return {
            Counter: delta,
            UpDownCounter: cumulative,
            Histogram: delta,
            ObservableCounter: delta,
            ObservableUpDownCounter: cumulative,
            ObservableGauge: cumulative,
        }
    if temporality is Temporality.LOW_MEMORY:
        return {
            Counter: delta,
            UpDownCounter: cumulative,
            Histogram: delta,
            ObservableCounter: cumulative,
            ObservableUpDownCounter: cumulative,
            ObservableGauge: cumulative,
        }
    return {
        Counter: cumulative,
        UpDownCounter: cumulative,
        Histogram: cumulative,
        ObservableCounter: cumulative,
        ObservableUpDownCounter: cumulative,
        ObservableGauge: cumulative,
    }


class Transport:
    """Constructs exporters for one protocol.

    Subclasses name the module that must be importable for the transport to
    be available, and implement the three exporter factories.
    """

    requires: str = ""

    def is_available(self) -> bool:
        """Return True if the exporter package for this transport is installed."""
        if not self.requires:
            return True
        try:
            return importlib.util.find_spec(self.requires) is not None
        except ModuleNotFoundError:
            return False

    def create_span_exporter(self, endpoint: Endpoint) -> SpanExporter:
        raise NotImplementedError

    def create_log_exporter(self, endpoint: Endpoint) -> Any:
        raise NotImplementedError

    def create_metric_exporter(
        self, endpoint: Endpoint, temporality: Temporality
    ) -> MetricExporter:
        raise NotImplementedError


class HttpTransport(Transport):
    """OTLP over HTTP with protobuf encoding."""

    requires = "opentelemetry.exporter.otlp.proto.http"

    @staticmethod
    def signal_url(endpoint: Endpoint, signal: str) -> str:
        return f"{endpoint.url.rstrip('/')}/{signal}"

    def _kwargs(self, endpoint: Endpoint, signal: str) -> dict[str, Any]:
        from opentelemetry.exporter.otlp.proto.http import Compression

        kwargs: dict[str, Any] = {
            "endpoint": self.signal_url(endpoint, signal),
            "headers": dict(endpoint.headers) if endpoint.headers else None,
            "timeout": endpoint.timeout,
            "compression": (
                Compression.Gzip if endpoint.compression else Compression.NoCompression
            ),
        }
        if endpoint.tls is not None:
            # Fail early on unreadable TLS material; the exporter only
            # stores the paths and would fail on the first export.
            endpoint.tls.read()
            kwargs["certificate_file"] = endpoint.tls.certificate_file
            kwargs["client_key_file"] = endpoint.tls.client_key_file
            kwargs["client_certificate_file"] = endpoint.tls.client_certificate_file
        return kwargs

    def create_span_exporter(self, endpoint: Endpoint) -> SpanExporter:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter,
        )

        return OTLPSpanExporter(**self._kwargs(endpoint, "traces"))

    def create_log_exporter(self, endpoint: Endpoint) -> Any:
        from opentelemetry.exporter.otlp.proto.http._log_exporter import (
            OTLPLogExporter,
        )

        return OTLPLogExporter(**self._kwargs(endpoint, "logs"))

    def create_metric_exporter(
        self, endpoint: Endpoint, temporality: Temporality
    ) -> MetricExporter:
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
            OTLPMetricExporter,
        )

        return OTLPMetricExporter(
            preferred_temporality=preferred_temporality(temporality),
            **self._kwargs(endpoint, "metrics"),
        )


class GrpcTransport(Transport):
    """OTLP over gRPC. Requires the ``grpc`` extra."""

    requires = "opentelemetry.exporter.otlp.proto.grpc"

    def _kwargs(self, endpoint: Endpoint) -> dict[str, Any]:
        import grpc

        # gRPC metadata keys must be lowercase
        headers = tuple((key.lower(), value) for key, value in endpoint.headers.items())
        kwargs: dict[str, Any] = {
            "endpoint": endpoint.url,
            "headers": headers or None,
            "timeout": endpoint.timeout,
            "compression": (
                grpc.Compression.Gzip if endpoint.compression else grpc.Compression.NoCompression
            ),
        }
        if endpoint.tls is not None:
            root, key, chain = endpoint.tls.read()
            kwargs["credentials"] = grpc.ssl_channel_credentials(
                root_certificates=root,
                private_key=key,
                certificate_chain=chain,
            )
            kwargs["insecure"] = False
        else:
            kwargs["insecure"] = endpoint.url.lower().startswith("http://")
        return kwargs

    def create_span_exporter(self, endpoint: Endpoint) -> SpanExporter:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        return OTLPSpanExporter(**self._kwargs(endpoint))

    def create_log_exporter(self, endpoint: Endpoint) -> Any:
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import (
            OTLPLogExporter,
        )

        return OTLPLogExporter(**self._kwargs(endpoint))

    def create_metric_exporter(
        self, endpoint: Endpoint, temporality: Temporality
    ) -> MetricExporter:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
            OTLPMetricExporter,
        )

        return OTLPMetricExporter(
            preferred_temporality=preferred_temporality(temporality),
            **self._kwargs(endpoint),
        )


class TransportRegistry(Mapping[Protocol, Transport]):
    """Set of transports available to the builder, keyed by protocol."""

    def __init__(self, transports: Mapping[Protocol, Transport] | None = None) -> None:
        self._transports: dict[Protocol, Transport] = dict(transports or {})

    def register(self, protocol: Protocol, transport: Transport) -> TransportRegistry:
        """Register ``transport`` for ``protocol``, replacing any previous one."""
        self._transports[protocol] = transport
        return self

    def resolve(self, protocol: Protocol) -> tuple[Transport | None, str | None]:
        """Return the transport for ``protocol`` or the reason it is missing."""
        transport = self._transports.get(protocol)
        if transport is None:
            return None, "no transport registered"
        if not transport.is_available():
            logger.debug("Transport for %s unavailable: %s missing", protocol.value, transport.requires)
            return None, f"'{transport.requires}' is not installed"
        return transport, None

    def __getitem__(self, protocol: Protocol) -> Transport:
        return self._transports[protocol]

    def __iter__(self) -> Iterator[Protocol]:
        return iter(self._transports)

    def __len__(self) -> int:
        return len(self._transports)


def default_transports() -> TransportRegistry:
    """Return a registry with the transports shipped with this package."""
    return TransportRegistry(
        {
            Protocol.HTTP_BINARY: HttpTransport(),
            Protocol.GRPC: GrpcTransport(),
        }
    )
