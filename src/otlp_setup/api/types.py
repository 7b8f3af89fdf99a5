"""Public configuration types for the otlp_setup package.

These types are part of the stable public API.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class Protocol(enum.Enum):
    """Wire protocol used to reach the destination."""

    GRPC = "grpc"
    HTTP_BINARY = "http_binary"
    HTTP_JSON = "http_json"
    # Datadog agent exporter; no transport is registered by default
    DATADOG_AGENT = "datadog_agent"


@dataclass(frozen=True)
class Destination:
    """Where telemetry is sent.

    For HTTP protocols ``url`` is a base URL and ``<url>/traces``,
    ``<url>/logs`` and ``<url>/metrics`` are expected to be served.
    For gRPC the URL is used as the collector endpoint.
    """

    protocol: Protocol
    url: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TraceSettings:
    """Trace export configuration.

    ``sample_rate`` applies to root spans; with ``respect_parent`` the
    parent's sampling decision wins for child spans. Span limits left as
    ``None`` keep the SDK default of 128.
    """

    sample_rate: float
    respect_parent: bool = True
    max_events_per_span: int | None = None
    max_attributes_per_span: int | None = None
    max_links_per_span: int | None = None
    max_attributes_per_event: int | None = None
    max_attributes_per_link: int | None = None


class Temporality(enum.Enum):
    """Aggregation temporality preset for the metrics exporter."""

    CUMULATIVE = "cumulative"
    # Delta wherever the instrument kind allows it
    DELTA = "delta"
    # Delta for synchronous counters and histograms only
    LOW_MEMORY = "low_memory"


@dataclass(frozen=True)
class MetricsSettings:
    """Metrics export configuration."""

    temporality: Temporality = Temporality.CUMULATIVE
    export_interval_millis: int | None = None
