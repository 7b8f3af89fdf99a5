"""Public API for the otlp_setup package.

This module re-exports the stable configuration types:
- Protocol, Destination - where telemetry goes
- TraceSettings, MetricsSettings, Temporality - per-signal settings
- Attributes - resource description
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

__all__ = [
    "Attributes",
    "AttributesBuilder",
    "Destination",
    "MetricsSettings",
    "Protocol",
    "Temporality",
    "TraceSettings",
]
