"""Sampler and span limit construction from ``TraceSettings``."""

from __future__ import annotations

from opentelemetry.sdk.trace import SpanLimits
from opentelemetry.sdk.trace.sampling import (
    ALWAYS_OFF,
    ALWAYS_ON,
    ParentBased,
    Sampler,
    TraceIdRatioBased,
)

from otlp_setup.api.types import TraceSettings


def build_sampler(settings: TraceSettings) -> Sampler:
    """Select a sampler for an already validated sample rate."""
    rate = float(settings.sample_rate)
    if settings.respect_parent:
        return ParentBased(root=TraceIdRatioBased(rate))
    if rate == 0.0:
        return ALWAYS_OFF
    if rate == 1.0:
        return ALWAYS_ON
    return TraceIdRatioBased(rate)


def build_span_limits(settings: TraceSettings) -> SpanLimits:
    # None leaves the SDK default (env var or 128) in place
    return SpanLimits(
        max_events=settings.max_events_per_span,
        max_span_attributes=settings.max_attributes_per_span,
        max_links=settings.max_links_per_span,
        max_event_attributes=settings.max_attributes_per_event,
        max_link_attributes=settings.max_attributes_per_link,
    )
