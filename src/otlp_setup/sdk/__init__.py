"""Builder, transports and lifecycle of export pipelines."""

from otlp_setup.sdk.builder import PipelineBuilder
from otlp_setup.sdk.pipeline import Pipeline, PipelineState
from otlp_setup.sdk.transports import (
    Endpoint,
    GrpcTransport,
    HttpTransport,
    TlsSettings,
    Transport,
    TransportRegistry,
    default_transports,
)

__all__ = [
    "Endpoint",
    "GrpcTransport",
    "HttpTransport",
    "Pipeline",
    "PipelineBuilder",
    "PipelineState",
    "TlsSettings",
    "Transport",
    "TransportRegistry",
    "default_transports",
]
