"""Shared pytest configuration and fixtures.

This module provides fixtures that:
1. Reset OpenTelemetry global state between tests for isolation
2. Provide in-memory transports so builds never touch the network
3. Build pipelines around scripted export signals for lifecycle tests
"""

from __future__ import annotations

import logging
from typing import Callable, Generator

import pytest
from opentelemetry import trace as trace_api

from otlp_setup.api.types import Destination, Protocol
from otlp_setup.attributes import Attributes
from otlp_setup.registry import SubscriberRegistry
from otlp_setup.sdk.pipeline import Pipeline
from otlp_setup.sdk.transports import TransportRegistry
from tests.fakes import FakeSignal, InMemoryTransport


def _reset_trace_globals() -> None:
    """Reset OpenTelemetry globals for test isolation.

    WARNING: Only use this in tests. This accesses internal OTel APIs.
    """
    from opentelemetry.util._once import Once

    trace_api._TRACER_PROVIDER_SET_ONCE = Once()
    trace_api._TRACER_PROVIDER = None
    trace_api._PROXY_TRACER_PROVIDER = trace_api.ProxyTracerProvider()

    from opentelemetry.metrics import _internal as metrics_internal

    metrics_internal._METER_PROVIDER_SET_ONCE = Once()
    metrics_internal._METER_PROVIDER = None

    from opentelemetry._logs import _internal as logs_internal

    logs_internal._LOGGER_PROVIDER_SET_ONCE = Once()
    logs_internal._LOGGER_PROVIDER = None


@pytest.fixture(autouse=True)
def reset_otel_state() -> Generator[None, None, None]:
    """Reset OpenTelemetry global state before and after each test."""
    _reset_trace_globals()
    yield
    _reset_trace_globals()


@pytest.fixture
def memory_transport() -> InMemoryTransport:
    """Provide an in-memory transport registered for HTTP_BINARY."""
    return InMemoryTransport()


@pytest.fixture
def transports(memory_transport: InMemoryTransport) -> TransportRegistry:
    """Transport registry with in-memory transports for HTTP and gRPC."""
    return TransportRegistry(
        {
            Protocol.HTTP_BINARY: memory_transport,
            Protocol.GRPC: memory_transport,
        }
    )


@pytest.fixture
def destination() -> Destination:
    """Destination from the end-to-end scenario."""
    return Destination(protocol=Protocol.HTTP_BINARY, url="http://localhost:45081")


@pytest.fixture
def service_attrs() -> Attributes:
    """Resource attributes naming the service 'svc'."""
    return Attributes.builder().with_attr("service.name", "svc").finish()


@pytest.fixture
def test_logger() -> Generator[logging.Logger, None, None]:
    """Dedicated logger so bridge handlers never land on the root logger."""
    log = logging.getLogger("otlp_setup_tests.app")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    yield log
    for handler in list(log.handlers):
        log.removeHandler(handler)


@pytest.fixture
def registry(test_logger: logging.Logger) -> SubscriberRegistry:
    """Subscriber registry bound to the dedicated test logger."""
    return SubscriberRegistry(logger=test_logger, level=logging.INFO)


@pytest.fixture
def make_pipeline() -> Callable[..., Pipeline]:
    """Factory building a pipeline around scripted export signals.

    Usage:
        pipeline = make_pipeline(FakeSignal("trace"), FakeSignal("metrics"))
    """

    def factory(*signals: FakeSignal, flush_timeout: float = 1.0) -> Pipeline:
        if not signals:
            signals = (FakeSignal("trace"),)
        return Pipeline({signal.name: signal for signal in signals}, flush_timeout=flush_timeout)

    return factory
