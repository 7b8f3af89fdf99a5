"""Unit tests for Pipeline.install."""

from __future__ import annotations

import threading
from typing import Callable

import pytest
from opentelemetry import trace

from otlp_setup.api.types import Destination, TraceSettings
from otlp_setup.attributes import Attributes
from otlp_setup.exceptions import AlreadyInstalled, AlreadyShutDown, LifecycleError
from otlp_setup.registry import SubscriberRegistry
from otlp_setup.sdk.builder import PipelineBuilder
from otlp_setup.sdk.pipeline import Pipeline, PipelineState
from otlp_setup.sdk.transports import TransportRegistry
from tests.fakes import FakeSignal


@pytest.mark.unit
class TestInstall:
    """Tests for the BUILT -> INSTALLED transition."""

    def test_install_returns_registry_with_layer(
        self,
        make_pipeline: Callable[..., Pipeline],
        registry: SubscriberRegistry,
    ) -> None:
        """
        GIVEN a built pipeline
        WHEN it is installed
        THEN the same registry is returned carrying the pipeline's layer
        """
        pipeline = make_pipeline()

        result = pipeline.install("svc", registry)

        assert result is registry
        assert pipeline.state is PipelineState.INSTALLED
        assert registry.layers == (pipeline.layer,)
        assert pipeline.layer is not None
        assert pipeline.layer.name == "svc"

    def test_second_install_fails_without_duplicate_layer(
        self,
        make_pipeline: Callable[..., Pipeline],
        registry: SubscriberRegistry,
    ) -> None:
        """
        GIVEN an installed pipeline
        WHEN install is called again
        THEN AlreadyInstalled is raised and no second layer is attached
        """
        pipeline = make_pipeline()
        pipeline.install("svc", registry)

        with pytest.raises(AlreadyInstalled):
            pipeline.install("svc", registry)

        assert len(registry.layers) == 1
        assert pipeline.state is PipelineState.INSTALLED

    def test_second_install_into_other_registry_fails(
        self,
        make_pipeline: Callable[..., Pipeline],
        registry: SubscriberRegistry,
    ) -> None:
        """
        GIVEN a pipeline installed into one registry
        WHEN it is installed into a different registry
        THEN AlreadyInstalled is raised and the other registry stays empty
        """
        pipeline = make_pipeline()
        pipeline.install("svc", registry)
        other = SubscriberRegistry(logger="otlp_setup_tests.other")

        with pytest.raises(AlreadyInstalled):
            pipeline.install("svc", other)

        assert other.layers == ()

    def test_install_after_shutdown_fails(
        self,
        make_pipeline: Callable[..., Pipeline],
        registry: SubscriberRegistry,
    ) -> None:
        """
        GIVEN a pipeline that was shut down
        WHEN install is called
        THEN AlreadyShutDown is raised
        """
        pipeline = make_pipeline()
        pipeline.shutdown()

        with pytest.raises(AlreadyShutDown) as exc_info:
            pipeline.install("svc", registry)

        assert isinstance(exc_info.value, LifecycleError)
        assert registry.layers == ()

    def test_concurrent_install_succeeds_exactly_once(
        self,
        make_pipeline: Callable[..., Pipeline],
        registry: SubscriberRegistry,
    ) -> None:
        """
        GIVEN one pipeline shared by several threads
        WHEN all of them call install at once
        THEN exactly one call succeeds and the rest raise AlreadyInstalled
        """
        pipeline = make_pipeline()
        barrier = threading.Barrier(8)
        outcomes: list[str] = []
        outcomes_lock = threading.Lock()

        def attempt() -> None:
            barrier.wait()
            try:
                pipeline.install("svc", registry)
                outcome = "installed"
            except AlreadyInstalled:
                outcome = "rejected"
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert outcomes.count("installed") == 1
        assert outcomes.count("rejected") == 7
        assert len(registry.layers) == 1

    def test_install_does_not_touch_global_tracer_provider(
        self,
        destination: Destination,
        transports: TransportRegistry,
        service_attrs: Attributes,
        registry: SubscriberRegistry,
    ) -> None:
        """
        GIVEN a pipeline exporting traces
        WHEN it is installed
        THEN the registry hands out SDK tracers and the global provider is untouched
        """
        pipeline = (
            PipelineBuilder(destination, transports=transports)
            .with_trace(service_attrs, TraceSettings(sample_rate=1.0))
            .finish()
        )

        pipeline.install("svc", registry)

        assert not isinstance(registry.tracer(), trace.NoOpTracer)
        assert isinstance(trace.get_tracer_provider(), trace.ProxyTracerProvider)
        pipeline.shutdown(1.0)

    def test_layer_exposes_only_enabled_signals(
        self,
        make_pipeline: Callable[..., Pipeline],
        registry: SubscriberRegistry,
    ) -> None:
        """
        GIVEN a pipeline whose signals carry no SDK provider
        WHEN it is installed
        THEN the registry falls back to a no-op tracer
        """
        pipeline = make_pipeline(FakeSignal("metrics"))

        pipeline.install("svc", registry)

        assert isinstance(registry.tracer(), trace.NoOpTracer)
        assert pipeline.layer is not None
        assert pipeline.layer.handler is None
