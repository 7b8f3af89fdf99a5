"""Pipeline lifecycle: install into a registry once, shut down once.

State machine::

    BUILT --install--> INSTALLED --shutdown--> SHUTTING_DOWN --> SHUT_DOWN
      |                                                             ^
      +-----------------------shutdown (release only)---------------+

Transitions happen under a lock so concurrent ``install``/``shutdown`` calls
resolve to exactly one successful transition. Flushing is the only blocking
operation and is bounded by the caller's deadline: every signal is flushed
and shut down on its own daemon thread, so a stuck exporter cannot hold the
caller past the deadline nor keep the interpreter alive.
"""

from __future__ import annotations

import atexit
import enum
import logging
import math
import threading
import time
from collections.abc import Mapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from opentelemetry.sdk.resources import Resource

from otlp_setup._internal.logging import log_internal_error
from otlp_setup.exceptions import (
    AlreadyInstalled,
    AlreadyShutDown,
    ExportFailed,
    ShutdownTimeout,
)
from otlp_setup.registry import ExportLayer
from otlp_setup.sdk.signals import LOGS, METRICS, TRACE

if TYPE_CHECKING:
    from otlp_setup.api.types import Destination
    from otlp_setup.registry import SubscriberRegistry
    from otlp_setup.sdk.builder import PipelineBuilder
    from otlp_setup.sdk.signals import ExportSignal
    from otlp_setup.sdk.transports import TransportRegistry

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
    BUILT = "built"
    INSTALLED = "installed"
    SHUTTING_DOWN = "shutting_down"
    SHUT_DOWN = "shut_down"


def _to_seconds(deadline: float | timedelta) -> float:
    if isinstance(deadline, timedelta):
        seconds = deadline.total_seconds()
    else:
        seconds = float(deadline)
    return max(seconds, 0.0)


def _flush_millis(seconds: float) -> int:
    # A zero timeout makes the SDK give up before flushing anything
    return max(1, math.ceil(seconds * 1000))


class _ShutdownWorker(threading.Thread):
    """Flushes (optionally) and shuts down a single signal."""

    def __init__(self, signal: ExportSignal, flush: bool, timeout_millis: int) -> None:
        super().__init__(name=f"otlp-setup-shutdown-{signal.name}", daemon=True)
        self.signal = signal
        self._flush = flush
        self._timeout_millis = timeout_millis
        self.completed = True
        self.error: BaseException | None = None

    def run(self) -> None:
        try:
            if self._flush:
                self.completed = bool(self.signal.flush(self._timeout_millis))
        except Exception as exc:
            self.error = exc
        try:
            self.signal.shutdown()
        except Exception as exc:
            if self.error is None:
                self.error = exc


class Pipeline:
    """Running export pipeline.

    Built by ``PipelineBuilder.finish()``; owns the exporters of every enabled
    signal and the resource describing the emitting process.

    Args:
        signals: Export signals keyed by name.
        resource: Resource attached to the pipeline's telemetry.
        flush_timeout: Exporter timeout in seconds, used to bound background
            flushing when ``shutdown`` is called with a zero deadline and as
            the deadline for context-manager and atexit shutdown.
    """

    def __init__(
        self,
        signals: Mapping[str, ExportSignal],
        resource: Resource | None = None,
        flush_timeout: float = 5.0,
    ) -> None:
        self._signals = dict(signals)
        self._resource = resource if resource is not None else Resource.create({})
        self._flush_timeout = flush_timeout
        self._state = PipelineState.BUILT
        self._lock = threading.Lock()
        self._registry: SubscriberRegistry | None = None
        self._layer: ExportLayer | None = None

    @staticmethod
    def builder(
        destination: Destination, transports: TransportRegistry | None = None
    ) -> PipelineBuilder:
        """Start building a pipeline for ``destination``."""
        from otlp_setup.sdk.builder import PipelineBuilder

        return PipelineBuilder(destination, transports=transports)

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    @property
    def resource(self) -> Resource:
        return self._resource

    @property
    def signals(self) -> tuple[str, ...]:
        """Names of the enabled signals."""
        return tuple(self._signals)

    @property
    def layer(self) -> ExportLayer | None:
        """Layer attached by ``install``, if installed."""
        return self._layer

    def install(self, name: str, registry: SubscriberRegistry) -> SubscriberRegistry:
        """Attach this pipeline's export layer to ``registry``.

        Args:
            name: Instrumentation scope name for the tracer and meter.
            registry: Caller-owned registry to layer the exporters onto.

        Returns:
            The same registry, now dispatching to this pipeline.

        Raises:
            AlreadyInstalled: The pipeline was installed before.
            AlreadyShutDown: The pipeline is shutting down or shut down.
        """
        with self._lock:
            if self._state is PipelineState.INSTALLED:
                raise AlreadyInstalled("Pipeline is already installed")
            if self._state is not PipelineState.BUILT:
                raise AlreadyShutDown("Pipeline has been shut down")

            layer = ExportLayer(
                name=name,
                tracer_provider=self.provider(TRACE),
                logger_provider=self.provider(LOGS),
                meter_provider=self.provider(METRICS),
            )
            registry.with_layer(layer)
            self._registry = registry
            self._layer = layer
            self._state = PipelineState.INSTALLED

        logger.debug("Pipeline installed as '%s'", name)
        return registry

    def shutdown(self, deadline: float | timedelta = 0.0) -> None:
        """Flush buffered telemetry and release exporter resources.

        Blocks until every signal finished or ``deadline`` elapsed. A zero
        deadline starts flushing in the background and returns immediately.
        The pipeline ends ``SHUT_DOWN`` whatever the outcome; telemetry still
        buffered after a timeout is discarded.

        A pipeline that was never installed is released without flushing and
        never raises ``ShutdownError``.

        Args:
            deadline: Seconds (or a ``timedelta``) to wait for the flush.

        Raises:
            AlreadyShutDown: Shutdown was already requested.
            ShutdownTimeout: A signal did not finish before the deadline.
            ExportFailed: A signal reported an error while flushing.
        """
        seconds = _to_seconds(deadline)
        with self._lock:
            if self._state in (PipelineState.SHUTTING_DOWN, PipelineState.SHUT_DOWN):
                raise AlreadyShutDown("Pipeline has already been shut down")
            installed = self._state is PipelineState.INSTALLED
            self._state = PipelineState.SHUTTING_DOWN
            registry, layer = self._registry, self._layer

        try:
            if not installed:
                self._release(seconds)
                return
            if registry is not None and layer is not None:
                try:
                    registry.without_layer(layer)
                except Exception as exc:
                    log_internal_error("detach of export layer", exc)
            timed_out, failed = self._drain(seconds)
        finally:
            with self._lock:
                self._state = PipelineState.SHUT_DOWN
                self._registry = None

        if timed_out:
            errors: dict[str, BaseException | None] = {name: None for name in timed_out}
            errors.update(failed)
            logger.warning("Pipeline shutdown timed out after %.3fs: %s", seconds, ", ".join(timed_out))
            raise ShutdownTimeout("Failed to shutdown pipeline", errors)
        if failed:
            logger.warning("Pipeline shutdown reported export errors: %s", ", ".join(failed))
            raise ExportFailed("Failed to shutdown pipeline", dict(failed))
        logger.debug("Pipeline shut down")

    def shutdown_at_exit(self, deadline: float | timedelta | None = None) -> None:
        """Register an ``atexit`` hook shutting the pipeline down if still live."""
        atexit.register(self._shutdown_at_exit, self._flush_timeout if deadline is None else deadline)

    def _shutdown_at_exit(self, deadline: float | timedelta) -> None:
        try:
            self.shutdown(deadline)
        except AlreadyShutDown:
            pass
        except Exception as exc:
            log_internal_error("shutdown at exit", exc)

    def __enter__(self) -> Pipeline:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self.state not in (PipelineState.SHUTTING_DOWN, PipelineState.SHUT_DOWN):
            self.shutdown(self._flush_timeout)

    def provider(self, name: str) -> Any:
        """SDK provider backing signal ``name``, or None if it is not enabled."""
        signal = self._signals.get(name)
        return signal.provider if signal is not None else None

    def _drain(self, seconds: float) -> tuple[list[str], dict[str, BaseException]]:
        if seconds == 0.0:
            # Best effort: flush in the background bounded by the exporter timeout
            self._start_workers(flush=True, timeout_millis=_flush_millis(self._flush_timeout))
            return [], {}

        workers = self._start_workers(flush=True, timeout_millis=_flush_millis(seconds))
        end = time.monotonic() + seconds
        for worker in workers:
            worker.join(max(end - time.monotonic(), 0.0))

        timed_out: list[str] = []
        failed: dict[str, BaseException] = {}
        for worker in workers:
            name = worker.signal.name
            if worker.is_alive() or not worker.completed:
                timed_out.append(name)
            elif worker.error is not None:
                failed[name] = worker.error
        return timed_out, failed

    def _release(self, seconds: float) -> None:
        workers = self._start_workers(flush=False, timeout_millis=0)
        if seconds > 0.0:
            end = time.monotonic() + seconds
            for worker in workers:
                worker.join(max(end - time.monotonic(), 0.0))
        for worker in workers:
            if worker.error is not None:
                log_internal_error(f"release of {worker.signal.name} exporter", worker.error)
        logger.debug("Pipeline released without being installed")

    def _start_workers(self, flush: bool, timeout_millis: int) -> list[_ShutdownWorker]:
        workers = [
            _ShutdownWorker(signal, flush=flush, timeout_millis=timeout_millis)
            for signal in self._signals.values()
        ]
        for worker in workers:
            worker.start()
        return workers
