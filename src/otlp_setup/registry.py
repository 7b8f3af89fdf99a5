"""Caller-owned subscriber registry and the export layer pipelines attach to it.

The registry is the composition point telemetry recording is dispatched
through: tracers and meters are handed out from the attached layers, and
stdlib ``logging`` records reach the log exporter through a bridge handler
installed on the registry's logger. Nothing here touches the OpenTelemetry
global API except ``SubscriberRegistry.init()``, which the caller invokes
explicitly.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics, trace

if TYPE_CHECKING:
    from opentelemetry.metrics import Meter
    from opentelemetry.trace import Tracer

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ExportLayer:
    """Export behaviour of one installed pipeline.

    Args:
        name: Instrumentation scope name used for the tracer and meter.
        tracer_provider: Provider for the trace signal, if enabled.
        logger_provider: Provider for the logs signal, if enabled.
        meter_provider: Provider for the metrics signal, if enabled.
    """

    name: str
    tracer_provider: Any = None
    logger_provider: Any = None
    meter_provider: Any = None
    handler: logging.Handler | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.logger_provider is not None:
            from opentelemetry.sdk._logs import LoggingHandler

            self.handler = LoggingHandler(logger_provider=self.logger_provider)

    def tracer(self, name: str | None = None) -> Tracer | None:
        if self.tracer_provider is None:
            return None
        return self.tracer_provider.get_tracer(name or self.name)

    def meter(self, name: str | None = None) -> Meter | None:
        if self.meter_provider is None:
            return None
        return self.meter_provider.get_meter(name or self.name)


class SubscriberRegistry:
    """Composition point export layers are attached to.

    Args:
        logger: Logger (or logger name) the log bridge is attached to.
            Defaults to the root logger.
        level: Minimum level forwarded to the log exporter.

    Example:
        >>> registry = SubscriberRegistry(level=logging.INFO)
        >>> pipeline.install("my-service", registry)
        >>> tracer = registry.tracer()
    """

    def __init__(
        self,
        logger: logging.Logger | str | None = None,
        level: int = logging.NOTSET,
    ) -> None:
        if isinstance(logger, logging.Logger):
            self._logger = logger
        else:
            self._logger = logging.getLogger(logger)
        self._level = level
        self._layers: list[ExportLayer] = []
        self._lock = threading.Lock()
        self._initialized = False

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def layers(self) -> tuple[ExportLayer, ...]:
        with self._lock:
            return tuple(self._layers)

    def with_layer(self, layer: ExportLayer) -> SubscriberRegistry:
        """Attach ``layer`` and return the registry.

        Attaching the same layer twice is a no-op.
        """
        with self._lock:
            if any(existing is layer for existing in self._layers):
                return self
            self._layers.append(layer)
        if layer.handler is not None:
            layer.handler.setLevel(self._level)
            self._logger.addHandler(layer.handler)
        logger.debug("Export layer '%s' attached", layer.name)
        return self

    def without_layer(self, layer: ExportLayer) -> None:
        """Detach ``layer``; records are no longer forwarded to it."""
        with self._lock:
            self._layers = [existing for existing in self._layers if existing is not layer]
        if layer.handler is not None:
            self._logger.removeHandler(layer.handler)
        logger.debug("Export layer '%s' detached", layer.name)

    def tracer(self, name: str | None = None) -> Tracer:
        """Return a tracer from the first layer exporting traces.

        Falls back to a no-op tracer when no such layer is attached.
        """
        for layer in self.layers:
            tracer = layer.tracer(name)
            if tracer is not None:
                return tracer
        return trace.NoOpTracer()

    def meter(self, name: str | None = None) -> Meter:
        """Return a meter from the first layer exporting metrics."""
        for layer in self.layers:
            meter = layer.meter(name)
            if meter is not None:
                return meter
        return metrics.NoOpMeter(name or "otlp_setup")

    def init(self) -> None:
        """Bind the attached providers to the OpenTelemetry global API.

        Only the first layer providing each signal is bound. OpenTelemetry
        allows a single global binding per process, so subsequent calls
        have no effect.
        """
        with self._lock:
            if self._initialized:
                logger.warning("Subscriber registry already initialized, ignoring init()")
                return
            self._initialized = True
            layers = tuple(self._layers)

        tracer_provider = next(
            (layer.tracer_provider for layer in layers if layer.tracer_provider is not None),
            None,
        )
        meter_provider = next(
            (layer.meter_provider for layer in layers if layer.meter_provider is not None),
            None,
        )
        logger_provider = next(
            (layer.logger_provider for layer in layers if layer.logger_provider is not None),
            None,
        )

        if tracer_provider is not None:
            trace.set_tracer_provider(tracer_provider)
        if meter_provider is not None:
            metrics.set_meter_provider(meter_provider)
        if logger_provider is not None:
            from opentelemetry._logs import set_logger_provider

            set_logger_provider(logger_provider)
        logger.debug("Subscriber registry bound to OpenTelemetry globals")
