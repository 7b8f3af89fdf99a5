"""W3C trace-context propagation across process boundaries.

Carriers may be mutable mappings (``dict``, ``http.client`` style header
maps) or lists of ``(key, value)`` pairs::

    headers: dict[str, str] = {}
    inject_into(headers)

    with parent_from(request.headers):
        with tracer.start_as_current_span("handle"):
            ...
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from typing import Any, Union

from opentelemetry import context as context_api
from opentelemetry.context import Context
from opentelemetry.propagators.textmap import Getter, Setter
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

Carrier = Union[MutableMapping[str, str], list]
Source = Union[Mapping[str, str], Iterable[tuple[str, str]]]

_PROPAGATOR = TraceContextTextMapPropagator()


class _CarrierSetter(Setter[Any]):
    def set(self, carrier: Any, key: str, value: str) -> None:
        if isinstance(carrier, list):
            carrier.append((key, value))
        else:
            carrier[key] = value


class _SourceGetter(Getter[Any]):
    def get(self, carrier: Any, key: str) -> list[str] | None:
        if isinstance(carrier, Mapping):
            value = carrier.get(key)
            if value is None:
                # Header maps are often case-preserving
                value = next(
                    (v for k, v in carrier.items() if str(k).lower() == key), None
                )
            return [value] if value is not None else None
        values = [v for k, v in carrier if str(k).lower() == key]
        return values or None

    def keys(self, carrier: Any) -> list[str]:
        if isinstance(carrier, Mapping):
            return [str(k) for k in carrier]
        return [str(k) for k, _ in carrier]


_SETTER = _CarrierSetter()
_GETTER = _SourceGetter()


def inject_into(carrier: Carrier, context: Context | None = None) -> Carrier:
    """Write the current (or given) trace context into ``carrier``."""
    _PROPAGATOR.inject(carrier, context=context, setter=_SETTER)
    return carrier


def extract_from(source: Source, context: Context | None = None) -> Context:
    """Return a context whose parent span is read from ``source``.

    A source without valid trace-context headers yields ``context``
    (or the current context) unchanged.
    """
    if not isinstance(source, Mapping):
        source = list(source)
    return _PROPAGATOR.extract(source, context=context, getter=_GETTER)


@contextmanager
def parent_from(source: Source) -> Iterator[Context]:
    """Make the context extracted from ``source`` current for the block."""
    ctx = extract_from(source)
    token = context_api.attach(ctx)
    try:
        yield ctx
    finally:
        context_api.detach(token)
