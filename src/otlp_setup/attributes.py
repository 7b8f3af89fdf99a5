"""Resource attributes describing the emitting process."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Union

from opentelemetry.sdk.resources import Resource

AttributeValue = Union[str, bool, int, float]


class AttributesBuilder:
    """Accumulates attribute entries in insertion order.

    Duplicate keys are kept as separate entries; they are resolved
    (last write wins) only when the builder is finished and consumed.

    Example:
        >>> attrs = Attributes.builder().with_attr("service.name", "svc").finish()
        >>> attrs["service.name"]
        'svc'
    """

    def __init__(self) -> None:
        self._entries: list[tuple[str, AttributeValue]] = []

    def with_attr(self, key: str, value: AttributeValue) -> AttributesBuilder:
        """Add ``key`` with ``value`` and return the builder for chaining."""
        self._entries.append((key, value))
        return self

    def finish(self) -> Attributes:
        """Freeze the accumulated entries into an immutable ``Attributes``."""
        return Attributes(self._entries)

    def __iter__(self) -> Iterator[tuple[str, AttributeValue]]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


class Attributes(Mapping[str, AttributeValue]):
    """Immutable attribute set attached to all telemetry of a pipeline.

    Behaves as a read-only mapping over the resolved view. The raw entries,
    duplicates included, remain available through ``entries``.
    """

    __slots__ = ("_entries", "_resolved")

    def __init__(self, entries: Iterable[tuple[str, AttributeValue]] = ()) -> None:
        self._entries: tuple[tuple[str, AttributeValue], ...] = tuple(entries)
        resolved: dict[str, AttributeValue] = {}
        for key, value in self._entries:
            # Re-insert so the resolved order follows the winning write
            resolved.pop(key, None)
            resolved[key] = value
        self._resolved = MappingProxyType(resolved)

    @staticmethod
    def builder() -> AttributesBuilder:
        """Start an attribute builder."""
        return AttributesBuilder()

    @property
    def entries(self) -> tuple[tuple[str, AttributeValue], ...]:
        """Raw entries in insertion order, including overwritten duplicates."""
        return self._entries

    def to_resource(self) -> Resource:
        """Build an SDK ``Resource`` from a copy of the resolved attributes."""
        return Resource.create(dict(self._resolved))

    def __getitem__(self, key: str) -> AttributeValue:
        return self._resolved[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._resolved)

    def __len__(self) -> int:
        return len(self._resolved)

    def __repr__(self) -> str:
        return f"Attributes({dict(self._resolved)!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Attributes):
            return dict(self._resolved) == dict(other._resolved)
        if isinstance(other, Mapping):
            return dict(self._resolved) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._resolved.items()))
