"""Unit tests for resource attribute building."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.resources import SERVICE_NAME

from otlp_setup.attributes import Attributes


@pytest.mark.unit
class TestAttributesBuilder:
    """Tests for accumulation and last-write-wins resolution."""

    def test_builder_preserves_duplicate_entries_in_order(self) -> None:
        """
        GIVEN a builder with the key "a" written twice
        WHEN the raw builder is iterated before finish()
        THEN both entries are yielded in insertion order
        """
        builder = Attributes.builder().with_attr("a", 1).with_attr("a", 2)

        assert list(builder) == [("a", 1), ("a", 2)]
        assert len(builder) == 2

    def test_finished_attributes_resolve_last_write(self) -> None:
        """
        GIVEN a builder with {"a": 1} then {"a": 2}
        WHEN the builder is finished
        THEN the consumed view resolves to {"a": 2}
        AND the raw entries are still available
        """
        attrs = Attributes.builder().with_attr("a", 1).with_attr("a", 2).finish()

        assert dict(attrs) == {"a": 2}
        assert attrs.entries == (("a", 1), ("a", 2))

    def test_accepts_all_scalar_types(self) -> None:
        """
        GIVEN string, int, float and bool values
        WHEN they are added and finished
        THEN every value is kept unchanged
        """
        attrs = (
            Attributes.builder()
            .with_attr("s", "x")
            .with_attr("i", 3)
            .with_attr("f", 0.5)
            .with_attr("b", True)
            .finish()
        )

        assert attrs == {"s": "x", "i": 3, "f": 0.5, "b": True}

    def test_finished_attributes_are_immutable(self) -> None:
        """
        GIVEN finished attributes
        WHEN the builder is extended afterwards
        THEN the finished attributes do not change
        """
        builder = Attributes.builder().with_attr("a", 1)
        attrs = builder.finish()
        builder.with_attr("b", 2)

        assert dict(attrs) == {"a": 1}
        with pytest.raises(TypeError):
            attrs["a"] = 5  # type: ignore[index]


@pytest.mark.unit
class TestAttributesResource:
    """Tests for conversion into an SDK resource."""

    def test_to_resource_contains_resolved_attributes(self) -> None:
        """
        GIVEN attributes with a duplicated service.name
        WHEN converted to a Resource
        THEN the resource carries the last written value
        """
        attrs = (
            Attributes.builder()
            .with_attr(SERVICE_NAME, "first")
            .with_attr(SERVICE_NAME, "svc")
            .finish()
        )

        resource = attrs.to_resource()

        assert resource.attributes[SERVICE_NAME] == "svc"

    def test_to_resource_returns_independent_copies(self) -> None:
        """
        GIVEN one set of attributes
        WHEN converted to a Resource twice
        THEN both resources are equal but distinct objects
        """
        attrs = Attributes.builder().with_attr(SERVICE_NAME, "svc").finish()

        first = attrs.to_resource()
        second = attrs.to_resource()

        assert first is not second
        assert first.attributes == second.attributes
