"""Source protocols consumed by the aggregator."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Protocol, Tuple, runtime_checkable

from .types import PropertyValue


@runtime_checkable
class PropertySource(Protocol):
    """Protocol defining the interface for property sources.

    Any object exposing these members can be registered with a
    SourceAggregator. Sources are owned by the caller; the aggregator never
    mutates them.
    """

    name: str
    ordinal: int

    def get(self, key: str) -> Optional[PropertyValue]:
        """Get a single value by key.

        Args:
            key: Configuration key to retrieve.

        Returns:
            PropertyValue if the key exists, None otherwise.
        """
        ...

    def get_all(self) -> Dict[str, PropertyValue]:
        """Get all values held by the source.

        Returns:
            Dictionary of key to PropertyValue.
        """
        ...


@runtime_checkable
class PropertySourceProvider(Protocol):
    """Protocol for objects that discover or construct property sources."""

    def get_property_sources(self) -> Iterable[PropertySource]:
        ...


def source_sort_key(source: PropertySource) -> Tuple[int, str]:
    """Ordering key: descending ordinal, ties broken by ascending name."""
    return (-int(source.ordinal), str(source.name))
