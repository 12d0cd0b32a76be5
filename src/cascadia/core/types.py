"""Value types shared by the resolution pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

META_PREFIX = "_"


def is_metadata_key(key: str) -> bool:
    """Return True if the first segment of ``key`` carries the metadata marker."""
    return key.split(".", 1)[0].startswith(META_PREFIX)


def _freeze(data: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class PropertyValue:
    """A raw value read from a property source.

    Attributes:
        key: Configuration key.
        value: Raw text value, None when a source explicitly holds no value.
        metadata: Read-only annotations (source name, resolvers used, ...).
    """

    key: str
    value: Optional[str]
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    @classmethod
    def of(cls, key: str, value: Optional[str], source: Optional[str] = None) -> "PropertyValue":
        meta = {"source": source} if source else {}
        return cls(key=key, value=value, metadata=meta)

    def with_value(self, value: Optional[str]) -> "PropertyValue":
        return PropertyValue(key=self.key, value=value, metadata=self.metadata)

    def with_metadata(self, **entries: str) -> "PropertyValue":
        merged: Dict[str, str] = dict(self.metadata)
        merged.update(entries)
        return PropertyValue(key=self.key, value=self.value, metadata=merged)

    def get_meta(self, name: str) -> Optional[str]:
        return self.metadata.get(name)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, PropertyValue):
            return NotImplemented
        return (
            self.key == other.key
            and self.value == other.value
            and dict(self.metadata) == dict(other.metadata)
        )

    def __hash__(self) -> int:
        return hash((self.key, self.value, tuple(sorted(self.metadata.items()))))


@dataclass(frozen=True)
class ProvenanceRecord:
    """Record tracking where an effective configuration value came from.

    Attributes:
        key: Configuration key.
        source_name: Name of the source that supplied the winning value.
        resolvers: Resolvers that rewrote the value, in invocation order.
        timestamp_loaded: When the value was read.
    """

    key: str
    source_name: Optional[str]
    resolvers: tuple
    timestamp_loaded: datetime


class ConfigurationSnapshot(Mapping[str, str]):
    """Immutable, fully materialised copy of a configuration's key/value space."""

    __slots__ = ("_properties", "_timestamp", "_version")

    def __init__(
        self,
        properties: Mapping[str, str],
        timestamp: Optional[datetime] = None,
        version: Optional[str] = None,
    ):
        self._properties = MappingProxyType(dict(properties))
        self._timestamp = timestamp or datetime.now(timezone.utc)
        self._version = version or uuid.uuid4().hex

    @property
    def properties(self) -> Mapping[str, str]:
        return self._properties

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    @property
    def version(self) -> str:
        return self._version

    def __getitem__(self, key: str) -> str:
        return self._properties[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._properties)

    def __len__(self) -> int:
        return len(self._properties)

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "_version"):
            raise AttributeError("ConfigurationSnapshot is immutable")
        object.__setattr__(self, name, value)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._properties)

    def __repr__(self) -> str:
        return (
            f"ConfigurationSnapshot(version={self._version!r}, "
            f"timestamp={self._timestamp.isoformat()}, size={len(self)})"
        )
