from __future__ import annotations

import uuid
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.source import PropertySource
from ..core.types import PropertyValue


class FrozenPropertySource:
    """Immutable copy of another source's values, taken at one point in time.

    The copy keeps the name and ordinal of the original, so it can be
    registered in its place. Two frozen sources are equal when name, ordinal
    and values match.
    """

    __slots__ = ("name", "ordinal", "frozen_at", "version", "_values")

    def __init__(
        self,
        name: str,
        ordinal: int,
        values: Mapping[str, PropertyValue],
        frozen_at: Optional[datetime] = None,
    ):
        self.name = name
        self.ordinal = ordinal
        self.frozen_at = frozen_at or datetime.now(timezone.utc)
        self.version = uuid.uuid4().hex
        self._values: Mapping[str, PropertyValue] = MappingProxyType(dict(values))

    @classmethod
    def of(
        cls, source: PropertySource, keys: Optional[Iterable[str]] = None
    ) -> "FrozenPropertySource":
        """Freeze ``source``, optionally only the given ``keys``."""
        if isinstance(source, FrozenPropertySource) and keys is None:
            return source
        if keys is None:
            values = source.get_all()
        else:
            values = {}
            for key in keys:
                value = source.get(key)
                if value is not None:
                    values[key] = value
        frozen = {
            key: value.with_metadata(frozen="true")
            for key, value in values.items()
            if value is not None and value.value is not None
        }
        return cls(source.name, source.ordinal, frozen)

    def keys(self) -> List[str]:
        return list(self._values)

    def get(self, key: str) -> Optional[PropertyValue]:
        return self._values.get(key)

    def get_all(self) -> Dict[str, PropertyValue]:
        return dict(self._values)

    def to_dict(self) -> Dict[str, str]:
        return {key: value.value for key, value in self._values.items()}

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, FrozenPropertySource):
            return NotImplemented
        return (
            self.name == other.name
            and self.ordinal == other.ordinal
            and self.to_dict() == other.to_dict()
        )

    def __hash__(self) -> int:
        return hash((self.name, self.ordinal, tuple(sorted(self.to_dict().items()))))

    def __repr__(self) -> str:
        return (
            f"FrozenPropertySource(name={self.name!r}, ordinal={self.ordinal}, "
            f"frozen_at={self.frozen_at.isoformat()}, size={len(self._values)})"
        )
