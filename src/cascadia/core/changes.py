"""Change events and change-sets computed between two configuration states."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .errors import BuilderStateError
from .source import PropertySource


class ChangeType(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


@dataclass(frozen=True)
class ChangeEvent:
    """A single key's transition between two configuration states.

    Attributes:
        key: Configuration key.
        old_value: Previous value (None for additions).
        new_value: Current value (None for removals).
    """

    key: str
    old_value: Optional[str]
    new_value: Optional[str]

    @property
    def change_type(self) -> ChangeType:
        if self.old_value is None:
            return ChangeType.ADDED
        if self.new_value is None:
            return ChangeType.REMOVED
        return ChangeType.UPDATED


def compare(previous: Mapping[str, str], current: Mapping[str, str]) -> List[ChangeEvent]:
    """Key-by-key diff of two states, ordered by key."""
    events: Dict[str, ChangeEvent] = {}
    for key, old_value in previous.items():
        new_value = current.get(key)
        if new_value is old_value or new_value == old_value:
            continue
        events[key] = ChangeEvent(key=key, old_value=old_value, new_value=new_value)
    for key, new_value in current.items():
        if key not in previous:
            events[key] = ChangeEvent(key=key, old_value=None, new_value=new_value)
    return [events[k] for k in sorted(events)]


def source_values(source: PropertySource) -> Dict[str, str]:
    """Current non-null values of a single property source."""
    return {
        key: value.value
        for key, value in source.get_all().items()
        if value is not None and value.value is not None
    }


State = Union[Mapping[str, str], PropertySource]


def _as_values(state: State) -> Mapping[str, str]:
    if isinstance(state, PropertySource):
        return source_values(state)
    return state


class ChangeSet:
    """Immutable, key-ordered collection of change events.

    ``source`` names the property source the changes belong to; it is None
    for change-sets of a whole configuration.
    """

    __slots__ = ("_events", "_version", "_timestamp", "_source")

    def __init__(
        self,
        events: Mapping[str, ChangeEvent],
        version: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        source: Optional[str] = None,
    ):
        ordered = {k: events[k] for k in sorted(events)}
        self._events: Mapping[str, ChangeEvent] = MappingProxyType(ordered)
        self._version = version
        self._timestamp = timestamp
        self._source = source

    @property
    def events(self) -> Tuple[ChangeEvent, ...]:
        return tuple(self._events.values())

    @property
    def version(self) -> Optional[str]:
        return self._version

    @property
    def timestamp(self) -> Optional[datetime]:
        return self._timestamp

    @property
    def source(self) -> Optional[str]:
        return self._source

    def get(self, key: str) -> Optional[ChangeEvent]:
        return self._events.get(key)

    def keys(self) -> List[str]:
        return list(self._events)

    def _of_type(self, change_type: ChangeType) -> List[ChangeEvent]:
        return [e for e in self._events.values() if e.change_type is change_type]

    @property
    def added(self) -> List[ChangeEvent]:
        return self._of_type(ChangeType.ADDED)

    @property
    def updated(self) -> List[ChangeEvent]:
        return self._of_type(ChangeType.UPDATED)

    @property
    def removed(self) -> List[ChangeEvent]:
        return self._of_type(ChangeType.REMOVED)

    def is_empty(self) -> bool:
        return not self._events

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ChangeEvent]:
        return iter(self._events.values())

    def __contains__(self, key: object) -> bool:
        return key in self._events

    def __repr__(self) -> str:
        changes = ", ".join(
            f"{e.change_type.value}:{e.key}" for e in self._events.values()
        )
        prefix = f"source={self._source!r}, " if self._source is not None else ""
        return f"ChangeSet({prefix}version={self._version!r}, changes=[{changes}])"


class ChangeSetBuilder:
    """Accumulates changes relative to a base state, then builds a ChangeSet.

    The base is either a mapping (usually a ConfigurationSnapshot) or a single
    property source, typically a FrozenPropertySource. A builder can be built
    exactly once; any use afterwards raises BuilderStateError.
    """

    def __init__(self, base: State, source: Optional[str] = None):
        if source is None and isinstance(base, PropertySource):
            source = base.name
        self._base = dict(_as_values(base))
        self._source = source
        self._delta: Dict[str, ChangeEvent] = {}
        self._version: Optional[str] = getattr(base, "version", None)
        self._timestamp: Optional[datetime] = None
        self._built = False

    @classmethod
    def of(cls, base: Optional[State] = None) -> "ChangeSetBuilder":
        return cls(base if base is not None else {})

    def _check_state(self) -> None:
        if self._built:
            raise BuilderStateError("Change set has already been built.")

    def set_version(self, version: str) -> "ChangeSetBuilder":
        self._check_state()
        self._version = version
        return self

    def set_timestamp(self, timestamp: datetime) -> "ChangeSetBuilder":
        self._check_state()
        self._timestamp = timestamp
        return self

    def add_changes(self, new_state: State) -> "ChangeSetBuilder":
        """Record every difference between the base state and ``new_state``."""
        self._check_state()
        for event in compare(self._base, _as_values(new_state)):
            self._delta[event.key] = event
        if self._timestamp is None:
            self._timestamp = getattr(new_state, "timestamp", None) or getattr(
                new_state, "frozen_at", None
            )
        new_version = getattr(new_state, "version", None)
        if new_version is not None:
            self._version = new_version
        return self

    def add_change(self, key: str, value: str) -> "ChangeSetBuilder":
        self._check_state()
        old_value = self._base.get(key)
        if old_value == value:
            self._delta.pop(key, None)
        else:
            self._delta[key] = ChangeEvent(key=key, old_value=old_value, new_value=value)
        return self

    def remove_keys(self, *keys: str) -> "ChangeSetBuilder":
        """Record the removal of ``keys``; keys absent from the base are ignored."""
        self._check_state()
        for key in keys:
            old_value = self._base.get(key)
            if old_value is None:
                self._delta.pop(key, None)
                continue
            self._delta[key] = ChangeEvent(key=key, old_value=old_value, new_value=None)
        return self

    def put_all(self, changes: Mapping[str, str]) -> "ChangeSetBuilder":
        for key, value in changes.items():
            self.add_change(key, value)
        return self

    def remove_all_keys(self) -> "ChangeSetBuilder":
        self._check_state()
        self._delta = {
            key: ChangeEvent(key=key, old_value=value, new_value=None)
            for key, value in self._base.items()
        }
        return self

    def get(self, key: str) -> Optional[str]:
        """Return the pending new value for ``key``, if any."""
        event = self._delta.get(key)
        return event.new_value if event is not None else None

    def is_empty(self) -> bool:
        return not self._delta

    def reset(self) -> None:
        self._check_state()
        self._delta.clear()

    def build(self) -> ChangeSet:
        self._check_state()
        self._built = True
        return ChangeSet(
            self._delta,
            version=self._version,
            timestamp=self._timestamp or datetime.now(timezone.utc),
            source=self._source,
        )
