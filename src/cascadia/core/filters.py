"""Scoped filter chain applied to values as they are read."""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, Optional, Pattern, Protocol, Tuple, Union

from .context import ExecutionContext, FilterContext, FilterScope, resolve_context
from .types import PropertyValue, is_metadata_key


class PropertyFilter(Protocol):
    """A value-rewriting or suppressing step in the filter chain.

    Returning None removes the value from the result.
    """

    def __call__(
        self, value: PropertyValue, context: FilterContext
    ) -> Optional[PropertyValue]:
        ...


def _compile(pattern: Union[str, Pattern[str]]) -> Pattern[str]:
    return re.compile(pattern) if isinstance(pattern, str) else pattern


class MetadataFilter:
    """Hide metadata-prefixed keys from bulk reads.

    Single-key reads always see metadata entries.
    """

    def __call__(
        self, value: PropertyValue, context: FilterContext
    ) -> Optional[PropertyValue]:
        if context.is_single_scoped:
            return value
        if context.execution.metadata_filtered and is_metadata_key(context.key):
            return None
        return value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, MetadataFilter)

    def __hash__(self) -> int:
        return hash(MetadataFilter)


class KeyRegexFilter:
    """Keep only keys matching a regular expression (``re.search`` semantics)."""

    def __init__(self, pattern: Union[str, Pattern[str]]):
        self.pattern = _compile(pattern)

    def __call__(
        self, value: PropertyValue, context: FilterContext
    ) -> Optional[PropertyValue]:
        if self.pattern.search(context.key):
            return value
        return None


class MaskingFilter:
    """Replace the values of matching keys with a fixed mask.

    Args:
        pattern: Keys to mask, e.g. ``r"(password|secret|token)"``.
        mask: Replacement text.
        scopes: Scopes the mask applies in; both by default.
    """

    def __init__(
        self,
        pattern: Union[str, Pattern[str]],
        mask: str = "*****",
        scopes: Iterable[FilterScope] = (FilterScope.SINGLE, FilterScope.BULK),
    ):
        self.pattern = _compile(pattern)
        self.mask = mask
        self.scopes = frozenset(scopes)

    def __call__(
        self, value: PropertyValue, context: FilterContext
    ) -> Optional[PropertyValue]:
        if context.scope in self.scopes and self.pattern.search(context.key):
            return value.with_value(self.mask).with_metadata(masked="true")
        return value


class FilterChain:
    """Ordered filters shared by all readers, plus per-context filters.

    Shared filters run first in registration order, then the filters the
    caller's ExecutionContext holds for the current scope. The output of one
    filter feeds the next; a None result stops the chain for that key.
    """

    def __init__(self, filters: Optional[Iterable[PropertyFilter]] = None):
        self._lock = threading.RLock()
        initial = [MetadataFilter()] if filters is None else list(filters)
        self._filters: Tuple[PropertyFilter, ...] = tuple(initial)

    @property
    def filters(self) -> Tuple[PropertyFilter, ...]:
        return self._filters

    def add_filters(self, *filters: PropertyFilter) -> None:
        with self._lock:
            current = list(self._filters)
            for flt in filters:
                if flt not in current:
                    current.append(flt)
            self._filters = tuple(current)

    def remove_filters(self, *filters: PropertyFilter) -> None:
        with self._lock:
            self._filters = tuple(f for f in self._filters if f not in filters)

    def _run(
        self, value: PropertyValue, scope: FilterScope, execution: ExecutionContext
    ) -> Optional[PropertyValue]:
        ctx = FilterContext(key=value.key, scope=scope, execution=execution)
        current: Optional[PropertyValue] = value
        for flt in self._filters + tuple(execution.filters_for(scope)):
            current = flt(current, ctx)
            if current is None:
                return None
        return current

    def filter_value(
        self, value: Optional[PropertyValue], context: Optional[ExecutionContext] = None
    ) -> Optional[PropertyValue]:
        """Filter a value fetched by its literal key (single-value scope)."""
        if value is None:
            return None
        return self._run(value, FilterScope.SINGLE, resolve_context(context))

    def filter_values(
        self,
        values: Dict[str, PropertyValue],
        context: Optional[ExecutionContext] = None,
    ) -> Dict[str, PropertyValue]:
        """Filter a full key/value map (bulk scope)."""
        execution = resolve_context(context)
        result: Dict[str, PropertyValue] = {}
        for key, value in values.items():
            filtered = self._run(value, FilterScope.BULK, execution)
            if filtered is not None:
                result[key] = filtered
        return result
