"""Aggregation of ordered property sources into one key space."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from .context import ExecutionContext
from .errors import DuplicateSourceError, UnknownSourceError
from .filters import FilterChain
from .source import PropertySource, PropertySourceProvider, source_sort_key
from .types import PropertyValue

logger = logging.getLogger(__name__)


def _index_of(sources: Tuple[PropertySource, ...], source: PropertySource) -> int:
    for i, candidate in enumerate(sources):
        if candidate is source:
            return i
    return -1


class SourceAggregator:
    """Holds property sources in priority order and answers queries.

    The highest-priority source comes first. Writers hold a lock and replace
    the whole source tuple; readers only dereference the current tuple, so a
    reader always observes a complete ordering.

    Args:
        sources: Initial sources.
        filter_chain: Filter chain for reads; a default chain hides metadata
            keys from bulk reads.
        providers: Source providers loaded immediately.
        cache_merged: Memoise the raw merged view until the next mutation or
            ``invalidate()``.
    """

    def __init__(
        self,
        sources: Optional[Iterable[PropertySource]] = None,
        filter_chain: Optional[FilterChain] = None,
        providers: Optional[Iterable[PropertySourceProvider]] = None,
        cache_merged: bool = False,
    ):
        self._lock = threading.RLock()
        self._sources: Tuple[PropertySource, ...] = ()
        self._providers: Tuple[PropertySourceProvider, ...] = ()
        self._generation = 0
        self._merged_cache: Optional[Tuple[int, Dict[str, PropertyValue]]] = None
        self.cache_merged = cache_merged
        self.filter_chain = filter_chain if filter_chain is not None else FilterChain()
        if sources:
            self.add_sources(*sources)
        if providers:
            self.add_providers(*providers)

    # ---- source list ----
    @property
    def sources(self) -> Tuple[PropertySource, ...]:
        return self._sources

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source: object) -> bool:
        return any(s is source for s in self._sources)

    def get_source(self, name: str) -> Optional[PropertySource]:
        for source in self._sources:
            if source.name == name:
                return source
        return None

    def _publish(self, sources: List[PropertySource]) -> None:
        # caller holds the lock
        self._sources = tuple(sources)
        self._generation += 1
        self._merged_cache = None

    def add_sources(self, *sources: PropertySource) -> None:
        """Register sources not already present and re-sort by ordinal.

        Raises:
            DuplicateSourceError: A different source with the same name is
                already registered.
        """
        with self._lock:
            updated = list(self._sources)
            for source in sources:
                if _index_of(tuple(updated), source) >= 0:
                    continue
                if any(s.name == source.name for s in updated):
                    raise DuplicateSourceError(
                        f"A property source named {source.name!r} is already registered"
                    )
                updated.append(source)
            updated.sort(key=source_sort_key)
            self._publish(updated)
        logger.debug("Registered property sources: %s", [s.name for s in self._sources])

    def remove_sources(self, *sources: PropertySource) -> None:
        with self._lock:
            updated = [s for s in self._sources if not any(s is r for r in sources)]
            if len(updated) != len(self._sources):
                self._publish(updated)

    def add_providers(self, *providers: PropertySourceProvider) -> None:
        """Register source providers and load the sources they expose."""
        with self._lock:
            known = list(self._providers)
            fresh = [p for p in providers if not any(p is k for k in known)]
            self._providers = tuple(known + fresh)
        self._load_from(fresh)

    def load_providers(self) -> None:
        """Ask every registered provider again for its sources."""
        self._load_from(self._providers)

    def _load_from(self, providers: Iterable[PropertySourceProvider]) -> None:
        for provider in providers:
            try:
                discovered = list(provider.get_property_sources())
            except Exception:
                logger.exception("Failed to load property sources from provider: %r", provider)
                continue
            try:
                self.add_sources(*discovered)
            except DuplicateSourceError as e:
                logger.error("Skipping sources of provider %r: %s", provider, e)

    # ---- reordering ----
    def _move(self, source: PropertySource, target_of) -> None:
        with self._lock:
            current = list(self._sources)
            index = _index_of(self._sources, source)
            if index < 0:
                raise UnknownSourceError(source)
            target = max(0, min(len(current) - 1, target_of(index, len(current))))
            if target == index:
                return
            current.pop(index)
            current.insert(target, source)
            self._publish(current)

    def increase_priority(self, source: PropertySource) -> None:
        """Move ``source`` one slot towards the highest priority."""
        self._move(source, lambda index, size: index - 1)

    def decrease_priority(self, source: PropertySource) -> None:
        """Move ``source`` one slot towards the lowest priority."""
        self._move(source, lambda index, size: index + 1)

    def highest_priority(self, source: PropertySource) -> None:
        self._move(source, lambda index, size: 0)

    def lowest_priority(self, source: PropertySource) -> None:
        self._move(source, lambda index, size: size - 1)

    # ---- queries ----
    def invalidate(self) -> None:
        """Drop the memoised merged view, e.g. after sources changed content."""
        with self._lock:
            self._generation += 1
            self._merged_cache = None

    def get(self, key: str, context: Optional[ExecutionContext] = None) -> Optional[PropertyValue]:
        """Return the highest-priority value for ``key`` (single-value scope)."""
        for source in self._sources:
            value = source.get(key)
            if value is not None and value.value is not None:
                return self.filter_chain.filter_value(value, context)
        return None

    def merged(self) -> Dict[str, PropertyValue]:
        """Unfiltered merge of all sources, highest priority winning."""
        cached = self._merged_cache
        generation = self._generation
        if self.cache_merged and cached is not None and cached[0] == generation:
            return dict(cached[1])

        sources = self._sources
        merged: Dict[str, PropertyValue] = {}
        for source in sources:
            for key, value in source.get_all().items():
                if value is None or value.value is None or key in merged:
                    continue
                merged[key] = value

        if self.cache_merged:
            with self._lock:
                if self._generation == generation:
                    self._merged_cache = (generation, merged)
        return dict(merged)

    def get_all(self, context: Optional[ExecutionContext] = None) -> Dict[str, PropertyValue]:
        """Return every key, highest priority winning, filtered in bulk scope."""
        return self.filter_chain.filter_values(self.merged(), context)
