"""Unit tests for the SourceAggregator."""

from __future__ import annotations

import threading
from typing import Dict, Optional

import pytest

from cascadia.core.aggregator import SourceAggregator
from cascadia.core.context import ExecutionContext
from cascadia.core.errors import DuplicateSourceError, UnknownSourceError
from cascadia.core.types import PropertyValue
from cascadia.sources.memory import MapPropertySource


class FailingProvider:
    """Provider whose discovery always fails."""

    def get_property_sources(self):
        raise RuntimeError("backend unavailable")


class StaticProvider:
    """Provider returning a fixed list of sources."""

    def __init__(self, *sources):
        self.sources = list(sources)
        self.calls = 0

    def get_property_sources(self):
        self.calls += 1
        return list(self.sources)


class CountingSource:
    """Source counting get_all calls."""

    def __init__(self, name: str, data: Dict[str, str], ordinal: int = 0):
        self.name = name
        self.ordinal = ordinal
        self.data = data
        self.get_all_calls = 0

    def get(self, key: str) -> Optional[PropertyValue]:
        raw = self.data.get(key)
        return PropertyValue.of(key, raw, self.name) if raw is not None else None

    def get_all(self) -> Dict[str, PropertyValue]:
        self.get_all_calls += 1
        return {k: PropertyValue.of(k, v, self.name) for k, v in self.data.items()}


class TestOrdering:
    """Test suite for source ordering."""

    def test_sorted_by_descending_ordinal(self):
        """Test that the highest ordinal comes first regardless of registration order."""
        low = MapPropertySource("low", {}, ordinal=10)
        high = MapPropertySource("high", {}, ordinal=100)
        mid = MapPropertySource("mid", {}, ordinal=50)
        agg = SourceAggregator([low, high, mid])
        assert [s.name for s in agg.sources] == ["high", "mid", "low"]

    def test_tie_broken_by_name(self):
        """Test that equal ordinals are ordered by name."""
        b = MapPropertySource("b", {}, ordinal=1)
        a = MapPropertySource("a", {}, ordinal=1)
        c = MapPropertySource("c", {}, ordinal=1)
        first = SourceAggregator([b, c, a])
        second = SourceAggregator([c, a, b])
        assert [s.name for s in first.sources] == ["a", "b", "c"]
        assert [s.name for s in second.sources] == ["a", "b", "c"]

    def test_add_same_source_twice(self):
        """Test that adding an already registered source is ignored."""
        src = MapPropertySource("s", {}, ordinal=1)
        agg = SourceAggregator([src])
        agg.add_sources(src)
        assert len(agg) == 1

    def test_add_duplicate_name_rejected(self):
        """Test that another source with the same name is rejected."""
        agg = SourceAggregator([MapPropertySource("s", {})])
        with pytest.raises(DuplicateSourceError):
            agg.add_sources(MapPropertySource("s", {}))

    def test_remove_sources(self):
        """Test removal by identity, ignoring unknown sources."""
        a = MapPropertySource("a", {"k": "a"}, ordinal=2)
        b = MapPropertySource("b", {"k": "b"}, ordinal=1)
        agg = SourceAggregator([a, b])
        agg.remove_sources(a, MapPropertySource("unknown", {}))
        assert agg.sources == (b,)
        assert agg.get("k").value == "b"

    def test_mutation_bumps_generation(self):
        """Test that list mutations invalidate the read generation."""
        agg = SourceAggregator()
        before = agg.generation
        agg.add_sources(MapPropertySource("a", {}))
        assert agg.generation > before


class TestQueries:
    """Test suite for point and bulk queries."""

    def test_get_highest_ordinal_wins(self):
        """Test that get returns the value of the highest-ordinal source."""
        sources = [
            MapPropertySource("s1", {"key": "one"}, ordinal=1),
            MapPropertySource("s3", {"key": "three"}, ordinal=3),
            MapPropertySource("s2", {"key": "two"}, ordinal=2),
        ]
        for order in (sources, list(reversed(sources))):
            agg = SourceAggregator(order)
            assert agg.get("key").value == "three"
            assert agg.get("key").get_meta("source") == "s3"

    def test_get_falls_through_to_lower_sources(self):
        """Test that keys missing in high sources come from lower ones."""
        agg = SourceAggregator([
            MapPropertySource("high", {"a": "1"}, ordinal=10),
            MapPropertySource("low", {"b": "2"}, ordinal=1),
        ])
        assert agg.get("b").value == "2"

    def test_get_missing_returns_none(self):
        """Test that a missing key is not an error."""
        agg = SourceAggregator([MapPropertySource("s", {"a": "1"})])
        assert agg.get("missing") is None

    def test_get_all_merges_with_priority(self):
        """Test the merged bulk view."""
        agg = SourceAggregator([
            MapPropertySource("low", {"a": "low", "b": "low"}, ordinal=1),
            MapPropertySource("high", {"a": "high", "c": "high"}, ordinal=5),
        ])
        values = {k: v.value for k, v in agg.get_all().items()}
        assert values == {"a": "high", "b": "low", "c": "high"}

    def test_metadata_hidden_in_bulk_visible_in_single(self):
        """Test metadata-prefixed keys visibility per scope."""
        agg = SourceAggregator([
            MapPropertySource("s", {"_ttl.cache": "30", "_meta": "x", "app.name": "demo"}),
        ])
        assert set(agg.get_all()) == {"app.name"}
        assert agg.get("_ttl.cache").value == "30"
        assert agg.get("_meta").value == "x"

    def test_metadata_visible_when_context_disables_filtering(self):
        """Test that an execution context can show metadata in bulk reads."""
        agg = SourceAggregator([MapPropertySource("s", {"_meta": "x", "a": "1"})])
        ctx = ExecutionContext(metadata_filtered=False)
        assert set(agg.get_all(ctx)) == {"_meta", "a"}
        assert set(agg.get_all()) == {"a"}

    def test_merged_cache(self):
        """Test memoisation of the merged view per generation."""
        src = CountingSource("s", {"a": "1"})
        agg = SourceAggregator([src], cache_merged=True)
        agg.get_all()
        agg.get_all()
        assert src.get_all_calls == 1
        agg.invalidate()
        agg.get_all()
        assert src.get_all_calls == 2

    def test_no_cache_by_default(self):
        """Test that content changes are visible without invalidation by default."""
        src = MapPropertySource("s", {"a": "1"})
        agg = SourceAggregator([src])
        assert agg.get_all()["a"].value == "1"
        src.set("a", "2")
        assert agg.get_all()["a"].value == "2"


class TestReordering:
    """Test suite for explicit priority changes."""

    def _sources(self):
        a = MapPropertySource("a", {"k": "a"}, ordinal=3)
        b = MapPropertySource("b", {"k": "b"}, ordinal=2)
        c = MapPropertySource("c", {"k": "c"}, ordinal=1)
        return a, b, c

    def test_increase_priority(self):
        """Test moving a source one slot up."""
        a, b, c = self._sources()
        agg = SourceAggregator([a, b, c])
        agg.increase_priority(c)
        assert agg.sources == (a, c, b)

    def test_decrease_priority(self):
        """Test moving a source one slot down."""
        a, b, c = self._sources()
        agg = SourceAggregator([a, b, c])
        agg.decrease_priority(a)
        assert agg.sources == (b, a, c)
        assert agg.get("k").value == "b"

    def test_highest_priority(self):
        """Test moving a source to the top."""
        a, b, c = self._sources()
        agg = SourceAggregator([a, b, c])
        agg.highest_priority(c)
        assert agg.sources == (c, a, b)
        assert agg.get("k").value == "c"

    def test_lowest_priority(self):
        """Test moving a source to the bottom."""
        a, b, c = self._sources()
        agg = SourceAggregator([a, b, c])
        agg.lowest_priority(a)
        assert agg.sources == (b, c, a)

    def test_highest_priority_noop_at_top(self):
        """Test that promoting the top source changes nothing."""
        a, b, c = self._sources()
        agg = SourceAggregator([a, b, c])
        generation = agg.generation
        agg.highest_priority(a)
        agg.increase_priority(a)
        assert agg.sources == (a, b, c)
        assert agg.generation == generation

    def test_lowest_priority_noop_at_bottom(self):
        """Test that demoting the bottom source changes nothing."""
        a, b, c = self._sources()
        agg = SourceAggregator([a, b, c])
        agg.lowest_priority(c)
        agg.decrease_priority(c)
        assert agg.sources == (a, b, c)

    @pytest.mark.parametrize(
        "operation",
        ["increase_priority", "decrease_priority", "highest_priority", "lowest_priority"],
    )
    def test_unknown_source(self, operation):
        """Test that reordering an unregistered source fails loudly."""
        agg = SourceAggregator([MapPropertySource("a", {})])
        with pytest.raises(UnknownSourceError, match="ghost"):
            getattr(agg, operation)(MapPropertySource("ghost", {}))


class TestProviders:
    """Test suite for provider-based discovery."""

    def test_provider_sources_are_added(self):
        """Test that provider sources are registered and sorted."""
        provider = StaticProvider(
            MapPropertySource("p1", {"a": "1"}, ordinal=1),
            MapPropertySource("p2", {"a": "2"}, ordinal=2),
        )
        agg = SourceAggregator(providers=[provider])
        assert [s.name for s in agg.sources] == ["p2", "p1"]
        assert agg.get("a").value == "2"

    def test_failing_provider_is_skipped(self, caplog):
        """Test that one failing provider does not block the others."""
        good = StaticProvider(MapPropertySource("good", {"a": "1"}))
        agg = SourceAggregator(providers=[FailingProvider(), good])
        assert agg.get("a").value == "1"
        assert "Failed to load property sources" in caplog.text

    def test_load_providers_again(self):
        """Test re-running discovery picks up new sources."""
        provider = StaticProvider(MapPropertySource("first", {}))
        agg = SourceAggregator(providers=[provider])
        provider.sources.append(MapPropertySource("second", {}))
        agg.load_providers()
        assert {s.name for s in agg.sources} == {"first", "second"}
        assert provider.calls == 2


class TestConcurrency:
    """Test suite for concurrent readers and writers."""

    def test_readers_see_complete_lists(self):
        """Test that readers never observe a partially updated list."""
        base = [MapPropertySource(f"s{i}", {"k": str(i)}, ordinal=i) for i in range(5)]
        agg = SourceAggregator(base)
        errors = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                snapshot = agg.sources
                if len(snapshot) not in (5, 6):
                    errors.append(len(snapshot))
                if agg.get("k") is None:
                    errors.append("missing")

        def writer():
            extra = MapPropertySource("extra", {"k": "x"}, ordinal=100)
            for _ in range(200):
                agg.add_sources(extra)
                agg.lowest_priority(extra)
                agg.remove_sources(extra)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        writer()
        stop.set()
        for t in threads:
            t.join()
        assert errors == []
