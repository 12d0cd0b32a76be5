"""Execution contexts carrying per-caller filter configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .filters import PropertyFilter


class FilterScope(str, Enum):
    """Read-site scope a filter is invoked in."""

    SINGLE = "single"
    BULK = "bulk"


@dataclass
class ExecutionContext:
    """Filter configuration owned by one unit of work (request, task, job).

    A context is never shared between concurrent callers. Pass it explicitly
    to reads; use it as a context manager to have it reset when the unit of
    work ends::

        with ExecutionContext(metadata_filtered=False) as ctx:
            config.get_properties(ctx)

    Attributes:
        metadata_filtered: Hide metadata-prefixed keys from bulk reads.
        single_value_filters: Extra filters applied to single-key reads.
        bulk_filters: Extra filters applied to bulk reads.
    """

    metadata_filtered: bool = True
    single_value_filters: List["PropertyFilter"] = field(default_factory=list)
    bulk_filters: List["PropertyFilter"] = field(default_factory=list)

    def add_single_value_filter(self, *filters: "PropertyFilter") -> "ExecutionContext":
        for flt in filters:
            if flt not in self.single_value_filters:
                self.single_value_filters.append(flt)
        return self

    def add_bulk_filter(self, *filters: "PropertyFilter") -> "ExecutionContext":
        for flt in filters:
            if flt not in self.bulk_filters:
                self.bulk_filters.append(flt)
        return self

    def filters_for(self, scope: FilterScope) -> List["PropertyFilter"]:
        if scope is FilterScope.SINGLE:
            return list(self.single_value_filters)
        return list(self.bulk_filters)

    def reset(self) -> None:
        """Restore defaults: metadata hidden, no extra filters."""
        self.single_value_filters.clear()
        self.bulk_filters.clear()
        self.metadata_filtered = True

    def __enter__(self) -> "ExecutionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.reset()


@dataclass(frozen=True)
class FilterContext:
    """What a filter knows about the read it participates in."""

    key: str
    scope: FilterScope
    execution: ExecutionContext

    @property
    def is_single_scoped(self) -> bool:
        return self.scope is FilterScope.SINGLE


def resolve_context(context: Optional[ExecutionContext]) -> ExecutionContext:
    # Unconfigured reads get a fresh default context, never a shared one.
    return context if context is not None else ExecutionContext()
