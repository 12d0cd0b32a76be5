"""Exception hierarchy for the configuration engine.

Absence of a key is never an error and unresolvable placeholders degrade
gracefully; the exceptions below are reserved for structural misuse and for
values that exist but cannot be materialised as the requested type.
"""

from __future__ import annotations

from typing import Any, Optional


class CascadiaError(Exception):
    """Base class for all errors raised by cascadia."""


class ConversionError(CascadiaError, ValueError):
    """A non-null raw value could not be converted to the requested type."""

    def __init__(self, key: Optional[str], target_type: Any, raw: Optional[str] = None):
        self.key = key
        self.target_type = target_type
        self.raw = raw
        type_name = getattr(target_type, "__name__", repr(target_type))
        super().__init__(
            f"Value {raw!r} of key {key!r} is not convertible to {type_name}"
        )


class ConfigurationStateError(CascadiaError, RuntimeError):
    """An object was used in a state that does not allow the operation."""


class BuilderStateError(ConfigurationStateError):
    """A builder was modified or reused after ``build()``."""


class InvalidStateError(ConfigurationStateError):
    """A state machine was asked for a transition it does not support."""


class UnknownSourceError(CascadiaError, LookupError):
    """A property source is not registered with the aggregator."""

    def __init__(self, source: Any):
        self.source = source
        name = getattr(source, "name", source)
        super().__init__(f"No such property source: {name}")


class DuplicateSourceError(CascadiaError, ValueError):
    """Another property source with the same name is already registered."""


class UnsupportedSourceError(CascadiaError, ValueError):
    """No property source type can be created for a path or URI."""
