"""Cascadia - runtime configuration resolution.

Aggregate values from prioritised property sources, filter them per caller,
expand ${...} placeholders, convert them to typed values and get notified
when the merged view changes.
"""

from .core.aggregator import SourceAggregator
from .core.changes import ChangeEvent, ChangeSet, ChangeSetBuilder, ChangeType
from .core.configuration import Configuration
from .core.context import ExecutionContext, FilterScope
from .core.converters import ConversionContext, ConverterRegistry
from .core.detector import ChangeDetector, DetectorState
from .core.environment import Environment
from .core.errors import (
    CascadiaError,
    ConversionError,
    ConfigurationStateError,
    UnknownSourceError,
)
from .core.filters import FilterChain, MaskingFilter
from .core.resolver import ExpressionEvaluator
from .core.source import PropertySource, PropertySourceProvider
from .core.types import ConfigurationSnapshot, PropertyValue
from .sources.memory import EnvironmentPropertySource, MapPropertySource

__all__ = [
    "SourceAggregator",
    "ChangeEvent",
    "ChangeSet",
    "ChangeSetBuilder",
    "ChangeType",
    "Configuration",
    "ExecutionContext",
    "FilterScope",
    "ConversionContext",
    "ConverterRegistry",
    "ChangeDetector",
    "DetectorState",
    "Environment",
    "CascadiaError",
    "ConversionError",
    "ConfigurationStateError",
    "UnknownSourceError",
    "FilterChain",
    "MaskingFilter",
    "ExpressionEvaluator",
    "PropertySource",
    "PropertySourceProvider",
    "ConfigurationSnapshot",
    "PropertyValue",
    "EnvironmentPropertySource",
    "MapPropertySource",
]
