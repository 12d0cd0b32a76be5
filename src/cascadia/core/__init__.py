from .aggregator import SourceAggregator
from .configuration import Configuration
from .context import ExecutionContext
from .converters import ConverterRegistry
from .detector import ChangeDetector
from .environment import Environment
from .filters import FilterChain
from .resolver import ExpressionEvaluator
from .source import PropertySource, PropertySourceProvider

__all__ = [
    "SourceAggregator",
    "Configuration",
    "ExecutionContext",
    "ConverterRegistry",
    "ChangeDetector",
    "Environment",
    "FilterChain",
    "ExpressionEvaluator",
    "PropertySource",
    "PropertySourceProvider",
]
