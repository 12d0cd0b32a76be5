"""Consumer-facing, read-only view over an aggregator."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Hashable, Iterable, Mapping, Optional, Set

from .aggregator import SourceAggregator
from .context import ExecutionContext
from .converters import DEFAULT_DELIMITER, ConversionContext, Converter, ConverterRegistry, default_registry
from .resolver import RESOLVERS_META, ExpressionEvaluator, default_evaluator
from .types import ConfigurationSnapshot, PropertyValue, ProvenanceRecord

logger = logging.getLogger(__name__)


class Configuration:
    """Single logical configuration: aggregate, filter, expand, convert.

    The configuration itself holds no values. Every read goes through the
    aggregator, so changes in the underlying sources show up on the next read.

    Args:
        aggregator: Ordered property sources.
        converters: Registry used by ``get_as``; built-ins if omitted.
        evaluator: Placeholder evaluator; built-ins plus ``config:`` if omitted.
        mask_unresolved: Render unresolvable placeholders as ``?{expr}``
            instead of removing them.
        system_properties: Properties consulted by ``sys:`` and fallback
            lookups when the default evaluator is built.
        base_dir: Base directory for relative ``file:`` expressions.
        expand_placeholders: Set to False for views over values that were
            already expanded.
    """

    def __init__(
        self,
        aggregator: SourceAggregator,
        converters: Optional[ConverterRegistry] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
        mask_unresolved: bool = False,
        system_properties: Optional[Mapping[str, str]] = None,
        base_dir: Optional[Path] = None,
        expand_placeholders: bool = True,
    ):
        self.aggregator = aggregator
        self.converters = converters if converters is not None else default_registry()
        self.evaluator = evaluator if evaluator is not None else default_evaluator(
            config_lookup=self._lookup_reference,
            system_properties=system_properties,
            base_dir=base_dir,
        )
        self.mask_unresolved = mask_unresolved
        self.expand_placeholders = expand_placeholders
        self._resolving = threading.local()

    def _active_keys(self) -> Set[str]:
        active = getattr(self._resolving, "keys", None)
        if active is None:
            active = self._resolving.keys = set()
        return active

    def _lookup_reference(self, key: str) -> Optional[str]:
        """Resolve ``${config:key}``, expanding the referenced value as well."""
        active = self._active_keys()
        if key in active:
            logger.warning("Cyclic config reference to %s ignored", key)
            return None
        value = self.aggregator.get(key)
        if value is None:
            return None
        active.add(key)
        try:
            return self.evaluator.expand(value.value, self.mask_unresolved)
        finally:
            active.discard(key)

    def _evaluate(self, value: Optional[PropertyValue]) -> Optional[PropertyValue]:
        if value is None or not self.expand_placeholders:
            return value
        active = self._active_keys()
        outermost = value.key not in active
        if outermost:
            active.add(value.key)
        try:
            return self.evaluator.evaluate(value, self.mask_unresolved)
        finally:
            if outermost:
                active.discard(value.key)

    def get_value(
        self, key: str, context: Optional[ExecutionContext] = None
    ) -> Optional[PropertyValue]:
        """Return the filtered, expanded PropertyValue including its metadata."""
        return self._evaluate(self.aggregator.get(key, context))

    def get(self, key: str, context: Optional[ExecutionContext] = None) -> Optional[str]:
        value = self.get_value(key, context)
        return value.value if value is not None else None

    def get_or_default(
        self, key: str, default: str, context: Optional[ExecutionContext] = None
    ) -> str:
        value = self.get(key, context)
        return default if value is None else value

    def get_as(
        self,
        key: str,
        target_type: Hashable,
        default: Any = None,
        *,
        element_type: Hashable = str,
        delimiter: str = DEFAULT_DELIMITER,
        converter: Optional[Converter] = None,
        context: Optional[ExecutionContext] = None,
    ) -> Any:
        """Return the value of ``key`` converted to ``target_type``.

        A string ``default`` is converted like a real value; any other
        default is returned as is when the key is missing.

        Raises:
            ConversionError: The value exists but cannot be converted.
        """
        raw = self.get(key, context)
        if raw is None and default is not None and not isinstance(default, str):
            return default
        conversion = ConversionContext(
            key=key,
            target_type=target_type,
            element_type=element_type,
            delimiter=delimiter,
            default=default if isinstance(default, str) else None,
            registry=self.converters,
        )
        return self.converters.convert(raw, target_type, conversion, converter)

    def get_property_values(
        self, context: Optional[ExecutionContext] = None
    ) -> Dict[str, PropertyValue]:
        values = self.aggregator.get_all(context)
        return {key: self._evaluate(value) for key, value in values.items()}

    def get_properties(self, context: Optional[ExecutionContext] = None) -> Dict[str, str]:
        """Return every visible key with its expanded value, ordered by key."""
        values = self.get_property_values(context)
        return {key: values[key].value for key in sorted(values)}

    def get_snapshot(
        self,
        keys: Optional[Iterable[str]] = None,
        context: Optional[ExecutionContext] = None,
    ) -> ConfigurationSnapshot:
        """Materialise the current view (optionally restricted to ``keys``)."""
        properties = self.get_properties(context)
        if keys is not None:
            wanted = set(keys)
            properties = {k: v for k, v in properties.items() if k in wanted}
        return ConfigurationSnapshot(properties, timestamp=datetime.now(timezone.utc))

    def provenance(self, key: str) -> Optional[ProvenanceRecord]:
        value = self.get_value(key)
        if value is None:
            return None
        resolvers = value.get_meta(RESOLVERS_META)
        return ProvenanceRecord(
            key=key,
            source_name=value.get_meta("source"),
            resolvers=tuple(r.strip() for r in resolvers.split(",")) if resolvers else (),
            timestamp_loaded=datetime.now(timezone.utc),
        )

    def section(
        self,
        area: str,
        strip_keys: bool = False,
        context: Optional[ExecutionContext] = None,
    ) -> Dict[str, str]:
        """Return the keys below ``area`` (``area.``-prefixed)."""
        prefix = area.rstrip(".") + "."
        result: Dict[str, str] = {}
        for key, value in self.get_properties(context).items():
            if key.startswith(prefix):
                result[key[len(prefix):] if strip_keys else key] = value
        return result

    def sections(
        self, transitive: bool = False, context: Optional[ExecutionContext] = None
    ) -> Set[str]:
        """Return the section names present in the configuration.

        With ``transitive`` every ancestor section is included as well.
        """
        names: Set[str] = set()
        for key in self.get_properties(context):
            parts = key.split(".")[:-1]
            if not parts:
                continue
            if transitive:
                for i in range(1, len(parts) + 1):
                    names.add(".".join(parts[:i]))
            else:
                names.add(".".join(parts))
        return names

    def __repr__(self) -> str:
        names = [s.name for s in self.aggregator.sources]
        return f"Configuration(sources={names})"
