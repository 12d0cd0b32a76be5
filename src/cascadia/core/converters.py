"""Typed conversion of raw configuration text."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from .errors import ConversionError

logger = logging.getLogger(__name__)

DEFAULT_DELIMITER = ","

_TRUE_VALUES = frozenset({"true", "yes", "y", "on", "1"})
_FALSE_VALUES = frozenset({"false", "no", "n", "off", "0"})
_DURATION_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(ms|s|m|h|d)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    "ms": "milliseconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


@dataclass(frozen=True)
class ConversionContext:
    """Information available to a converter besides the raw text.

    Attributes:
        key: Configuration key the value was read from.
        target_type: Requested type descriptor.
        element_type: Element type for collection targets.
        delimiter: Separator for collection targets.
        default: Raw default used when no value exists.
        registry: Registry performing the conversion, for element lookups.
    """

    key: Optional[str] = None
    target_type: Any = None
    element_type: Any = str
    delimiter: str = DEFAULT_DELIMITER
    default: Optional[str] = None
    registry: Optional["ConverterRegistry"] = None


Converter = Callable[[str, ConversionContext], Optional[Any]]


def split_escaped(raw: str, delimiter: str = DEFAULT_DELIMITER) -> List[str]:
    """Split on ``delimiter`` unless it is preceded by a backslash.

    Items are stripped; an empty input yields an empty list.
    """
    if not raw.strip():
        return []
    items: List[str] = []
    current: List[str] = []
    i = 0
    while i < len(raw):
        if raw[i] == "\\" and raw.startswith(delimiter, i + 1):
            current.append(delimiter)
            i += 1 + len(delimiter)
            continue
        if raw.startswith(delimiter, i):
            items.append("".join(current).strip())
            current = []
            i += len(delimiter)
            continue
        current.append(raw[i])
        i += 1
    items.append("".join(current).strip())
    return items


def convert_int(raw: str, context: ConversionContext) -> Optional[int]:
    text = raw.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        # base 0 understands 0x / 0o / 0b prefixes
        return int(text, 0)
    except ValueError:
        return None


def convert_float(raw: str, context: ConversionContext) -> Optional[float]:
    try:
        return float(raw.strip())
    except ValueError:
        return None


def convert_bool(raw: str, context: ConversionContext) -> Optional[bool]:
    text = raw.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None


def convert_decimal(raw: str, context: ConversionContext) -> Optional[Decimal]:
    try:
        return Decimal(raw.strip())
    except InvalidOperation:
        return None


def convert_path(raw: str, context: ConversionContext) -> Optional[Path]:
    text = raw.strip()
    return Path(text).expanduser() if text else None


def convert_datetime(raw: str, context: ConversionContext) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(raw.strip())
    except ValueError:
        return None


def convert_date(raw: str, context: ConversionContext) -> Optional[date]:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        return None


def convert_time(raw: str, context: ConversionContext) -> Optional[time]:
    try:
        return time.fromisoformat(raw.strip())
    except ValueError:
        return None


def convert_timedelta(raw: str, context: ConversionContext) -> Optional[timedelta]:
    match = _DURATION_RE.match(raw)
    if not match:
        return None
    amount, unit = match.groups()
    try:
        return timedelta(**{_DURATION_UNITS[(unit or "s").lower()]: float(amount)})
    except (OverflowError, ValueError):
        return None


def _convert_items(raw: str, context: ConversionContext) -> Optional[List[Any]]:
    registry = context.registry
    items = split_escaped(raw, context.delimiter)
    if context.element_type in (str, None) or registry is None:
        return items
    element_ctx = replace(context, target_type=context.element_type, default=None)
    converted = []
    for item in items:
        # propagates ConversionError for bad elements
        converted.append(registry.convert(item, context.element_type, element_ctx))
    return converted


def convert_list(raw: str, context: ConversionContext) -> Optional[list]:
    return _convert_items(raw, context)


def convert_tuple(raw: str, context: ConversionContext) -> Optional[tuple]:
    items = _convert_items(raw, context)
    return tuple(items) if items is not None else None


def convert_set(raw: str, context: ConversionContext) -> Optional[set]:
    items = _convert_items(raw, context)
    return set(items) if items is not None else None


def convert_frozenset(raw: str, context: ConversionContext) -> Optional[frozenset]:
    items = _convert_items(raw, context)
    return frozenset(items) if items is not None else None


def convert_dict(raw: str, context: ConversionContext) -> Optional[Dict[str, Any]]:
    result: Dict[str, Any] = {}
    for item in split_escaped(raw, context.delimiter):
        if "=" not in item:
            return None
        key, value = item.split("=", 1)
        result[key.strip()] = value.strip()
    if context.element_type not in (str, None) and context.registry is not None:
        element_ctx = replace(context, target_type=context.element_type, default=None)
        result = {
            k: context.registry.convert(v, context.element_type, element_ctx)
            for k, v in result.items()
        }
    return result


DEFAULT_CONVERTERS: Tuple[Tuple[Hashable, Converter], ...] = (
    (int, convert_int),
    (float, convert_float),
    (bool, convert_bool),
    (Decimal, convert_decimal),
    (Path, convert_path),
    (datetime, convert_datetime),
    (date, convert_date),
    (time, convert_time),
    (timedelta, convert_timedelta),
    (list, convert_list),
    (tuple, convert_tuple),
    (set, convert_set),
    (frozenset, convert_frozenset),
    (dict, convert_dict),
)


class ConverterRegistry:
    """Maps target type descriptors to ordered converter lists.

    Converters of one type are tried by descending priority, then in
    registration order. Registrations are copy-on-write so concurrent
    readers never see a partially updated list.
    """

    def __init__(self, register_defaults: bool = True):
        self._lock = threading.RLock()
        self._converters: Dict[Hashable, Tuple[Tuple[int, Converter], ...]] = {}
        if register_defaults:
            self.register_defaults()

    def register_defaults(self) -> None:
        for target_type, converter in DEFAULT_CONVERTERS:
            self.register(target_type, converter)

    def register(self, target_type: Hashable, converter: Converter, priority: int = 0) -> bool:
        """Add a converter for ``target_type``.

        Args:
            target_type: Type descriptor the converter produces.
            converter: Callable ``(raw, context) -> value or None``.
            priority: Higher priorities are tried first; built-ins use 0.

        Returns:
            False if an equal converter was already registered.
        """
        with self._lock:
            current = self._converters.get(target_type, ())
            if any(c == converter for _, c in current):
                logger.debug("Converter ignored, already registered: %r", converter)
                return False
            # sorted() is stable, equal priorities keep registration order
            ranked = sorted(current + ((priority, converter),), key=lambda entry: -entry[0])
            self._converters = {**self._converters, target_type: tuple(ranked)}
            return True

    def override(self, target_type: Hashable, converter: Converter) -> None:
        """Replace every converter registered for ``target_type``."""
        with self._lock:
            self._converters = {**self._converters, target_type: ((0, converter),)}

    def unregister(self, target_type: Hashable, converter: Optional[Converter] = None) -> None:
        with self._lock:
            updated = dict(self._converters)
            if converter is None:
                updated.pop(target_type, None)
            elif target_type in updated:
                updated[target_type] = tuple(
                    entry for entry in updated[target_type] if entry[1] != converter
                )
            self._converters = updated

    def converters_for(self, target_type: Hashable) -> Tuple[Converter, ...]:
        return tuple(c for _, c in self._converters.get(target_type, ()))

    def target_types(self) -> List[Hashable]:
        return list(self._converters)

    def is_supported(self, target_type: Hashable) -> bool:
        return target_type is str or bool(self._converters.get(target_type))

    def convert(
        self,
        raw: Optional[str],
        target_type: Hashable,
        context: Optional[ConversionContext] = None,
        converter: Optional[Converter] = None,
    ) -> Any:
        """Materialise ``raw`` as ``target_type``.

        Args:
            raw: Raw text, or None when the key has no value.
            target_type: Type descriptor the converters are registered under.
            context: Conversion context; built from the arguments if omitted.
            converter: Converter forced by the call site, tried first.

        Returns:
            The converted value, or None if ``raw`` is None and no default
            is declared.

        Raises:
            ConversionError: ``raw`` is not None and nothing could convert it.
        """
        if context is None:
            context = ConversionContext(target_type=target_type, registry=self)
        elif context.registry is None or context.target_type is None:
            context = replace(
                context,
                registry=context.registry or self,
                target_type=context.target_type if context.target_type is not None else target_type,
            )

        if raw is None:
            if context.default is None:
                return None
            raw = context.default

        if converter is not None:
            result = converter(raw, context)
            if result is not None:
                return result
        if target_type is str:
            return raw
        for candidate in self.converters_for(target_type):
            result = candidate(raw, context)
            if result is not None:
                return result
        raise ConversionError(context.key, target_type, raw)


def default_registry() -> ConverterRegistry:
    """Return a new registry with the built-in converters."""
    return ConverterRegistry(register_defaults=True)
