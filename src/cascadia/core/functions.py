"""Operators deriving new configurations from existing ones.

Derived configurations are read-only views: they read through to the
configuration they were built from, so later changes there stay visible.
Values are expanded once, by the originating configuration::

    db = sections_recursive(config, "db", strip_keys=True)
    db.get("url")
"""

from __future__ import annotations

import json
import time
from typing import Callable, Dict, Mapping, Optional

from .aggregator import SourceAggregator
from .configuration import Configuration
from .types import PropertyValue

KeyPredicate = Callable[[str, str], bool]
KeyMapper = Callable[[str], Optional[str]]

_TIMESTAMP_KEY = "__timestamp"


def _section_prefix(section_key: str) -> str:
    return section_key.rstrip(".") + "."


def is_key_in_section(key: str, section_key: str) -> bool:
    """Return True if ``key`` lies below ``section_key`` (``a.b`` is in ``a``)."""
    return key.startswith(_section_prefix(section_key))


def is_key_in_sections(key: str, *section_keys: str) -> bool:
    return any(is_key_in_section(key, section) for section in section_keys)


def strip_section_keys(key: str, *section_keys: str) -> str:
    """Remove the longest matching section prefix from ``key``."""
    for section in sorted(section_keys, key=len, reverse=True):
        prefix = _section_prefix(section)
        if key.startswith(prefix):
            return key[len(prefix):]
    return key


class ConfigurationPropertySource:
    """A Configuration exposed through the PropertySource protocol.

    Args:
        name: Source name.
        ordinal: Source priority.
        configuration: Configuration to read from.
        predicate: Only keep entries for which ``predicate(key, value)`` holds.
        key_mapper: Rename keys; a mapper returning None drops the entry.
    """

    def __init__(
        self,
        name: str,
        ordinal: int,
        configuration: Configuration,
        predicate: Optional[KeyPredicate] = None,
        key_mapper: Optional[KeyMapper] = None,
    ):
        self.name = name
        self.ordinal = ordinal
        self.configuration = configuration
        self.predicate = predicate
        self.key_mapper = key_mapper

    def _accept(self, value: Optional[PropertyValue]) -> bool:
        if value is None or value.value is None:
            return False
        return self.predicate is None or self.predicate(value.key, value.value)

    def get(self, key: str) -> Optional[PropertyValue]:
        if self.key_mapper is not None:
            # mapped keys can only be found by mapping the whole key space
            return self.get_all().get(key)
        value = self.configuration.get_value(key)
        return value if self._accept(value) else None

    def get_all(self) -> Dict[str, PropertyValue]:
        result: Dict[str, PropertyValue] = {}
        for key, value in self.configuration.get_property_values().items():
            if not self._accept(value):
                continue
            if self.key_mapper is None:
                result[key] = value
                continue
            mapped = self.key_mapper(key)
            if mapped is not None:
                result[mapped] = PropertyValue(key=mapped, value=value.value, metadata=value.metadata)
        return result

    def __repr__(self) -> str:
        return f"ConfigurationPropertySource(name={self.name!r}, ordinal={self.ordinal})"


def property_source_from(name: str, ordinal: int, config: Configuration) -> ConfigurationPropertySource:
    return ConfigurationPropertySource(name, ordinal, config)


def _derive(config: Configuration, *sources: ConfigurationPropertySource) -> Configuration:
    return Configuration(
        SourceAggregator(sources),
        converters=config.converters,
        mask_unresolved=config.mask_unresolved,
        expand_placeholders=False,
    )


def filter_configuration(config: Configuration, predicate: KeyPredicate) -> Configuration:
    """View of ``config`` restricted to the entries accepted by ``predicate``."""
    return _derive(config, ConfigurationPropertySource("filtered", 0, config, predicate=predicate))


def map_keys(config: Configuration, key_mapper: KeyMapper) -> Configuration:
    """View of ``config`` with every key renamed by ``key_mapper``."""
    return _derive(config, ConfigurationPropertySource("mapped", 0, config, key_mapper=key_mapper))


def sections_recursive(
    config: Configuration, *section_keys: str, strip_keys: bool = False
) -> Configuration:
    """View of ``config`` holding the keys below any of ``section_keys``."""
    source = ConfigurationPropertySource(
        f"sections:{','.join(section_keys)}",
        0,
        config,
        predicate=lambda key, value: is_key_in_sections(key, *section_keys),
        key_mapper=(lambda key: strip_section_keys(key, *section_keys)) if strip_keys else None,
    )
    return _derive(config, source)


def combine(name: str, *configs: Configuration) -> Configuration:
    """Merge ``configs`` into one configuration; later ones take precedence."""
    if not configs:
        raise ValueError("combine() needs at least one configuration")
    sources = [
        ConfigurationPropertySource(f"{name}[{i}]", i, config)
        for i, config in enumerate(configs)
    ]
    return _derive(configs[0], *sources)


def _info_properties(
    config: Configuration, info: Optional[Mapping[str, str]]
) -> Dict[str, str]:
    props = dict(config.get_properties())
    props[_TIMESTAMP_KEY] = str(int(time.time() * 1000))
    for key, value in (info or {}).items():
        props[f"__{key}"] = value
    return {key: props[key] for key in sorted(props)}


def text_info(config: Configuration, info: Optional[Mapping[str, str]] = None) -> str:
    """Render ``config`` as indented ``key: value`` lines for diagnostics."""
    props = _info_properties(config, info)
    lines = [
        f"  {key}: {value}".replace("\n", "\n     ") for key, value in props.items()
    ]
    return "Configuration:\n" + ",\n".join(lines) + "\n"


def json_info(config: Configuration, info: Optional[Mapping[str, str]] = None) -> str:
    """Render ``config`` as a JSON object with sorted keys."""
    return json.dumps(_info_properties(config, info), indent=2) + "\n"

