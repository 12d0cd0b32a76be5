"""Bundled read-only property sources.

In-memory and environment sources, file-based sources (yaml, json, ini), a
Redis key space source and frozen copies of any source.
"""

from .frozen import FrozenPropertySource
from .ini_file import IniFilePropertySource
from .json_file import JsonFilePropertySource
from .memory import EnvironmentPropertySource, MapPropertySource
from .redis_kv import RedisPropertySource
from .yaml_file import YamlFilePropertySource

__all__ = [
    "MapPropertySource",
    "EnvironmentPropertySource",
    "YamlFilePropertySource",
    "JsonFilePropertySource",
    "IniFilePropertySource",
    "RedisPropertySource",
    "FrozenPropertySource",
]
