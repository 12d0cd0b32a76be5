from __future__ import annotations

import os
import threading
from typing import Dict, Mapping, Optional

from ..core.types import PropertyValue


class MapPropertySource:
    """In-memory source backed by a dictionary.

    Updates are visible to the next read, which makes this the usual source
    for overrides set at runtime and for tests.
    """

    def __init__(self, name: str, data: Optional[Mapping[str, str]] = None, ordinal: int = 0):
        self.name = name
        self.ordinal = ordinal
        self._data: Dict[str, str] = dict(data or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[PropertyValue]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return PropertyValue.of(key, raw, source=self.name)

    def get_all(self) -> Dict[str, PropertyValue]:
        data = self._data
        return {k: PropertyValue.of(k, v, source=self.name) for k, v in data.items()}

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def update(self, values: Mapping[str, str]) -> None:
        with self._lock:
            self._data = {**self._data, **{k: str(v) for k, v in values.items()}}

    def unset(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                self._data = {k: v for k, v in self._data.items() if k != key}

    def clear(self) -> None:
        with self._lock:
            self._data = {}

    def __repr__(self) -> str:
        return f"MapPropertySource(name={self.name!r}, ordinal={self.ordinal})"


class EnvironmentPropertySource:
    """Process environment variables.

    Args:
        ordinal: Priority of the source.
        prefix: Only expose variables starting with this prefix.
        strip_prefix: Remove ``prefix`` from the exposed keys.
        environ: Mapping to read instead of ``os.environ``.
    """

    def __init__(
        self,
        name: str = "environment-properties",
        ordinal: int = 300,
        prefix: Optional[str] = None,
        strip_prefix: bool = True,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.name = name
        self.ordinal = ordinal
        self.prefix = prefix or ""
        self.strip_prefix = strip_prefix
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    def _env_key(self, key: str) -> str:
        if self.prefix and self.strip_prefix:
            return self.prefix + key
        return key

    def get(self, key: str) -> Optional[PropertyValue]:
        env_key = self._env_key(key)
        if self.prefix and not env_key.startswith(self.prefix):
            return None
        raw = self.environ.get(env_key)
        if raw is None:
            return None
        return PropertyValue.of(key, raw, source=self.name)

    def get_all(self) -> Dict[str, PropertyValue]:
        result: Dict[str, PropertyValue] = {}
        for env_key, raw in list(self.environ.items()):
            if self.prefix and not env_key.startswith(self.prefix):
                continue
            key = env_key[len(self.prefix):] if self.prefix and self.strip_prefix else env_key
            result[key] = PropertyValue.of(key, raw, source=self.name)
        return result

    def __repr__(self) -> str:
        return f"EnvironmentPropertySource(name={self.name!r}, ordinal={self.ordinal})"
