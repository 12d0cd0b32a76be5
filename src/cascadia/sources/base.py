"""Shared plumbing for the bundled property sources."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..core.types import PropertyValue

LIST_DELIMITER = ","


def to_text(value: Any) -> Optional[str]:
    """Render a parsed scalar or list as configuration text."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        items = [to_text(v) for v in value]
        return LIST_DELIMITER.join(
            i.replace(LIST_DELIMITER, "\\" + LIST_DELIMITER) for i in items if i is not None
        )
    return str(value)


def iter_hierarchical(
    data: Dict[str, Any],
    parent: str = "",
    depth: Optional[int] = None,
) -> Iterator[Tuple[str, Any]]:
    """Flatten nested dictionaries using dot-notation up to optional depth.

    Lists and scalars are emitted as-is.
    """
    if depth is not None and depth < 0:
        return

    for key, value in data.items():
        full_key = str(key) if not parent else f"{parent}.{key}"
        if isinstance(value, dict) and (depth is None or depth > 0):
            next_depth = None if depth is None else depth - 1
            yield from iter_hierarchical(value, full_key, next_depth)
        else:
            yield full_key, value


def flatten(data: Dict[str, Any], depth: Optional[int] = None) -> Dict[str, str]:
    """Flatten a parsed document into text values, skipping nulls."""
    flat: Dict[str, str] = {}
    for key, value in iter_hierarchical(data, depth=depth):
        text = to_text(value)
        if text is not None:
            flat[key] = text
    return flat


class CachedPropertySource:
    """Base for sources that read their whole key space at once.

    Subclasses implement ``_read``; values are cached until ``reload()`` or
    until ``_is_stale`` reports that the backing data changed.
    """

    def __init__(self, name: str, ordinal: int = 0):
        self.name = name
        self.ordinal = ordinal
        self._cache: Optional[Dict[str, str]] = None
        self._lock = threading.RLock()

    def _read(self) -> Dict[str, str]:
        raise NotImplementedError

    def _is_stale(self) -> bool:
        return False

    def load(self) -> Dict[str, str]:
        with self._lock:
            self._cache = dict(self._read())
            return dict(self._cache)

    def reload(self) -> None:
        self.load()

    def _values(self) -> Dict[str, str]:
        cache = self._cache
        if cache is None or self._is_stale():
            with self._lock:
                self._cache = dict(self._read())
                cache = self._cache
        return cache

    def get(self, key: str) -> Optional[PropertyValue]:
        raw = self._values().get(key)
        if raw is None:
            return None
        return PropertyValue.of(key, raw, source=self.name)

    def get_all(self) -> Dict[str, PropertyValue]:
        return {
            k: PropertyValue.of(k, v, source=self.name) for k, v in self._values().items()
        }

    def exists(self, key: str) -> bool:
        return key in self._values()

    def keys(self) -> List[str]:
        return list(self._values().keys())

    def size(self) -> int:
        return len(self._values())

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, ordinal={self.ordinal})"


class FilePropertySource(CachedPropertySource):
    """Cached source backed by a file; re-read when its mtime changes.

    A missing file yields an empty source.
    """

    extension: Optional[str] = None

    def __init__(self, path: Path, name: Optional[str] = None, ordinal: int = 100):
        self.path = Path(path)
        super().__init__(name or f"{self.extension or 'file'}:{self.path.name}", ordinal)
        self._mtime: Optional[int] = None

    def _stat_mtime(self) -> Optional[int]:
        try:
            return self.path.stat().st_mtime_ns
        except OSError:
            return None

    def _is_stale(self) -> bool:
        return self._stat_mtime() != self._mtime

    def _read(self) -> Dict[str, str]:
        self._mtime = self._stat_mtime()
        if self._mtime is None:
            return {}
        return self._parse(self.path.read_text(encoding="utf-8"))

    def _parse(self, text: str) -> Dict[str, str]:
        raise NotImplementedError
