from __future__ import annotations

from typing import Dict, Optional

import redis

from ..core.types import PropertyValue


class RedisPropertySource:
    """Read-only view of a Redis key space, optionally below a key prefix.

    Keys are exposed without the prefix. Reads go straight to Redis, so
    changes are visible on the next query.
    """

    def __init__(
        self,
        uri: str,
        name: Optional[str] = None,
        prefix: str = "",
        ordinal: int = 500,
        client: Optional[redis.Redis] = None,
    ):
        self.uri = uri
        self.name = name or f"redis:{uri}"
        self.prefix = prefix
        self.ordinal = ordinal
        if client is None:
            client = redis.Redis.from_url(uri, decode_responses=True)
        self.client = client

    def get(self, key: str) -> Optional[PropertyValue]:
        raw = self.client.get(self.prefix + key)
        return PropertyValue.of(key, raw, source=self.name) if raw is not None else None

    def get_all(self) -> Dict[str, PropertyValue]:
        stored = self.client.keys(self.prefix + "*")
        if not stored:
            return {}
        offset = len(self.prefix)
        result: Dict[str, PropertyValue] = {}
        # keys may expire between KEYS and MGET
        for redis_key, raw in zip(stored, self.client.mget(stored)):
            if raw is None:
                continue
            key = redis_key[offset:]
            result[key] = PropertyValue.of(key, raw, source=self.name)
        return result

    def __repr__(self) -> str:
        return f"RedisPropertySource(name={self.name!r}, ordinal={self.ordinal})"
