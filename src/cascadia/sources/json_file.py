from __future__ import annotations

import json
from typing import Dict

from .base import FilePropertySource, flatten


class JsonFilePropertySource(FilePropertySource):
    """JSON objects flattened to dot-separated keys."""

    extension = "json"

    def _parse(self, text: str) -> Dict[str, str]:
        data = json.loads(text) if text.strip() else {}
        if not isinstance(data, dict):
            return {}
        return flatten(data)
