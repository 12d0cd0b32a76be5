from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import yaml

from .base import FilePropertySource, flatten


class YamlFilePropertySource(FilePropertySource):
    """Nested YAML mappings flattened to dot-separated keys."""

    extension = "yaml"

    def __init__(
        self,
        path: Path,
        name: Optional[str] = None,
        ordinal: int = 100,
        depth: Optional[int] = None,
    ):
        super().__init__(path, name=name, ordinal=ordinal)
        self.depth = depth

    def _parse(self, text: str) -> Dict[str, str]:
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            return {}
        return flatten(data, depth=self.depth)
