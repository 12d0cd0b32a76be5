from __future__ import annotations

import configparser
from typing import Dict

from .base import FilePropertySource


class IniFilePropertySource(FilePropertySource):
    """INI options exposed as ``section.key``."""

    extension = "ini"

    def _parse(self, text: str) -> Dict[str, str]:
        # values stay raw text, ${...} is expanded later
        parser = configparser.ConfigParser(interpolation=None)
        parser.read_string(text, source=str(self.path))
        flat: Dict[str, str] = {}
        for section in parser.sections():
            for key, value in parser.items(section):
                flat[f"{section}.{key}"] = value
        return flat
