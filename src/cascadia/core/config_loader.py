"""Loader for cascadia.yaml source descriptors.

A descriptor lists, per environment, the property sources to register and
the engine settings to use::

    environments:
      production:
        settings:
          poll_interval: 5
          mask_unresolved: true
        sources:
          - path: config/app.yaml
            ordinal: 100
          - uri: redis://cache:6379/0
            prefix: "app:"
          - env: true
            prefix: APP_
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "cascadia.yaml"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "poll_interval": 2.0,
    "start_delay": 5.0,
    "mask_unresolved": False,
    "cache_merged": False,
}

_SOURCE_OPTIONS = ("name", "prefix", "depth")


def find_descriptor(start: Optional[Path] = None) -> Optional[Path]:
    """Return the nearest cascadia.yaml in ``start`` or one of its parents."""
    here = start or Path.cwd()
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


class ConfigLoader:
    """Reads a cascadia.yaml descriptor and answers per-environment queries.

    Args:
        config_path: Explicit descriptor path. When omitted the current
            directory and its parents are searched. An explicit path that
            does not exist means "no descriptor".
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        if config_path is None:
            self.config_path = find_descriptor()
        else:
            explicit = Path(config_path)
            self.config_path = explicit if explicit.exists() else None
        self._document: Optional[Dict[str, Any]] = None

    def load(self) -> Dict[str, Any]:
        """Parse the descriptor once and cache the result.

        Returns:
            The descriptor content; empty when there is no descriptor or it
            cannot be read.

        Raises:
            ValueError: The descriptor is not valid YAML or not a mapping.
        """
        if self._document is not None:
            return self._document
        if self.config_path is None:
            return {}

        try:
            text = self.config_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Could not read %s: %s", self.config_path, e)
            return {}
        try:
            document = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE_NAME} at {self.config_path}: {e}") from e
        if not isinstance(document, dict):
            raise ValueError(f"{self.config_path} must contain a mapping at the top level")

        self._document = document
        return document

    def get_environment_config(self, environment_name: str) -> Optional[Dict[str, Any]]:
        return (self.load().get("environments") or {}).get(environment_name)

    def get_sources(self, environment_name: str) -> List[Dict[str, Any]]:
        section = self.get_environment_config(environment_name) or {}
        return list(section.get("sources") or [])

    def get_settings(self, environment_name: str) -> Dict[str, Any]:
        """Engine settings for an environment, merged over the defaults."""
        section = self.get_environment_config(environment_name) or {}
        return {**DEFAULT_SETTINGS, **(section.get("settings") or {})}

    def parse_source(self, source_config: Dict[str, Any]) -> Dict[str, Any]:
        """Turn one ``sources`` entry into keyword arguments for Environment.

        Returns:
            ``path_or_uri`` (a Path for files, the raw string for URIs) or
            ``env=True``, plus any of ``name``, ``ordinal``, ``prefix`` and
            ``depth`` present in the entry.

        Raises:
            ValueError: The entry names no location, or its ordinal is not
                an integer.
        """
        if "path" in source_config:
            parsed: Dict[str, Any] = {"path_or_uri": Path(source_config["path"])}
        elif "uri" in source_config:
            parsed = {"path_or_uri": source_config["uri"]}
        elif source_config.get("env"):
            parsed = {"env": True}
        else:
            raise ValueError("Source must have either 'path', 'uri' or 'env'")

        if "ordinal" in source_config:
            ordinal = source_config["ordinal"]
            # bool is an int subclass
            if isinstance(ordinal, bool) or not isinstance(ordinal, int):
                raise ValueError(f"Source ordinal must be an integer, got {ordinal!r}")
            parsed["ordinal"] = ordinal

        parsed.update({k: source_config[k] for k in _SOURCE_OPTIONS if k in source_config})
        return parsed
