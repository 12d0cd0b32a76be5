from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .aggregator import SourceAggregator
from .config_loader import DEFAULT_SETTINGS, ConfigLoader
from .configuration import Configuration
from .converters import ConverterRegistry
from .detector import ChangeDetector
from .errors import UnsupportedSourceError
from .filters import FilterChain
from .source import PropertySource

logger = logging.getLogger(__name__)


class Environment:
    """Named set of property sources, described in cascadia.yaml or in code.

    An Environment is a PropertySourceProvider: the aggregator built by
    ``get_config`` asks it for its sources.
    """

    def __init__(
        self,
        name: str,
        sources: Optional[List[Union[str, Path]]] = None,
        config_path: Optional[Union[str, Path]] = None,
    ):
        """Load the descriptor sources for ``name`` and register ``sources``.

        Args:
            name: Environment key in cascadia.yaml, e.g. "production".
            sources: Optional paths or URIs to register in addition to the
                ones declared in cascadia.yaml.
            config_path: Optional path to cascadia.yaml. If not provided,
                searches the current directory and its parents.
        """
        self.name = name
        self._registered: List[PropertySource] = []
        self._config_loader = ConfigLoader(config_path)

        self._load_from_config_file()

        if sources:
            self.register_sources(*sources)

    def _load_from_config_file(self) -> None:
        """Register the sources declared in cascadia.yaml, skipping bad entries."""
        try:
            sources = self._config_loader.get_sources(self.name)
        except ValueError as e:
            logger.warning(
                "Error loading %s: %s", self._config_loader.config_path, e
            )
            return
        for source_config in sources:
            try:
                parsed = self._config_loader.parse_source(source_config)
                if parsed.pop("env", False):
                    self.register_environment(**parsed)
                    continue
                target = parsed.pop("path_or_uri")
                if isinstance(target, Path) and not target.is_absolute():
                    # relative to the descriptor, not to the working directory
                    target = self._config_loader.config_path.parent / target
                self.register_source(target, **parsed)
            except Exception as e:
                logger.warning("Failed to load source %r from descriptor: %s", source_config, e)

    @property
    def settings(self) -> Dict[str, Any]:
        try:
            return self._config_loader.get_settings(self.name)
        except ValueError as e:
            logger.warning("Using default settings: %s", e)
            return dict(DEFAULT_SETTINGS)

    def register_sources(self, *paths_or_uris: Union[str, Path]) -> None:
        for item in paths_or_uris:
            self.register_source(item)

    def register_source(
        self,
        path_or_uri: Union[str, Path],
        *,
        name: Optional[str] = None,
        ordinal: Optional[int] = None,
        prefix: Optional[str] = None,
        depth: Optional[int] = None,
    ) -> PropertySource:
        """Create and register a source for a file path or URI.

        Args:
            path_or_uri: Path to a YAML/JSON/INI file or a ``redis://`` URI.
            name: Optional source name.
            ordinal: Optional priority; each source type has a default.
            prefix: Key prefix (Redis only).
            depth: Flattening depth (YAML only).

        Returns:
            The created source.
        """
        src = self._create_source(path_or_uri, name=name, ordinal=ordinal, prefix=prefix, depth=depth)
        self.add_source(src)
        return src

    def register_environment(
        self,
        *,
        name: Optional[str] = None,
        ordinal: Optional[int] = None,
        prefix: Optional[str] = None,
        depth: Optional[int] = None,
    ) -> PropertySource:
        """Register the process environment as a source."""
        from ..sources.memory import EnvironmentPropertySource

        kwargs: Dict[str, Any] = {"prefix": prefix}
        if name:
            kwargs["name"] = name
        if ordinal is not None:
            kwargs["ordinal"] = ordinal
        src = EnvironmentPropertySource(**kwargs)
        self.add_source(src)
        return src

    def _create_source(
        self,
        path_or_uri: Union[str, Path],
        name: Optional[str] = None,
        ordinal: Optional[int] = None,
        prefix: Optional[str] = None,
        depth: Optional[int] = None,
    ) -> PropertySource:
        """Create a PropertySource based on path/URI type.

        Raises:
            UnsupportedSourceError: If the source type is not supported.
        """
        kwargs: Dict[str, Any] = {"name": name}
        if ordinal is not None:
            kwargs["ordinal"] = ordinal
        s = str(path_or_uri)
        if s.startswith(("redis://", "rediss://", "unix://")):
            from ..sources.redis_kv import RedisPropertySource

            return RedisPropertySource(s, prefix=prefix or "", **kwargs)
        p = Path(s)
        suffix = p.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            from ..sources.yaml_file import YamlFilePropertySource

            return YamlFilePropertySource(p, depth=depth, **kwargs)
        if suffix == ".json":
            from ..sources.json_file import JsonFilePropertySource

            return JsonFilePropertySource(p, **kwargs)
        if suffix == ".ini":
            from ..sources.ini_file import IniFilePropertySource

            return IniFilePropertySource(p, **kwargs)
        raise UnsupportedSourceError(f"Unsupported source type: {path_or_uri}")

    def add_source(self, source: PropertySource) -> None:
        """Add a ready-made source instance."""
        if not any(s is source for s in self._registered):
            self._registered.append(source)

    def get_property_sources(self) -> List[PropertySource]:
        return list(self._registered)

    def get_config(
        self,
        converters: Optional[ConverterRegistry] = None,
        filter_chain: Optional[FilterChain] = None,
        system_properties: Optional[Mapping[str, str]] = None,
    ) -> Configuration:
        """Build a Configuration over this environment's sources."""
        settings = self.settings
        aggregator = SourceAggregator(
            filter_chain=filter_chain,
            providers=[self],
            cache_merged=bool(settings["cache_merged"]),
        )
        base_dir = self.config_file_path.parent if self.config_file_path else None
        return Configuration(
            aggregator,
            converters=converters,
            mask_unresolved=bool(settings["mask_unresolved"]),
            system_properties=system_properties,
            base_dir=base_dir,
        )

    def create_detector(self, configuration: Optional[Configuration] = None) -> ChangeDetector:
        """Build a ChangeDetector using the environment's poll settings."""
        settings = self.settings
        return ChangeDetector(
            configuration if configuration is not None else self.get_config(),
            poll_interval=float(settings["poll_interval"]),
            start_delay=float(settings["start_delay"]),
        )

    @property
    def config_file_path(self) -> Optional[Path]:
        return self._config_loader.config_path
