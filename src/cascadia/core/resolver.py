"""Expansion of ``${...}`` placeholder expressions inside configuration values.

Each registered resolver owns a prefix (``env:``, ``sys:``, ``config:``,
``file:``). An expression that no resolver claims is looked up in the process
environment, then in the system properties. Every fault is soft: malformed or
unresolvable expressions are logged and degrade to literal text, a masked
``?{expr}`` placeholder, or an empty string.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Protocol, Tuple

from .types import PropertyValue

logger = logging.getLogger(__name__)

RESOLVERS_META = "resolvers"
UNRESOLVED_MARKER = "<unresolved>"
_ESCAPABLE = frozenset("${}")


class ExpressionResolver(Protocol):
    """Resolves the part of an expression following its prefix."""

    prefix: str
    priority: int
    name: str

    def evaluate(self, expression: str) -> Optional[str]:
        ...


class EnvironmentResolver:
    """``${env:NAME}`` reads a process environment variable."""

    name = "environment"

    def __init__(self, environ: Optional[Mapping[str, str]] = None, priority: int = 300):
        self.prefix = "env:"
        self.priority = priority
        self._environ = environ

    def evaluate(self, expression: str) -> Optional[str]:
        environ = self._environ if self._environ is not None else os.environ
        return environ.get(expression)


class SystemPropertyResolver:
    """``${sys:name}`` reads the engine's system properties."""

    name = "system-property"

    def __init__(self, properties: Mapping[str, str], priority: int = 400):
        self.prefix = "sys:"
        self.priority = priority
        self._properties = properties

    def evaluate(self, expression: str) -> Optional[str]:
        return self._properties.get(expression)


class ConfigResolver:
    """``${config:key}`` looks up another key through a lookup callable."""

    name = "config"

    def __init__(self, lookup: Callable[[str], Optional[str]], priority: int = 500):
        self.prefix = "config:"
        self.priority = priority
        self._lookup = lookup

    def evaluate(self, expression: str) -> Optional[str]:
        return self._lookup(expression)


class FileResolver:
    """``${file:path}`` inlines the text content of a file."""

    name = "file"

    def __init__(self, base_dir: Optional[Path] = None, priority: int = 100):
        self.prefix = "file:"
        self.priority = priority
        self.base_dir = base_dir

    def evaluate(self, expression: str) -> Optional[str]:
        path = Path(expression).expanduser()
        if self.base_dir is not None and not path.is_absolute():
            path = self.base_dir / path
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning("Could not read %s for expression file:%s: %s", path, expression, e)
            return None


class ExpressionEvaluator:
    """Expands placeholders using a prioritised set of resolvers.

    Args:
        resolvers: Resolvers to dispatch to; prefixes must be unique.
        environ: Environment used for fallback lookups (``os.environ``).
        system_properties: Process-level properties used after the
            environment for fallback lookups.
    """

    def __init__(
        self,
        resolvers: Optional[Iterable[ExpressionResolver]] = None,
        environ: Optional[Mapping[str, str]] = None,
        system_properties: Optional[Mapping[str, str]] = None,
    ):
        self._environ = environ
        self.system_properties: Mapping[str, str] = (
            system_properties if system_properties is not None else {}
        )
        self._resolvers: Tuple[ExpressionResolver, ...] = ()
        for resolver in resolvers or ():
            self.add_resolver(resolver)

    @property
    def resolvers(self) -> Tuple[ExpressionResolver, ...]:
        return self._resolvers

    def add_resolver(self, resolver: ExpressionResolver) -> None:
        if any(r.prefix == resolver.prefix for r in self._resolvers):
            raise ValueError(f"Resolver prefix already registered: {resolver.prefix}")
        ordered = sorted(
            self._resolvers + (resolver,), key=lambda r: (-r.priority, r.prefix)
        )
        self._resolvers = tuple(ordered)

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    def expand(self, text: Optional[str], mask_unresolved: bool = False) -> Optional[str]:
        """Expand every placeholder in ``text``."""
        if text is None:
            return None
        return self._expand(text, mask_unresolved, [])

    def evaluate(
        self, value: Optional[PropertyValue], mask_unresolved: bool = False
    ) -> Optional[PropertyValue]:
        """Expand a property value and record the resolvers used in its metadata."""
        if value is None or value.value is None:
            return value
        trail: List[str] = []
        expanded = self._expand(value.value, mask_unresolved, trail)
        if not trail:
            return value.with_value(expanded)
        previous = value.get_meta(RESOLVERS_META)
        names = ([previous] if previous else []) + trail
        return value.with_value(expanded).with_metadata(**{RESOLVERS_META: ", ".join(names)})

    def _expand(self, text: str, mask_unresolved: bool, trail: List[str]) -> str:
        out: List[str] = []
        i = 0
        n = len(text)
        while i < n:
            ch = text[i]
            if ch == "\\" and i + 1 < n and text[i + 1] in _ESCAPABLE:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == "$" and i + 1 < n and text[i + 1] == "{":
                parsed = self._parse_expression(text, i + 2)
                if parsed is None:
                    logger.warning(
                        "Invalid expression syntax in: %s, expression does not close!", text
                    )
                    out.append(text[i:])
                    break
                expression, i = parsed
                resolved = self._resolve(expression, mask_unresolved, trail)
                out.append(resolved)
                continue
            out.append(ch)
            i += 1
        return "".join(out)

    def _parse_expression(self, text: str, start: int) -> Optional[Tuple[str, int]]:
        """Read an expression body starting after ``${``.

        Returns:
            The body and the index after the closing brace, or None if the
            expression never closes.
        """
        body: List[str] = []
        depth = 0
        i = start
        n = len(text)
        while i < n:
            ch = text[i]
            if ch == "\\" and i + 1 < n and text[i + 1] in _ESCAPABLE | {"\\"}:
                body.append(text[i + 1])
                i += 2
                continue
            if ch == "{":
                logger.warning("Ignoring not escaped '{' in: %s", text)
                depth += 1
                body.append(ch)
            elif ch == "$":
                logger.warning("Ignoring not escaped '$' in: %s", text)
                body.append(ch)
            elif ch == "}":
                if depth == 0:
                    return "".join(body), i + 1
                depth -= 1
                body.append(ch)
            else:
                body.append(ch)
            i += 1
        return None

    def _resolve(self, expression: str, mask_unresolved: bool, trail: List[str]) -> str:
        for resolver in self._resolvers:
            if expression.startswith(resolver.prefix):
                value = resolver.evaluate(expression[len(resolver.prefix):])
                if value is not None:
                    trail.append(resolver.name)
                    return value
                break

        value = self.environ.get(expression)
        if value is not None:
            trail.append("environment-property")
            return value
        value = self.system_properties.get(expression)
        if value is not None:
            trail.append("system-property")
            return value

        logger.warning("Unresolvable expression encountered %s", expression)
        if mask_unresolved:
            trail.append(UNRESOLVED_MARKER)
            return "?{" + expression + "}"
        return ""


def default_evaluator(
    config_lookup: Optional[Callable[[str], Optional[str]]] = None,
    environ: Optional[Mapping[str, str]] = None,
    system_properties: Optional[Mapping[str, str]] = None,
    base_dir: Optional[Path] = None,
) -> ExpressionEvaluator:
    """Build an evaluator with the built-in resolvers."""
    props: Mapping[str, str] = system_properties if system_properties is not None else {}
    resolvers: List[ExpressionResolver] = [
        EnvironmentResolver(environ),
        SystemPropertyResolver(props),
        FileResolver(base_dir),
    ]
    if config_lookup is not None:
        resolvers.append(ConfigResolver(config_lookup))
    return ExpressionEvaluator(resolvers, environ=environ, system_properties=props)
