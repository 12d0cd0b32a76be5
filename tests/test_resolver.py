"""Unit tests for placeholder expansion."""

import pytest

from cascadia.core.resolver import (
    RESOLVERS_META,
    ConfigResolver,
    EnvironmentResolver,
    ExpressionEvaluator,
    FileResolver,
    SystemPropertyResolver,
    default_evaluator,
)
from cascadia.core.types import PropertyValue


class StaticResolver:
    def __init__(self, prefix, values, priority=0, name="static"):
        self.prefix = prefix
        self.priority = priority
        self.name = name
        self.values = values
        self.calls = []

    def evaluate(self, expression):
        self.calls.append(expression)
        return self.values.get(expression)


@pytest.fixture
def evaluator():
    return ExpressionEvaluator(
        [
            EnvironmentResolver({"HOME": "/home/app", "USER": "app"}),
            SystemPropertyResolver({"user.lang": "en"}),
            ConfigResolver({"db.host": "localhost"}.get),
        ],
        environ={"PLAIN": "from-env", "env:PATH": "/usr/bin"},
        system_properties={"plain.sys": "from-sys", "PLAIN": "shadowed"},
    )


class TestExpand:
    """Test suite for placeholder expansion."""

    def test_no_placeholders(self, evaluator):
        """Test that plain text is returned unchanged."""
        assert evaluator.expand("hello world") == "hello world"

    def test_prefixed_resolvers(self, evaluator):
        """Test dispatch to the resolver owning the prefix."""
        assert evaluator.expand("${env:HOME}/data") == "/home/app/data"
        assert evaluator.expand("lang=${sys:user.lang}") == "lang=en"
        assert evaluator.expand("${config:db.host}:5432") == "localhost:5432"

    def test_multiple_placeholders(self, evaluator):
        """Test several placeholders in one value."""
        assert evaluator.expand("${env:USER}@${config:db.host}") == "app@localhost"

    def test_escaped_placeholder_is_literal(self, evaluator):
        """Test that escaped dollar and braces are kept literally."""
        assert evaluator.expand("a\\${b}c") == "a${b}c"
        assert evaluator.expand("\\{x\\}") == "{x}"

    def test_fallback_to_environment(self, evaluator):
        """Test that unprefixed expressions are looked up in the environment first."""
        assert evaluator.expand("${PLAIN}") == "from-env"

    def test_fallback_to_system_properties(self, evaluator):
        """Test that system properties are consulted after the environment."""
        assert evaluator.expand("${plain.sys}") == "from-sys"

    def test_failed_prefix_falls_back_with_full_expression(self):
        """Test that a prefixed expression nobody resolves is looked up verbatim."""
        ev = ExpressionEvaluator([], environ={"env:PATH": "/usr/bin"})
        assert ev.expand("${env:PATH}") == "/usr/bin"

    def test_failed_resolver_falls_back(self, evaluator):
        """Test that a resolver returning nothing defers to the fallback lookups."""
        ev = ExpressionEvaluator(
            [EnvironmentResolver({})], environ={"env:PATH": "/usr/bin"}
        )
        assert ev.expand("${env:PATH}") == "/usr/bin"

    def test_unresolved_removed(self, evaluator):
        """Test that an unresolved placeholder disappears without masking."""
        assert evaluator.expand("x${missing.key}y") == "xy"

    def test_unresolved_masked(self, evaluator):
        """Test that an unresolved placeholder is masked on request."""
        assert evaluator.expand("${missing.key}", mask_unresolved=True) == "?{missing.key}"

    def test_unterminated_expression(self, evaluator, caplog):
        """Test that a placeholder that never closes is kept verbatim."""
        assert evaluator.expand("abc ${env:HOME") == "abc ${env:HOME"
        assert "does not close" in caplog.text

    def test_stray_characters_in_expression(self, evaluator, caplog):
        """Test that unescaped '$' and '{' inside an expression are kept literally."""
        ev = ExpressionEvaluator(
            [StaticResolver("x:", {"a{b}": "braced", "a$b": "dollar"})]
        )
        assert ev.expand("${x:a{b}}") == "braced"
        assert ev.expand("${x:a$b}") == "dollar"
        assert "Ignoring not escaped" in caplog.text

    def test_escapes_inside_expression(self):
        """Test escaped characters inside an expression body."""
        resolver = StaticResolver("x:", {"a}b": "ok"})
        ev = ExpressionEvaluator([resolver])
        assert ev.expand("${x:a\\}b}") == "ok"

    def test_none(self, evaluator):
        """Test that None is passed through."""
        assert evaluator.expand(None) is None


class TestResolverRegistration:
    """Test suite for resolver ordering and uniqueness."""

    def test_duplicate_prefix_rejected(self):
        """Test that two resolvers cannot share a prefix."""
        ev = ExpressionEvaluator([StaticResolver("x:", {})])
        with pytest.raises(ValueError):
            ev.add_resolver(StaticResolver("x:", {}))

    def test_priority_order(self):
        """Test that resolvers are kept by descending priority."""
        low = StaticResolver("a:", {}, priority=1)
        high = StaticResolver("b:", {}, priority=10)
        ev = ExpressionEvaluator([low, high])
        assert ev.resolvers == (high, low)

    def test_first_matching_prefix_only(self):
        """Test that only the first resolver whose prefix matches is asked."""
        broad = StaticResolver("x", {}, priority=10, name="broad")
        narrow = StaticResolver("x:", {"k": "narrow"}, priority=1, name="narrow")
        ev = ExpressionEvaluator([broad, narrow], environ={})
        assert ev.expand("${x:k}") == ""
        assert broad.calls == [":k"]
        assert narrow.calls == []


class TestFileResolver:
    """Test suite for file: expressions."""

    def test_reads_file(self, tmp_path):
        """Test that the file content is inlined."""
        (tmp_path / "token.txt").write_text("s3cret\n")
        ev = ExpressionEvaluator([FileResolver(tmp_path)])
        assert ev.expand("token=${file:token.txt}") == "token=s3cret"

    def test_missing_file(self, tmp_path, caplog):
        """Test that a missing file is unresolved, not an error."""
        ev = ExpressionEvaluator([FileResolver(tmp_path)], environ={})
        assert ev.expand("${file:nope.txt}", mask_unresolved=True) == "?{file:nope.txt}"
        assert "Could not read" in caplog.text


class TestEvaluate:
    """Test suite for evaluation with provenance."""

    def test_records_resolvers(self, evaluator):
        """Test that resolver names are recorded in order."""
        value = PropertyValue.of("url", "${env:USER}@${config:db.host}", source="s")
        result = evaluator.evaluate(value)
        assert result.value == "app@localhost"
        assert result.get_meta(RESOLVERS_META) == "environment, config"
        assert result.get_meta("source") == "s"

    def test_records_fallback_and_unresolved(self, evaluator):
        """Test fallback and unresolved markers in provenance."""
        value = PropertyValue.of("k", "${PLAIN}${missing}")
        result = evaluator.evaluate(value, mask_unresolved=True)
        assert result.value == "from-env?{missing}"
        assert result.get_meta(RESOLVERS_META) == "environment-property, <unresolved>"

    def test_plain_value_has_no_resolvers(self, evaluator):
        """Test that untouched values carry no resolver metadata."""
        result = evaluator.evaluate(PropertyValue.of("k", "plain"))
        assert result.get_meta(RESOLVERS_META) is None
        assert result.value == "plain"

    def test_none_value(self, evaluator):
        """Test that None and null values pass through."""
        assert evaluator.evaluate(None) is None
        empty = PropertyValue.of("k", None)
        assert evaluator.evaluate(empty) is empty


class TestDefaultEvaluator:
    """Test suite for the default resolver set."""

    def test_builtin_prefixes(self):
        """Test that the built-in resolvers are registered."""
        ev = default_evaluator(config_lookup=lambda key: None)
        assert {r.prefix for r in ev.resolvers} == {"env:", "sys:", "file:", "config:"}

    def test_without_config_lookup(self):
        """Test that config: is only available with a lookup."""
        ev = default_evaluator()
        assert "config:" not in {r.prefix for r in ev.resolvers}

    def test_uses_os_environ(self, monkeypatch):
        """Test that the process environment is used by default."""
        monkeypatch.setenv("CASCADIA_TEST_VAR", "value")
        ev = default_evaluator()
        assert ev.expand("${env:CASCADIA_TEST_VAR}") == "value"
        assert ev.expand("${CASCADIA_TEST_VAR}") == "value"
