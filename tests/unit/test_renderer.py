"""Unit tests for the template renderer."""

from typing import Any

import pytest

from chartsmith.templates.registry import TemplateRegistry
from chartsmith.templates.renderer import Scope, resolve_path


def render(body: str, data: dict[str, Any], quality: str | None = None) -> str:
    registry = TemplateRegistry(load_builtin=False)
    registry.register("t", {"body": body})
    return registry.render("t", data, quality)


class TestResolvePath:
    """Tests for resolve_path."""

    def test_nested_mapping(self) -> None:
        """Test plain dotted lookup."""
        assert resolve_path({"a": {"b": 1}}, "a.b") == (True, 1)

    def test_dotted_keys_longest_first(self) -> None:
        """Test that flattened keys win over nested lookup."""
        data = {"theme": {"colors.primary": "#f00", "colors": {"primary": "#0f0"}}}

        assert resolve_path(data, "theme.colors.primary") == (True, "#f00")

    def test_list_index(self) -> None:
        """Test numeric segments index into lists."""
        assert resolve_path({"xs": [10, 20]}, "xs.1") == (True, 20)
        assert resolve_path({"xs": [10, 20]}, "xs.2") == (False, None)

    def test_missing(self) -> None:
        """Test that any missing step reports not found."""
        assert resolve_path({"a": 1}, "a.b") == (False, None)
        assert resolve_path({}, "a") == (False, None)

    def test_empty_path_is_value(self) -> None:
        """Test that the empty path resolves to the value itself."""
        assert resolve_path([1], "") == (True, [1])

    def test_found_none_differs_from_missing(self) -> None:
        """Test that an explicit None is found."""
        assert resolve_path({"a": None}, "a") == (True, None)


class TestScope:
    """Tests for scope lookups."""

    def test_falls_back_to_parent(self) -> None:
        """Test that names missing in a loop item resolve in outer scopes."""
        root = Scope.root({"title": "T"})
        item = root.child({"name": "A"}, 0, None, 1)

        assert item.lookup("name") == (True, "A")
        assert item.lookup("title") == (True, "T")

    def test_parent_prefix_skips_current(self) -> None:
        """Test that ../ starts one scope out."""
        root = Scope.root({"name": "outer"})
        item = root.child({"name": "inner"}, 0, None, 1)

        assert item.lookup("../name") == (True, "outer")

    def test_loop_variables(self) -> None:
        """Test @index/@first/@last/@key."""
        root = Scope.root({})
        item = root.child("v", 2, "k", 3)

        assert item.lookup("@index") == (True, 2)
        assert item.lookup("@first") == (True, False)
        assert item.lookup("@last") == (True, True)
        assert item.lookup("@key") == (True, "k")
        assert item.lookup("this") == (True, "v")

    def test_loop_variables_outside_loop(self) -> None:
        """Test that loop variables do not resolve at the root."""
        assert Scope.root({}).lookup("@index") == (False, None)


class TestTemplateRendering:
    """Tests for rendering compiled templates."""

    def test_each_renders_items(self) -> None:
        """Test the canonical loop example."""
        result = render("<g>{{#each items}}<r>{{name}}</r>{{/each}}</g>", {"items": [{"name": "A"}]})

        assert result == "<g><r>A</r></g>"

    def test_unresolved_placeholder_verbatim(self) -> None:
        """Test that missing data leaves the placeholder in place."""
        assert render("<t>{{missing}}</t>", {}) == "<t>{{missing}}</t>"
        assert render("<t>{{ spaced }}</t>", {}) == "<t>{{ spaced }}</t>"

    def test_output_is_escaped(self) -> None:
        """Test that values are XML-escaped."""
        assert render("<t>{{name}}</t>", {"name": "A & <B>"}) == "<t>A &amp; &lt;B&gt;</t>"

    def test_literal_braces_survive(self) -> None:
        """Test that template text resembling Jinja2 syntax is literal."""
        assert render("<t>{a} 100% {# x #}</t>", {}) == "<t>{a} 100% {# x #}</t>"
        assert render("<t>{% endraw %}</t>", {}) == "<t>{% endraw %}</t>"

    def test_scope_fallback_inside_loop(self) -> None:
        """Test reading root data inside a loop."""
        body = "{{#each items}}<r>{{title}}-{{name}}</r>{{/each}}"

        assert render(body, {"title": "T", "items": [{"name": "A"}]}) == "<r>T-A</r>"

    def test_parent_reference_in_nested_loop(self) -> None:
        """Test ../ inside a nested loop."""
        body = "{{#each sections}}{{#each items}}{{../name}}/{{name}};{{/each}}{{/each}}"
        data = {"sections": [{"name": "S", "items": [{"name": "i"}, {"name": "j"}]}]}

        assert render(body, data) == "S/i;S/j;"

    def test_loop_variables(self) -> None:
        """Test @index, @first and @last in bodies and conditions."""
        body = "{{#each items}}{{@index}}{{#if @first}}F{{/if}}{{#if @last}}L{{/if}},{{/each}}"

        assert render(body, {"items": ["a", "b", "c"]}) == "0F,1,2L,"

    def test_each_over_mapping(self) -> None:
        """Test @key and this when iterating a mapping."""
        body = "{{#each m}}{{@key}}={{this}};{{/each}}"

        assert render(body, {"m": {"a": 1, "b": 2}}) == "a=1;b=2;"

    @pytest.mark.parametrize(
        ("flag", "expected"),
        [(True, "yes"), (False, "no"), ([], "no"), ("x", "yes"), (None, "no")],
    )
    def test_if_else(self, flag: Any, expected: str) -> None:
        """Test conditional truthiness."""
        assert render("{{#if flag}}yes{{else}}no{{/if}}", {"flag": flag}) == expected

    def test_if_missing_is_false(self) -> None:
        """Test that a missing condition renders the else branch."""
        assert render("{{#if flag}}yes{{else}}no{{/if}}", {}) == "no"

    def test_each_else_on_empty(self) -> None:
        """Test the else branch of an empty loop."""
        assert render("{{#each items}}x{{else}}empty{{/each}}", {"items": []}) == "empty"

    def test_quality_controls_precision(self) -> None:
        """Test float precision per quality level."""
        assert render("<v>{{v}}</v>", {"v": 3.14159}, "low") == "<v>3</v>"
        assert render("<v>{{v}}</v>", {"v": 3.14159}, "medium") == "<v>3.1</v>"
        assert render("<v>{{v}}</v>", {"v": 3.14159}) == "<v>3.142</v>"

    def test_comment_dropped(self) -> None:
        """Test that comments leave no trace."""
        assert render("<t>{{! todo }}x</t>", {}) == "<t>x</t>"


class TestRenderLoopItem:
    """Tests for rendering single anchored loop items."""

    def test_renders_one_item(self) -> None:
        """Test that an item renders exactly as inside the full output."""
        registry = TemplateRegistry(load_builtin=False)
        registry.register("t", {"body": "<g>{{#each items}}<r n=\"{{@index}}\">{{name}}</r>{{/each}}</g>"})
        compiled = registry.compile("t")
        anchor = compiled.loops["items"][0]
        data = {"items": [{"name": "A"}, {"name": "B"}]}

        assert registry.renderer.render_loop_item(anchor, data, 1) == '<r n="1">B</r>'
        assert registry.renderer.render_loop_item(anchor, data, 5) is None
