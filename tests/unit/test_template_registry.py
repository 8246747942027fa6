"""Unit tests for the template registry."""

from pathlib import Path
from typing import Any

import pytest

from chartsmith.errors import NotFoundError, RegistrationError
from chartsmith.templates.registry import TemplateRegistry


class TestRegistration:
    """Tests for registering templates and partials."""

    def test_register_returns_definition(
        self, templates: TemplateRegistry, list_template: dict[str, Any]
    ) -> None:
        """Test that register stores and returns the definition."""
        definition = templates.register("list", list_template)

        assert definition.id == "list"
        assert definition.name == "List"
        assert templates.has("list")
        assert templates.get("list") is definition

    def test_template_alias_for_body(self, templates: TemplateRegistry) -> None:
        """Test that "template" is accepted in place of "body"."""
        templates.register("t", {"template": "<t>{{x}}</t>"})

        assert templates.render("t", {"x": 1}) == "<t>1</t>"

    def test_empty_body_rejected(self, templates: TemplateRegistry) -> None:
        """Test that an empty body raises and stores nothing."""
        with pytest.raises(RegistrationError) as exc_info:
            templates.register("t", {"body": "   "})

        assert exc_info.value.subject == "t"
        assert not templates.has("t")

    def test_unresolved_partial_rejected(self, templates: TemplateRegistry) -> None:
        """Test that a missing partial fails at registration time."""
        with pytest.raises(RegistrationError, match="unresolved partial: row"):
            templates.register("t", {"body": "<g>{{> row}}</g>"})

        assert not templates.has("t")

    def test_failed_replacement_keeps_previous(self, templates: TemplateRegistry) -> None:
        """Test that an invalid re-registration leaves the old template in place."""
        templates.register("t", {"body": "<t>old</t>"})

        with pytest.raises(RegistrationError):
            templates.register("t", {"body": "{{#if x}}"})

        assert templates.render("t", {}) == "<t>old</t>"

    def test_global_partial(self, templates: TemplateRegistry) -> None:
        """Test that global partials are inlined."""
        templates.register_partial("label", "<text>{{name}}</text>")
        templates.register("t", {"body": "<g>{{#each items}}{{> label}}{{/each}}</g>"})

        assert templates.render("t", {"items": [{"name": "A"}]}) == "<g><text>A</text></g>"

    def test_replacing_partial_recompiles(self, templates: TemplateRegistry) -> None:
        """Test that changing a partial changes later renders."""
        templates.register_partial("label", "<a>{{x}}</a>")
        templates.register("t", {"body": "{{> label}}"})
        assert templates.render("t", {"x": 1}) == "<a>1</a>"

        templates.register_partial("label", "<b>{{x}}</b>")

        assert templates.render("t", {"x": 1}) == "<b>1</b>"

    def test_local_partial_overrides_global(self, templates: TemplateRegistry) -> None:
        """Test that template-local partials win over global ones."""
        templates.register_partial("label", "<global/>")
        templates.register("t", {"body": "{{> label}}", "partials": {"label": "<local/>"}})

        assert templates.render("t", {}) == "<local/>"

    def test_invalid_partial_name(self, templates: TemplateRegistry) -> None:
        """Test that partial names with spaces are rejected."""
        with pytest.raises(RegistrationError):
            templates.register_partial("bad name", "<a/>")

    def test_partial_breaking_a_template_rejected(self, templates: TemplateRegistry) -> None:
        """Test that a replacement partial is checked against the templates using it."""
        templates.register_partial("label", "<t>{{x}}</t>")
        templates.register("t", {"body": "<g>{{> label}}</g>"})

        with pytest.raises(RegistrationError, match="unresolved partial: missing") as exc_info:
            templates.register_partial("label", "<t>{{> missing}}</t>")

        assert exc_info.value.subject == "label"
        assert templates.render("t", {"x": 1}) == "<g><t>1</t></g>"

    def test_unbalanced_partial_rejected(self, templates: TemplateRegistry) -> None:
        """Test that block balance is checked even when no template uses the partial."""
        with pytest.raises(RegistrationError, match="unclosed"):
            templates.register_partial("row", "<r>{{#if x}}</r>")

        assert "row" not in templates.list_partials()

    def test_recursive_partial_rejected(self, templates: TemplateRegistry) -> None:
        """Test that a partial including itself through another is rejected."""
        templates.register_partial("outer", "<o>{{> inner}}</o>")

        with pytest.raises(RegistrationError, match="recursive partial"):
            templates.register_partial("inner", "<i>{{> outer}}</i>")

        assert templates.list_partials() == ["outer"]

    def test_forward_reference_allowed(self, templates: TemplateRegistry) -> None:
        """Test that a partial may name one registered after it."""
        templates.register_partial("outer", "<o>{{> inner}}</o>")
        templates.register_partial("inner", "<i/>")
        templates.register("t", {"body": "{{> outer}}"})

        assert templates.render("t", {}) == "<o><i/></o>"


class TestLookup:
    """Tests for lookups, removal and listing."""

    def test_unknown_template_raises(self, templates: TemplateRegistry) -> None:
        """Test that unknown ids raise NotFoundError with alternatives."""
        templates.register("a", {"body": "<a/>"})

        with pytest.raises(NotFoundError) as exc_info:
            templates.render("missing", {})

        assert exc_info.value.identifier == "missing"
        assert exc_info.value.available == ["a"]

    def test_remove(self, templates: TemplateRegistry) -> None:
        """Test removing a template."""
        templates.register("a", {"body": "<a/>"})

        assert templates.remove("a") is True
        assert templates.remove("a") is False
        assert not templates.has("a")

    def test_list_templates_omits_body(
        self, templates: TemplateRegistry, list_template: dict[str, Any]
    ) -> None:
        """Test that listings describe templates without their source."""
        templates.register("list", list_template)

        [entry] = templates.list_templates()

        assert entry["id"] == "list"
        assert entry["category"] == "test"
        assert "body" not in entry


class TestValidate:
    """Tests for variable validation."""

    def test_all_present(self, templates: TemplateRegistry, list_template: dict[str, Any]) -> None:
        """Test data providing every variable."""
        templates.register("list", list_template)

        result = templates.validate("list", {"width": 1, "height": 2, "title": "", "items": []})

        assert result.valid
        assert result.missing == []

    def test_missing_and_wildcard(self, templates: TemplateRegistry) -> None:
        """Test that "prefix.*" requires a mapping."""
        templates.register("t", {"body": "<a/>", "variables": ["title", "theme.*", "sections"]})

        result = templates.validate("t", {"title": "x", "theme": "flat"})

        assert not result.valid
        assert result.missing == ["theme.*", "sections"]

    def test_validate_unknown_template(self, templates: TemplateRegistry) -> None:
        """Test that validating an unknown id raises."""
        with pytest.raises(NotFoundError):
            templates.validate("missing", {})


class TestRenderCache:
    """Tests for the render result cache."""

    def test_repeat_render_is_cached(self, templates: TemplateRegistry) -> None:
        """Test that identical requests render once."""
        templates.register("t", {"body": "<t>{{x}}</t>"})

        templates.render("t", {"x": 1})
        templates.render("t", {"x": 1})

        assert templates.stats()["renders"] == 1

    def test_quality_is_part_of_key(self, templates: TemplateRegistry) -> None:
        """Test that a different quality renders again."""
        templates.register("t", {"body": "<t>{{x}}</t>"})

        assert templates.render("t", {"x": 1.25}, "high") == "<t>1.25</t>"
        assert templates.render("t", {"x": 1.25}, "low") == "<t>1</t>"
        assert templates.stats()["renders"] == 2

    def test_clear_cache(self, templates: TemplateRegistry) -> None:
        """Test that clearing the cache forces a new render."""
        templates.register("t", {"body": "<t>{{x}}</t>"})
        templates.render("t", {"x": 1})

        templates.clear_cache()
        templates.render("t", {"x": 1})

        assert templates.stats()["renders"] == 2

    def test_disabled_cache(self) -> None:
        """Test that every render executes when caching is off."""
        templates = TemplateRegistry(enable_cache=False, load_builtin=False)
        templates.register("t", {"body": "<t/>"})

        templates.render("t", {})
        templates.render("t", {})

        assert templates.stats()["renders"] == 2


class TestLoading:
    """Tests for builtin and directory loading."""

    def test_builtin_section_grid(self, builtin_templates: TemplateRegistry) -> None:
        """Test that the packaged grid registers with its analysis."""
        info = builtin_templates.info("section_grid")

        assert info["category"] == "grid"
        assert info["anchored_loops"] == ["sections"]
        assert info["partials"] == ["item_row", "section_frame"]

        compiled = builtin_templates.compile("section_grid")
        assert "title" in compiled.bindings
        assert compiled.references["theme.textColor"] == {"binding", "block"}

    def test_load_directory(self, templates: TemplateRegistry, tmp_path: Path) -> None:
        """Test registering YAML files with global partials and skipping bad ones."""
        (tmp_path / "bars.yaml").write_text(
            "global_partials:\n"
            "  bar: '<rect width=\"{{value}}\"/>'\n"
            "name: Bars\n"
            "body: '<g>{{#each bars}}{{> bar}}{{/each}}</g>'\n"
        )
        (tmp_path / "named.yml").write_text("id: custom_id\nbody: '<a/>'\n")
        (tmp_path / "broken.yaml").write_text("body: '{{#if x}}'\n")

        loaded = templates.load_directory(tmp_path)

        assert sorted(loaded) == ["bars", "custom_id"]
        assert templates.list_partials() == ["bar"]
        assert templates.render("bars", {"bars": [{"value": 3}]}) == '<g><rect width="3"/></g>'

    def test_missing_directory(self, templates: TemplateRegistry, tmp_path: Path) -> None:
        """Test that a missing directory loads nothing."""
        assert templates.load_directory(tmp_path / "absent") == []
