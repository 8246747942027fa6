"""Unit tests for change -> operation mapping."""

import copy
from typing import Any

import pytest

from chartsmith.incremental.diff import DiffEngine
from chartsmith.incremental.mapping import (
    MappingContext,
    TargetRule,
    map_change,
    rebuild,
)
from chartsmith.models.changes import ChangeKind, ChangeRecord, Impact
from chartsmith.models.patch import TEXT_CONTENT, OperationType
from chartsmith.templates.registry import TemplateRegistry

TITLE_SELECTOR = ":scope > :nth-child(1) > :nth-child(1)"
ROWS_SELECTOR = ":scope > :nth-child(1) > :nth-child(2)"


@pytest.fixture
def list_context(
    templates: TemplateRegistry, list_template: dict[str, Any]
) -> MappingContext:
    templates.register("list", list_template)
    return MappingContext(compiled=templates.compile("list"), renderer=templates.renderer)


def changes_between(old: Any, new: Any) -> list[ChangeRecord]:
    return DiffEngine().diff(old, new)


def with_data(ctx: MappingContext, data: dict[str, Any]) -> MappingContext:
    ctx.new_data = data
    return ctx


class TestTemplateRules:
    """Tests for rules derived from compiled templates."""

    def test_binding_becomes_text_update(
        self, list_context: MappingContext, list_data: dict[str, Any]
    ) -> None:
        """Test that a bound title maps to a text content update."""
        new = copy.deepcopy(list_data)
        new["title"] = "Stock"
        [change] = changes_between(list_data, new)

        [op] = map_change(change, with_data(list_context, new))

        assert op.type == OperationType.UPDATE_ATTRIBUTE
        assert op.selector == TITLE_SELECTOR
        assert op.attribute == TEXT_CONTENT
        assert op.value == "Stock"
        assert op.old_value == "Inventory"
        assert op.source_path == "title"

    def test_removed_binding_value_restores_placeholder(
        self, list_context: MappingContext, list_data: dict[str, Any]
    ) -> None:
        """Test that a removed value renders the verbatim placeholder."""
        new = copy.deepcopy(list_data)
        del new["title"]
        [change] = changes_between(list_data, new)

        [op] = map_change(change, with_data(list_context, new))

        assert op.value == "{{title}}"

    def test_unreferenced_path_needs_nothing(
        self, list_context: MappingContext, list_data: dict[str, Any]
    ) -> None:
        """Test that paths the template never reads produce no operations."""
        new = copy.deepcopy(list_data)
        new["subtitle"] = "unused"
        [change] = changes_between(list_data, new)

        assert map_change(change, with_data(list_context, new)) == []

    def test_appended_item_inserts_element(
        self, list_context: MappingContext, list_data: dict[str, Any]
    ) -> None:
        """Test that a new loop item becomes one add_element."""
        new = copy.deepcopy(list_data)
        new["items"].append({"name": "Plums", "color": "#0000ff"})
        item_added, length = changes_between(list_data, new)
        ctx = with_data(list_context, new)

        [op] = map_change(item_added, ctx)

        assert op.type == OperationType.ADD_ELEMENT
        assert op.selector == ROWS_SELECTOR
        assert op.position == 2
        assert op.element == '<text class="row" fill="#0000ff">Plums</text>'
        assert length.kind == ChangeKind.ARRAY_LENGTH_CHANGE
        assert map_change(length, ctx) == []

    def test_removed_item_removes_element(
        self, list_context: MappingContext, list_data: dict[str, Any]
    ) -> None:
        """Test that a removed loop item becomes one remove_element."""
        new = copy.deepcopy(list_data)
        new["items"].pop()
        item_removed, _ = changes_between(list_data, new)

        [op] = map_change(item_removed, with_data(list_context, new))

        assert op.type == OperationType.REMOVE_ELEMENT
        assert op.selector == f"{ROWS_SELECTOR} > :nth-child(2)"

    def test_changed_item_is_replaced(
        self, list_context: MappingContext, list_data: dict[str, Any]
    ) -> None:
        """Test that a field change inside an item replaces that item's element."""
        new = copy.deepcopy(list_data)
        new["items"][0]["name"] = "Kiwis"
        [change] = changes_between(list_data, new)

        remove, add = map_change(change, with_data(list_context, new))

        assert remove.type == OperationType.REMOVE_ELEMENT
        assert remove.selector == f"{ROWS_SELECTOR} > :nth-child(1)"
        assert add.type == OperationType.ADD_ELEMENT
        assert add.position == 0
        assert "Kiwis" in add.element

    def test_loop_replaced_by_scalar_rebuilds(
        self, list_context: MappingContext, list_data: dict[str, Any]
    ) -> None:
        """Test that a loop path changing type forces a rebuild."""
        new = copy.deepcopy(list_data)
        new["items"] = "none"
        [change] = changes_between(list_data, new)

        [op] = map_change(change, with_data(list_context, new))

        assert op.type == OperationType.REBUILD_SECTION
        assert op.section == "items"

    def test_block_reference_rebuilds(self, templates: TemplateRegistry) -> None:
        """Test that paths read inside conditionals force a rebuild."""
        templates.register("t", {"body": "<g>{{#if flag}}<a/>{{/if}}</g>"})
        ctx = MappingContext(compiled=templates.compile("t"), renderer=templates.renderer)
        [change] = changes_between({"flag": True}, {"flag": False})

        [op] = map_change(change, with_data(ctx, {"flag": False}))

        assert op.type == OperationType.REBUILD_SECTION

    def test_last_item_sensitive_loop_rebuilds_on_resize(self, templates: TemplateRegistry) -> None:
        """Test that loops reading @last cannot grow piecemeal."""
        templates.register("t", {"body": "<g>{{#each xs}}<r>{{#if @last}}end{{/if}}</r>{{/each}}</g>"})
        ctx = MappingContext(compiled=templates.compile("t"), renderer=templates.renderer)
        new = {"xs": [1, 2]}
        item_added, _ = changes_between({"xs": [1]}, new)

        [op] = map_change(item_added, with_data(ctx, new))

        assert op.type == OperationType.REBUILD_SECTION


class TestTableRules:
    """Tests for the fixed selector tables used without a template."""

    def test_exact_target(self) -> None:
        """Test width maps to the svg width attribute."""
        [change] = changes_between({"width": 800}, {"width": 640})

        [op] = map_change(change, MappingContext())

        assert (op.type, op.selector, op.attribute, op.value) == (
            OperationType.UPDATE_ATTRIBUTE, "svg", "width", "640",
        )
        assert op.priority == Impact.HIGH.priority

    def test_prefix_target(self) -> None:
        """Test theme.background maps to the background fill."""
        [change] = changes_between({"theme": {"background": "#fff"}}, {"theme": {"background": "#000"}})

        [op] = map_change(change, MappingContext())

        assert (op.selector, op.attribute, op.value) == (".chart-background", "fill", "#000")

    def test_indexed_item_target(self) -> None:
        """Test item properties map to positional item selectors."""
        change = ChangeRecord(
            "sections[0].items[1].name", ChangeKind.VALUE_CHANGE, Impact.MEDIUM, "a", "b",
        )

        [op] = map_change(change, MappingContext())

        assert op.selector == ".section-0 .item:nth-child(2)"
        assert op.attribute == TEXT_CONTENT

    def test_indexed_section_target(self) -> None:
        """Test section properties fall back to the property name as attribute."""
        change = ChangeRecord("sections[2].opacity", ChangeKind.VALUE_CHANGE, Impact.MEDIUM, 1, 0.5)

        [op] = map_change(change, MappingContext())

        assert (op.selector, op.attribute, op.value) == (".section-2", "opacity", "0.5")

    def test_added_and_removed_properties(self) -> None:
        """Test add_attribute and remove_attribute operations."""
        added, = changes_between({}, {"height": 10})
        removed, = changes_between({"height": 10}, {})

        assert map_change(added, MappingContext())[0].type == OperationType.ADD_ATTRIBUTE
        assert map_change(removed, MappingContext())[0].type == OperationType.REMOVE_ATTRIBUTE

    def test_unmapped_change_rebuilds(self) -> None:
        """Test that no change is silently dropped."""
        [change] = changes_between({"legend": 1}, {"legend": 2})

        [op] = map_change(change, MappingContext())

        assert op.type == OperationType.REBUILD_SECTION
        assert op.section == "legend"

    def test_container_values_rebuild(self) -> None:
        """Test that an exact path turning into a container is not a scalar update."""
        [change] = changes_between({"width": 1}, {"width": {"value": 1}})

        assert map_change(change, MappingContext())[0].type == OperationType.REBUILD_SECTION

    def test_custom_rules(self) -> None:
        """Test that caller rules replace the defaults."""
        rules = [TargetRule("everything", lambda change, ctx: True, lambda change, ctx: [])]
        [change] = changes_between({"legend": 1}, {"legend": 2})

        assert map_change(change, MappingContext(), rules) == []


class TestRebuild:
    """Tests for rebuild operations."""

    def test_section_is_top_level_key(self) -> None:
        """Test the rebuilt section is the change's top-level path."""
        change = ChangeRecord("sections[1].name", ChangeKind.VALUE_CHANGE, Impact.MEDIUM)

        assert rebuild(change).section == "sections"

    def test_root_change(self) -> None:
        """Test that a change at the root rebuilds "root"."""
        change = ChangeRecord("", ChangeKind.TYPE_CHANGE, Impact.LOW)

        assert rebuild(change).section == "root"
