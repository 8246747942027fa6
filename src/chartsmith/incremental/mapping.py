"""Change path -> markup target mapping.

Mapping is an ordered list of TargetRules; the first rule whose matcher
accepts a change produces its operations. A change no rule accepts becomes a
rebuild_section operation, so no change is ever dropped silently.

With a compiled template, the template's own analysis decides: paths the
template never reads need no operation, bindings become attribute or text
updates, anchored loop items become element insertions/removals, and
everything else is rebuilt. Without one, fixed selector tables are used.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from chartsmith.models.changes import MISSING, ChangeKind, ChangeRecord
from chartsmith.models.patch import TEXT_CONTENT, Operation, OperationType
from chartsmith.renderers.filters import format_value
from chartsmith.templates.compiler import CompiledTemplate
from chartsmith.templates.renderer import TemplateRenderer, resolve_path

logger = logging.getLogger(__name__)

# Paths mapped 1:1 to an element attribute
EXACT_TARGETS: dict[str, tuple[str, str]] = {
    "width": ("svg", "width"),
    "height": ("svg", "height"),
    "viewBox": ("svg", "viewBox"),
}

# Paths (and their descendants) mapped to an element attribute
PREFIX_TARGETS: dict[str, tuple[str, str]] = {
    "theme.background": (".chart-background", "fill"),
    "theme.borderColor": (".chart-background", "stroke"),
    "theme.textColor": (".chart-title", "fill"),
    "title": (".chart-title", TEXT_CONTENT),
}

# Data property -> markup attribute for indexed collection paths
PROPERTY_ATTRIBUTES: dict[str, str] = {
    "name": TEXT_CONTENT,
    "label": TEXT_CONTENT,
    "color": "fill",
    "backgroundColor": "fill",
    "borderColor": "stroke",
    "fontSize": "font-size",
}

_ITEM_PATH = re.compile(r"^sections\[(\d+)\]\.items\[(\d+)\]\.(\w+)$")
_SECTION_PATH = re.compile(r"^sections\[(\d+)\]\.(\w+)$")
_LEADING_INDEX = re.compile(r"^\[(\d+)\]")

_SCALAR_KINDS = (
    ChangeKind.VALUE_CHANGE,
    ChangeKind.PROPERTY_ADDED,
    ChangeKind.PROPERTY_REMOVED,
)


@dataclass
class MappingContext:
    """What rules may consult while mapping a change.

    Attributes:
        compiled: Template the prior output was rendered from
        renderer: Renders loop items for element insertion
        new_data: Prepared data of the new request
        precision: Decimal places for formatted numbers
    """

    compiled: CompiledTemplate | None = None
    renderer: TemplateRenderer | None = None
    new_data: Any = None
    precision: int = 3


@dataclass
class TargetRule:
    """One mapping rule: matcher plus operation resolver."""

    name: str
    matches: Callable[[ChangeRecord, MappingContext], bool]
    resolve: Callable[[ChangeRecord, MappingContext], list[Operation]]


def rebuild(change: ChangeRecord) -> Operation:
    """Operation forcing a rebuild of the subtree a change belongs to."""
    section = change.path.split(".")[0].split("[")[0] or "root"
    return Operation(
        type=OperationType.REBUILD_SECTION,
        section=section,
        priority=1,
        source_path=change.path,
    )


def _lookup(data: Any, change_path: str) -> tuple[bool, Any]:
    return resolve_path(data, change_path.replace("[", ".").replace("]", ""))


def _attribute_op(change: ChangeRecord, selector: str, attribute: str, value: str) -> Operation:
    return Operation(
        type=OperationType.UPDATE_ATTRIBUTE,
        selector=selector,
        attribute=attribute,
        value=value,
        old_value=None if change.old_value is MISSING else change.old_value,
        priority=change.impact.priority,
        source_path=change.path,
    )


# =============================================================================
# Template-derived rules
# =============================================================================


def _has_template(change: ChangeRecord, ctx: MappingContext) -> bool:
    return ctx.compiled is not None


def _kinds(ctx: MappingContext, change: ChangeRecord) -> list[set[str]]:
    compiled: CompiledTemplate = ctx.compiled  # type: ignore[assignment]
    return [compiled.references[ref] for ref in compiled.touching(change.path)]


def _is_unreferenced(change: ChangeRecord, ctx: MappingContext) -> bool:
    return _has_template(change, ctx) and not _kinds(ctx, change)


def _only_bindings(change: ChangeRecord, ctx: MappingContext) -> bool:
    return _has_template(change, ctx) and all(kinds == {"binding"} for kinds in _kinds(ctx, change))


def _bindings_and_loops(change: ChangeRecord, ctx: MappingContext) -> bool:
    return _has_template(change, ctx) and all(kinds <= {"binding", "loop"} for kinds in _kinds(ctx, change))


def _binding_ops(ref: str, change: ChangeRecord, ctx: MappingContext) -> list[Operation]:
    compiled: CompiledTemplate = ctx.compiled  # type: ignore[assignment]
    found, value = _lookup(ctx.new_data, ref)
    ops = []
    for binding in compiled.bindings.get(ref, []):
        text = format_value(value, ctx.precision) if found else binding.placeholder
        ops.append(_attribute_op(change, binding.selector, binding.attribute, text))
    return ops


def _loop_ops(ref: str, change: ChangeRecord, ctx: MappingContext) -> list[Operation] | None:
    """Element operations for a change inside an anchored loop; None forces a rebuild."""
    compiled: CompiledTemplate = ctx.compiled  # type: ignore[assignment]
    if change.path == ref:
        return [] if change.kind == ChangeKind.ARRAY_LENGTH_CHANGE else None

    match = _LEADING_INDEX.match(change.path[len(ref):]) if change.path.startswith(ref) else None
    if match is None or ctx.renderer is None:
        return None
    index = int(match.group(1))
    whole_item = match.end() == len(change.path) - len(ref)

    found, items = _lookup(ctx.new_data, ref)
    if not found or not isinstance(items, list):
        return None

    ops: list[Operation] = []
    for anchor in compiled.loops.get(ref, []):
        resize = whole_item and change.kind in (ChangeKind.ARRAY_ITEM_ADDED, ChangeKind.ARRAY_ITEM_REMOVED)
        if resize and anchor.uses_last:
            return None

        if change.kind != ChangeKind.ARRAY_ITEM_ADDED or not whole_item:
            ops.append(Operation(
                type=OperationType.REMOVE_ELEMENT,
                selector=anchor.item_selector(index),
                priority=change.impact.priority,
                source_path=change.path,
            ))
        if change.kind != ChangeKind.ARRAY_ITEM_REMOVED or not whole_item:
            element = ctx.renderer.render_loop_item(anchor, ctx.new_data, index, ctx.precision)
            if element is None:
                return None
            ops.append(Operation(
                type=OperationType.ADD_ELEMENT,
                selector=anchor.parent_selector,
                element=element,
                position=anchor.position(index),
                priority=change.impact.priority,
                source_path=change.path,
            ))
    return ops


def _resolve_bindings(change: ChangeRecord, ctx: MappingContext) -> list[Operation]:
    compiled: CompiledTemplate = ctx.compiled  # type: ignore[assignment]
    ops: list[Operation] = []
    for ref in compiled.touching(change.path):
        ops.extend(_binding_ops(ref, change, ctx))
    return ops


def _resolve_bindings_and_loops(change: ChangeRecord, ctx: MappingContext) -> list[Operation]:
    compiled: CompiledTemplate = ctx.compiled  # type: ignore[assignment]
    ops: list[Operation] = []
    for ref in compiled.touching(change.path):
        kinds = compiled.references[ref]
        if "binding" in kinds:
            ops.extend(_binding_ops(ref, change, ctx))
        if "loop" in kinds:
            loop_ops = _loop_ops(ref, change, ctx)
            if loop_ops is None:
                return [rebuild(change)]
            ops.extend(loop_ops)
    return ops


# =============================================================================
# Fixed selector tables
# =============================================================================


def _table_op(change: ChangeRecord, ctx: MappingContext, selector: str, attribute: str) -> Operation:
    if change.kind == ChangeKind.PROPERTY_REMOVED:
        return Operation(
            type=OperationType.REMOVE_ATTRIBUTE,
            selector=selector,
            attribute=attribute,
            priority=change.impact.priority,
            source_path=change.path,
        )
    op = _attribute_op(change, selector, attribute, format_value(change.new_value, ctx.precision))
    if change.kind == ChangeKind.PROPERTY_ADDED:
        op.type = OperationType.ADD_ATTRIBUTE
    return op


def _is_scalar_change(change: ChangeRecord) -> bool:
    if change.kind == ChangeKind.TYPE_CHANGE:
        return not isinstance(change.new_value, dict | list)
    return change.kind in _SCALAR_KINDS and not isinstance(change.new_value, dict | list)


def _exact_matches(change: ChangeRecord, ctx: MappingContext) -> bool:
    return change.path in EXACT_TARGETS and _is_scalar_change(change)


def _exact_resolve(change: ChangeRecord, ctx: MappingContext) -> list[Operation]:
    selector, attribute = EXACT_TARGETS[change.path]
    return [_table_op(change, ctx, selector, attribute)]


def _prefix_target(path: str) -> tuple[str, str] | None:
    for prefix, target in PREFIX_TARGETS.items():
        if path == prefix or path.startswith(prefix + ".") or path.startswith(prefix + "["):
            return target
    return None


def _prefix_matches(change: ChangeRecord, ctx: MappingContext) -> bool:
    return _prefix_target(change.path) is not None and _is_scalar_change(change)


def _prefix_resolve(change: ChangeRecord, ctx: MappingContext) -> list[Operation]:
    selector, attribute = _prefix_target(change.path)  # type: ignore[misc]
    return [_table_op(change, ctx, selector, attribute)]


def _indexed_target(path: str) -> tuple[str, str] | None:
    if match := _ITEM_PATH.match(path):
        section, item, prop = match.groups()
        selector = f".section-{section} .item:nth-child({int(item) + 1})"
        return selector, PROPERTY_ATTRIBUTES.get(prop, prop)
    if match := _SECTION_PATH.match(path):
        section, prop = match.groups()
        return f".section-{section}", PROPERTY_ATTRIBUTES.get(prop, prop)
    return None


def _indexed_matches(change: ChangeRecord, ctx: MappingContext) -> bool:
    return _indexed_target(change.path) is not None and _is_scalar_change(change)


def _indexed_resolve(change: ChangeRecord, ctx: MappingContext) -> list[Operation]:
    selector, attribute = _indexed_target(change.path)  # type: ignore[misc]
    return [_table_op(change, ctx, selector, attribute)]


DEFAULT_RULES: list[TargetRule] = [
    TargetRule("template_unreferenced", _is_unreferenced, lambda change, ctx: []),
    TargetRule("template_bindings", _only_bindings, _resolve_bindings),
    TargetRule("template_loop_items", _bindings_and_loops, _resolve_bindings_and_loops),
    TargetRule("template_rebuild", _has_template, lambda change, ctx: [rebuild(change)]),
    TargetRule("exact", _exact_matches, _exact_resolve),
    TargetRule("prefix", _prefix_matches, _prefix_resolve),
    TargetRule("indexed", _indexed_matches, _indexed_resolve),
]


def map_change(
    change: ChangeRecord,
    ctx: MappingContext,
    rules: list[TargetRule] | None = None,
) -> list[Operation]:
    """Operations for one change, from the first matching rule."""
    for rule in rules if rules is not None else DEFAULT_RULES:
        if rule.matches(change, ctx):
            ops = rule.resolve(change, ctx)
            logger.debug("%s -> %s (%d op(s))", change.path, rule.name, len(ops))
            return ops
    logger.debug("%s -> unmapped, rebuilding", change.path)
    return [rebuild(change)]
