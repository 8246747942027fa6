"""Patch application.

Every operation's targets are resolved against the unmodified document
before anything is mutated, so an earlier operation can never change what
a later selector matches. Operations whose target does not resolve are
recorded as ApplyFailures and skipped; the rest still apply.
"""

import copy
import logging

from bs4 import Tag
from soupsieve import SelectorSyntaxError

from chartsmith.errors import MarkupError
from chartsmith.markup import MarkupDocument, parse_element
from chartsmith.models.patch import (
    TEXT_CONTENT,
    ApplyFailure,
    ApplyResult,
    Operation,
    OperationType,
    Patch,
)

logger = logging.getLogger(__name__)


def _set_attribute(element: Tag, attribute: str, value: object) -> None:
    text = "" if value is None else str(value)
    if attribute == TEXT_CONTENT:
        # Empty elements serialize self-closed
        if text:
            element.string = text
        else:
            element.clear()
    else:
        element[attribute] = text


def _remove_attribute(element: Tag, attribute: str) -> None:
    if attribute == TEXT_CONTENT:
        element.clear()
    elif attribute in element.attrs:
        del element[attribute]


def _insert(parent: Tag, element: Tag, position: int | None) -> None:
    """Insert element so it becomes the position-th element child (0-based)."""
    children = [child for child in parent.children if isinstance(child, Tag)]
    if position is None:
        parent.append(element)
    elif position <= 0:
        parent.insert(0, element)
    elif position - 1 < len(children):
        children[position - 1].insert_after(element)
    else:
        raise IndexError(f"position {position} is past the {len(children)} element children")


class _Resolved:
    __slots__ = ("operation", "targets", "element")

    def __init__(self, operation: Operation, targets: list[Tag], element: Tag | None = None) -> None:
        self.operation = operation
        self.targets = targets
        self.element = element


def _resolve(doc: MarkupDocument, op: Operation) -> _Resolved:
    """Resolve an operation's targets; raises ValueError with the failure reason."""
    if op.type == OperationType.REBUILD_SECTION:
        raise ValueError(f"rebuild_section ({op.section}) cannot be applied piecemeal")
    if not op.selector:
        raise ValueError("operation has no selector")

    try:
        targets = doc.select(op.selector)
    except SelectorSyntaxError as e:
        raise ValueError(f"invalid selector: {e}") from e
    if not targets:
        raise ValueError(f"no element matches {op.selector}")

    element = None
    if op.type == OperationType.ADD_ELEMENT:
        if not op.element:
            raise ValueError("add_element without markup")
        try:
            element = parse_element(op.element)
        except MarkupError as e:
            raise ValueError(str(e)) from e
    elif op.type in (
        OperationType.UPDATE_ATTRIBUTE,
        OperationType.ADD_ATTRIBUTE,
        OperationType.REMOVE_ATTRIBUTE,
    ) and not op.attribute:
        raise ValueError(f"{op.type.value} without an attribute")

    return _Resolved(op, targets, element)


def _mutate(resolved: _Resolved) -> None:
    op = resolved.operation
    for i, target in enumerate(resolved.targets):
        if op.type in (OperationType.UPDATE_ATTRIBUTE, OperationType.ADD_ATTRIBUTE):
            _set_attribute(target, op.attribute or "", op.value)
        elif op.type == OperationType.UPDATE_ATTRIBUTES:
            for attribute, value in op.attributes.items():
                _set_attribute(target, attribute, value)
        elif op.type == OperationType.REMOVE_ATTRIBUTE:
            _remove_attribute(target, op.attribute or "")
        elif op.type == OperationType.REMOVE_ELEMENT:
            target.extract()
        elif op.type == OperationType.ADD_ELEMENT and resolved.element is not None:
            element = resolved.element if i == 0 else copy.copy(resolved.element)
            _insert(target, element, op.position)


def apply_patch(markup: str, patch: Patch) -> ApplyResult:
    """Apply a patch to prior rendered markup.

    Raises:
        MarkupError: If the prior markup cannot be parsed
    """
    doc = MarkupDocument(markup)
    failures: list[ApplyFailure] = []
    resolved: list[_Resolved] = []

    for op in patch.operations:
        try:
            resolved.append(_resolve(doc, op))
        except ValueError as e:
            failures.append(ApplyFailure(op, str(e)))

    applied = 0
    for item in resolved:
        try:
            _mutate(item)
            applied += 1
        except IndexError as e:
            failures.append(ApplyFailure(item.operation, str(e)))

    if failures:
        logger.warning("Patch %s: %d operation(s) could not be applied", patch.id, len(failures))
    return ApplyResult(output=doc.serialize(), applied=applied, failures=failures)
