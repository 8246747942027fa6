"""Structural diff of JSON-like data trees.

Paths use dots for mapping keys and brackets for list indices:
"sections[0].items[2].name". Lists are compared positionally, so an
insertion at the head reports a change at every following index.
"""

import logging
from typing import Any

from chartsmith.models.changes import MISSING, ChangeKind, ChangeRecord, Impact

logger = logging.getLogger(__name__)

HIGH_IMPACT_PREFIXES: tuple[str, ...] = (
    "structure",
    "width",
    "height",
    "viewBox",
    "theme.background",
    "theme.borderColor",
)
MEDIUM_IMPACT_PREFIXES: tuple[str, ...] = ("sections", "items", "theme")


def type_class(value: Any) -> str:
    """Coarse type class: object (mappings, lists, None), number, string or boolean."""
    if value is None or isinstance(value, dict | list | tuple):
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def has_prefix(path: str, prefix: str) -> bool:
    """Segment-aware prefix test: "theme.background" is not a prefix of "theme.backgroundSecondary"."""
    return path == prefix or path.startswith(prefix + ".") or path.startswith(prefix + "[")


def _child_path(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


def _index_path(path: str, index: int) -> str:
    return f"{path}[{index}]"


class DiffEngine:
    """Computes change records between two data trees.

    Usage:
        engine = DiffEngine()
        changes = engine.diff(old_data, new_data)
    """

    def __init__(
        self,
        high_impact: tuple[str, ...] = HIGH_IMPACT_PREFIXES,
        medium_impact: tuple[str, ...] = MEDIUM_IMPACT_PREFIXES,
    ) -> None:
        self.high_impact = high_impact
        self.medium_impact = medium_impact

    def classify(self, path: str) -> Impact:
        """Impact of a change at path, by prefix."""
        if any(has_prefix(path, prefix) for prefix in self.high_impact):
            return Impact.HIGH
        if any(has_prefix(path, prefix) for prefix in self.medium_impact):
            return Impact.MEDIUM
        return Impact.LOW

    def diff(self, old: Any, new: Any) -> list[ChangeRecord]:
        """Return every change from old to new, in traversal order.

        diff(x, x) is always empty.
        """
        changes: list[ChangeRecord] = []
        self._diff(old, new, "", changes, set())
        logger.debug("Diff produced %d change(s)", len(changes))
        return changes

    def _record(
        self,
        changes: list[ChangeRecord],
        path: str,
        kind: ChangeKind,
        old: Any,
        new: Any,
        impact: Impact | None = None,
    ) -> None:
        changes.append(ChangeRecord(
            path=path,
            kind=kind,
            impact=impact or self.classify(path),
            old_value=old,
            new_value=new,
        ))

    def _diff(
        self,
        old: Any,
        new: Any,
        path: str,
        changes: list[ChangeRecord],
        active: set[tuple[int, int]],
    ) -> None:
        if old is new:
            return

        if type_class(old) != type_class(new):
            self._record(changes, path, ChangeKind.TYPE_CHANGE, old, new)
            return

        old_container = isinstance(old, dict | list | tuple)
        new_container = isinstance(new, dict | list | tuple)
        if not (old_container and new_container):
            if old != new:
                self._record(changes, path, ChangeKind.VALUE_CHANGE, old, new)
            return

        if isinstance(old, dict) != isinstance(new, dict):
            self._record(changes, path, ChangeKind.STRUCTURE_CHANGE, old, new, impact=Impact.HIGH)
            return

        # Only pairs on the current recursion stack are skipped; shared
        # substructures are still compared everywhere they occur
        pair = (id(old), id(new))
        if pair in active:
            return
        active.add(pair)
        try:
            if isinstance(old, dict):
                self._diff_mappings(old, new, path, changes, active)
            else:
                self._diff_sequences(old, new, path, changes, active)
        finally:
            active.discard(pair)

    def _diff_mappings(
        self,
        old: dict[str, Any],
        new: dict[str, Any],
        path: str,
        changes: list[ChangeRecord],
        active: set[tuple[int, int]],
    ) -> None:
        for key in old:
            child = _child_path(path, key)
            if key not in new:
                self._record(changes, child, ChangeKind.PROPERTY_REMOVED, old[key], MISSING)
            else:
                self._diff(old[key], new[key], child, changes, active)
        for key in new:
            if key not in old:
                self._record(changes, _child_path(path, key), ChangeKind.PROPERTY_ADDED, MISSING, new[key])

    def _diff_sequences(
        self,
        old: list[Any] | tuple[Any, ...],
        new: list[Any] | tuple[Any, ...],
        path: str,
        changes: list[ChangeRecord],
        active: set[tuple[int, int]],
    ) -> None:
        for index in range(max(len(old), len(new))):
            child = _index_path(path, index)
            if index >= len(old):
                self._record(changes, child, ChangeKind.ARRAY_ITEM_ADDED, MISSING, new[index])
            elif index >= len(new):
                self._record(changes, child, ChangeKind.ARRAY_ITEM_REMOVED, old[index], MISSING)
            else:
                self._diff(old[index], new[index], child, changes, active)

        if len(old) != len(new):
            self._record(changes, path, ChangeKind.ARRAY_LENGTH_CHANGE, len(old), len(new))


def diff(old: Any, new: Any) -> list[ChangeRecord]:
    """Diff with the default impact prefixes."""
    return DiffEngine().diff(old, new)
