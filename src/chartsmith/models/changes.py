"""Change records produced by the diff engine.

- ChangeKind: What kind of structural change happened at a path
- Impact: Coarse structural significance of a path
- ChangeRecord: One change at one dotted path
- ChangeSummary: Totals by kind/impact plus affected top-level paths
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ChangeKind(Enum):
    """Kind of change between two data trees."""

    VALUE_CHANGE = "value_change"
    TYPE_CHANGE = "type_change"
    PROPERTY_ADDED = "property_added"
    PROPERTY_REMOVED = "property_removed"
    ARRAY_ITEM_ADDED = "array_item_added"
    ARRAY_ITEM_REMOVED = "array_item_removed"
    ARRAY_LENGTH_CHANGE = "array_length_change"
    STRUCTURE_CHANGE = "structure_change"


class Impact(Enum):
    """How structurally significant a changed path is."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def priority(self) -> int:
        """Operation priority derived from impact (lower runs first)."""
        return _PRIORITIES[self]


_PRIORITIES = {Impact.HIGH: 1, Impact.MEDIUM: 2, Impact.LOW: 3}


class _Missing:
    """Marker for "no value on this side" (distinct from a JSON null)."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass
class ChangeRecord:
    """A single change at a dotted path.

    Attributes:
        path: Dotted path with list indices, e.g. "sections[0].items[2].name"
        kind: Change kind
        impact: Impact classification of the path
        old_value: Value before the change (MISSING for additions)
        new_value: Value after the change (MISSING for removals)
    """

    path: str
    kind: ChangeKind
    impact: Impact
    old_value: Any = MISSING
    new_value: Any = MISSING

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "path": self.path,
            "kind": self.kind.value,
            "impact": self.impact.value,
        }
        if self.old_value is not MISSING:
            result["old_value"] = self.old_value
        if self.new_value is not MISSING:
            result["new_value"] = self.new_value
        return result


@dataclass
class ChangeSummary:
    """Aggregated view of a change-set."""

    total: int = 0
    by_kind: dict[str, int] = field(default_factory=dict)
    by_impact: dict[str, int] = field(default_factory=lambda: {"high": 0, "medium": 0, "low": 0})
    affected_paths: list[str] = field(default_factory=list)

    @classmethod
    def from_changes(cls, changes: list[ChangeRecord]) -> "ChangeSummary":
        """Summarize a list of change records."""
        by_kind = Counter(change.kind.value for change in changes)
        by_impact = {"high": 0, "medium": 0, "low": 0}
        affected: list[str] = []
        for change in changes:
            by_impact[change.impact.value] += 1
            root = change.path.split(".")[0].split("[")[0]
            if root not in affected:
                affected.append(root)
        return cls(
            total=len(changes),
            by_kind=dict(by_kind),
            by_impact=by_impact,
            affected_paths=affected,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total": self.total,
            "by_kind": dict(self.by_kind),
            "by_impact": dict(self.by_impact),
            "affected_paths": list(self.affected_paths),
        }
