"""Patch entities.

- OperationType: Markup mutation kinds
- Operation: One selector-targeted mutation
- Efficiency: Inputs and outcome of the patch-vs-rebuild decision
- Patch: Ordered operations derived from a change-set
- ApplyFailure / ApplyResult: Outcome of applying a patch to markup
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chartsmith.models.changes import ChangeRecord, ChangeSummary


class OperationType(Enum):
    """Markup mutation kinds."""

    UPDATE_ATTRIBUTE = "update_attribute"
    UPDATE_ATTRIBUTES = "update_attributes"
    ADD_ATTRIBUTE = "add_attribute"
    REMOVE_ATTRIBUTE = "remove_attribute"
    ADD_ELEMENT = "add_element"
    REMOVE_ELEMENT = "remove_element"
    REBUILD_SECTION = "rebuild_section"


# Pseudo-attribute addressing an element's text content
TEXT_CONTENT = "textContent"


@dataclass
class Operation:
    """A single markup mutation.

    Attributes:
        type: Mutation kind
        selector: CSS selector of the target element(s); for add_element the parent
        priority: 1 (high impact) .. 3 (low impact); lower runs first
        attribute: Attribute name for single-attribute operations
        value: New value for update/add attribute
        old_value: Previous value (informational)
        attributes: Attribute -> value map for update_attributes
        element: Markup of the element to insert (add_element)
        position: Element-child index to insert at (add_element)
        section: Path of the subtree to rebuild (rebuild_section)
        source_path: Data path that produced this operation
    """

    type: OperationType
    selector: str | None = None
    priority: int = 2
    attribute: str | None = None
    value: Any = None
    old_value: Any = None
    attributes: dict[str, Any] = field(default_factory=dict)
    element: str | None = None
    position: int | None = None
    section: str | None = None
    source_path: str | None = None

    def key(self) -> tuple[Any, ...]:
        """Identity used for duplicate removal (type + target + payload)."""
        payload: Any
        if self.type == OperationType.UPDATE_ATTRIBUTES:
            payload = tuple(sorted((k, str(v)) for k, v in self.attributes.items()))
        elif self.type in (OperationType.ADD_ELEMENT,):
            payload = (self.element, self.position)
        elif self.type == OperationType.REBUILD_SECTION:
            payload = self.section
        else:
            payload = (self.attribute, str(self.value))
        return (self.type, self.selector, payload)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (empty fields omitted)."""
        result: dict[str, Any] = {"type": self.type.value, "priority": self.priority}
        for name in ("selector", "attribute", "value", "element", "position", "section", "source_path"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.attributes:
            result["attributes"] = dict(self.attributes)
        return result


@dataclass
class Efficiency:
    """Decision inputs for patch-vs-rebuild.

    Attributes:
        estimated_size: Estimated patch size in bytes
        original_size: Prior rendered output size in bytes
        size_ratio: estimated_size / original_size
        operation_count: Number of operations after optimization
        complexity_score: Mean operation weight in [0, 1]
        should_patch: Whether the patch should be applied
        reason: "efficient" or the first threshold that failed
    """

    estimated_size: int = 0
    original_size: int = 0
    size_ratio: float = 0.0
    operation_count: int = 0
    complexity_score: float = 0.0
    should_patch: bool = False
    reason: str = "not_evaluated"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "estimated_size": self.estimated_size,
            "original_size": self.original_size,
            "size_ratio": round(self.size_ratio, 4),
            "operation_count": self.operation_count,
            "complexity_score": round(self.complexity_score, 4),
            "should_patch": self.should_patch,
            "reason": self.reason,
        }


def new_patch_id() -> str:
    """Generate a unique patch identifier."""
    return f"patch_{uuid.uuid4().hex[:12]}"


@dataclass
class Patch:
    """Ordered markup mutations derived from a change-set."""

    cache_key: str
    changes: list[ChangeRecord]
    operations: list[Operation] = field(default_factory=list)
    efficiency: Efficiency = field(default_factory=Efficiency)
    id: str = field(default_factory=new_patch_id)
    timestamp: float = 0.0

    @property
    def summary(self) -> ChangeSummary:
        """Summary of the change-set this patch was built from."""
        return ChangeSummary.from_changes(self.changes)

    @property
    def requires_rebuild(self) -> bool:
        """True when any operation forces a section rebuild."""
        return any(op.type == OperationType.REBUILD_SECTION for op in self.operations)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "cache_key": self.cache_key,
            "timestamp": self.timestamp,
            "changes": [change.to_dict() for change in self.changes],
            "operations": [op.to_dict() for op in self.operations],
            "efficiency": self.efficiency.to_dict(),
        }


@dataclass
class ApplyFailure:
    """An operation whose target could not be resolved in the prior output."""

    operation: Operation
    reason: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"operation": self.operation.to_dict(), "reason": self.reason}


@dataclass
class ApplyResult:
    """Outcome of applying a patch to markup.

    Attributes:
        output: Markup after applying every resolvable operation
        applied: Number of operations applied
        failures: Operations skipped because their target did not resolve
    """

    output: str
    applied: int = 0
    failures: list[ApplyFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True when every operation applied."""
        return not self.failures
