"""Patch building, optimization and the patch-vs-rebuild decision."""

import logging
import time
from dataclasses import dataclass

from chartsmith.incremental.mapping import DEFAULT_RULES, MappingContext, TargetRule, map_change
from chartsmith.models.changes import ChangeRecord
from chartsmith.models.patch import Efficiency, Operation, OperationType, Patch
from chartsmith.models.render import Snapshot

logger = logging.getLogger(__name__)

# Estimated serialized size of each operation kind, in bytes
UPDATE_ATTRIBUTE_SIZE = 50
ATTRIBUTE_CHANGE_SIZE = 40
ADD_ELEMENT_DEFAULT_SIZE = 200
REMOVE_ELEMENT_SIZE = 20
REBUILD_SECTION_SIZE = 1000

# Relative cost of applying each operation kind
COMPLEXITY_WEIGHTS: dict[OperationType, float] = {
    OperationType.UPDATE_ATTRIBUTE: 0.1,
    OperationType.UPDATE_ATTRIBUTES: 0.1,
    OperationType.ADD_ATTRIBUTE: 0.15,
    OperationType.REMOVE_ATTRIBUTE: 0.15,
    OperationType.REMOVE_ELEMENT: 0.2,
    OperationType.ADD_ELEMENT: 0.3,
    OperationType.REBUILD_SECTION: 1.0,
}


@dataclass(frozen=True)
class EfficiencyThresholds:
    """A patch is applied only when all three values stay below their limit."""

    max_size_ratio: float = 0.3
    max_operations: int = 20
    max_complexity: float = 0.7


def estimate_size(operations: list[Operation]) -> int:
    """Estimated serialized size of a list of operations."""
    total = 0
    for op in operations:
        if op.type == OperationType.UPDATE_ATTRIBUTE:
            total += UPDATE_ATTRIBUTE_SIZE
        elif op.type == OperationType.UPDATE_ATTRIBUTES:
            total += UPDATE_ATTRIBUTE_SIZE * len(op.attributes)
        elif op.type in (OperationType.ADD_ATTRIBUTE, OperationType.REMOVE_ATTRIBUTE):
            total += ATTRIBUTE_CHANGE_SIZE
        elif op.type == OperationType.ADD_ELEMENT:
            total += len(op.element) if op.element else ADD_ELEMENT_DEFAULT_SIZE
        elif op.type == OperationType.REMOVE_ELEMENT:
            total += REMOVE_ELEMENT_SIZE
        else:
            total += REBUILD_SECTION_SIZE
    return total


def complexity_score(operations: list[Operation]) -> float:
    """Mean operation weight, capped at 1.0 (0.0 for no operations)."""
    if not operations:
        return 0.0
    score = sum(COMPLEXITY_WEIGHTS[op.type] for op in operations) / len(operations)
    return min(score, 1.0)


def optimize(operations: list[Operation]) -> list[Operation]:
    """Sort by priority, merge per-selector attribute updates, drop duplicates.

    The sort is stable, so operations of equal priority keep their order.
    """
    ordered = sorted(operations, key=lambda op: op.priority)

    merged: list[Operation] = []
    grouped: dict[str, Operation] = {}
    for op in ordered:
        if op.type != OperationType.UPDATE_ATTRIBUTE or op.selector is None:
            merged.append(op)
            continue

        group = grouped.get(op.selector)
        if group is None:
            group = Operation(
                type=OperationType.UPDATE_ATTRIBUTES,
                selector=op.selector,
                priority=op.priority,
                source_path=op.source_path,
            )
            grouped[op.selector] = group
            merged.append(group)
        group.attributes[op.attribute or ""] = op.value

    # A group holding one attribute stays a plain update
    for i, op in enumerate(merged):
        if op.type == OperationType.UPDATE_ATTRIBUTES and len(op.attributes) == 1:
            attribute, value = next(iter(op.attributes.items()))
            merged[i] = Operation(
                type=OperationType.UPDATE_ATTRIBUTE,
                selector=op.selector,
                attribute=attribute,
                value=value,
                priority=op.priority,
                source_path=op.source_path,
            )

    unique: list[Operation] = []
    seen: set[tuple] = set()
    for op in merged:
        key = op.key()
        if key not in seen:
            seen.add(key)
            unique.append(op)
    return unique


class PatchBuilder:
    """Turns change-sets into optimized patches and decides whether to apply them.

    Usage:
        builder = PatchBuilder()
        patch = builder.build_patch(changes, snapshot, MappingContext(...))
        if patch.efficiency.should_patch:
            ...
    """

    def __init__(
        self,
        thresholds: EfficiencyThresholds | None = None,
        rules: list[TargetRule] | None = None,
    ) -> None:
        self.thresholds = thresholds or EfficiencyThresholds()
        self.rules = rules if rules is not None else DEFAULT_RULES

    def operations_for(self, changes: list[ChangeRecord], ctx: MappingContext) -> list[Operation]:
        """Unoptimized operations for a change-set, in change order."""
        operations: list[Operation] = []
        for change in changes:
            operations.extend(map_change(change, ctx, self.rules))
        return operations

    def build_patch(
        self,
        changes: list[ChangeRecord],
        snapshot: Snapshot,
        ctx: MappingContext | None = None,
    ) -> Patch:
        """Build, optimize and evaluate a patch against the snapshot's output."""
        ctx = ctx or MappingContext()
        operations = optimize(self.operations_for(changes, ctx))
        patch = Patch(
            cache_key=str(snapshot.cache_key),
            changes=changes,
            operations=operations,
            timestamp=time.time(),
        )
        patch.efficiency = self.evaluate(patch, snapshot.rendered_text)
        logger.debug(
            "Patch %s: %d change(s) -> %d operation(s), %s",
            patch.id, len(changes), len(operations), patch.efficiency.reason,
        )
        return patch

    def evaluate(self, patch: Patch, prior_output: str) -> Efficiency:
        """Decide whether applying the patch beats a full render.

        The patch is applied iff size ratio, operation count and complexity
        are all strictly below their thresholds.
        """
        estimated = estimate_size(patch.operations)
        original = len(prior_output)
        ratio = estimated / original if original else float("inf")
        count = len(patch.operations)
        complexity = complexity_score(patch.operations)

        if patch.requires_rebuild:
            reason = "requires_rebuild"
        elif ratio >= self.thresholds.max_size_ratio:
            reason = "size_ratio"
        elif count >= self.thresholds.max_operations:
            reason = "operation_count"
        elif complexity >= self.thresholds.max_complexity:
            reason = "complexity"
        else:
            reason = "efficient"

        return Efficiency(
            estimated_size=estimated,
            original_size=original,
            size_ratio=ratio,
            operation_count=count,
            complexity_score=complexity,
            should_patch=reason == "efficient",
            reason=reason,
        )
