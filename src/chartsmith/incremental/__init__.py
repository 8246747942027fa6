"""Incremental updates: diff, patch building and patch application."""

from chartsmith.incremental.apply import apply_patch
from chartsmith.incremental.diff import DiffEngine, diff, type_class
from chartsmith.incremental.mapping import DEFAULT_RULES, MappingContext, TargetRule, map_change
from chartsmith.incremental.patch import (
    EfficiencyThresholds,
    PatchBuilder,
    complexity_score,
    estimate_size,
    optimize,
)
from chartsmith.incremental.store import PatchStore, SnapshotStore

__all__ = [
    "DEFAULT_RULES",
    "DiffEngine",
    "EfficiencyThresholds",
    "MappingContext",
    "PatchBuilder",
    "PatchStore",
    "SnapshotStore",
    "TargetRule",
    "apply_patch",
    "complexity_score",
    "diff",
    "estimate_size",
    "map_change",
    "optimize",
    "type_class",
]
