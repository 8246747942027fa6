"""Chartsmith data models."""

from chartsmith.models.changes import (
    MISSING,
    ChangeKind,
    ChangeRecord,
    ChangeSummary,
    Impact,
)
from chartsmith.models.patch import (
    TEXT_CONTENT,
    ApplyFailure,
    ApplyResult,
    Efficiency,
    Operation,
    OperationType,
    Patch,
)
from chartsmith.models.render import (
    CacheKey,
    ChartOptions,
    PipelineStats,
    RenderMetadata,
    RenderMode,
    RenderResult,
    Snapshot,
    StructureSummary,
    ValidationResult,
)
from chartsmith.models.template import TemplateDefinition
from chartsmith.models.theme import Theme

__all__ = [
    "MISSING",
    "TEXT_CONTENT",
    "ApplyFailure",
    "ApplyResult",
    "CacheKey",
    "ChangeKind",
    "ChangeRecord",
    "ChangeSummary",
    "ChartOptions",
    "Efficiency",
    "Impact",
    "Operation",
    "OperationType",
    "Patch",
    "PipelineStats",
    "RenderMetadata",
    "RenderMode",
    "RenderResult",
    "Snapshot",
    "StructureSummary",
    "TemplateDefinition",
    "Theme",
    "ValidationResult",
]
