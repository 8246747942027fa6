"""Render request/result entities.

- CacheKey: Deterministic identity of a render request
- StructureSummary / Snapshot: Last full render of a document, the diff baseline
- ChartOptions: Per-request options of ChartPipeline.generate_chart
- RenderMode / RenderMetadata / RenderResult: What the pipeline returns
- PipelineStats: Aggregate counters
- ValidationResult: Declared template variables missing from a data tree
"""

import re
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chartsmith.models.patch import ApplyFailure, Efficiency

_OPEN_TAG = re.compile(r"<([A-Za-z][\w:.-]*)")
_TAG = re.compile(r"<(/?)[A-Za-z][^>]*?(/?)>")


def _max_depth(markup: str) -> int:
    depth = deepest = 0
    for closing, self_closing in _TAG.findall(markup):
        if closing:
            depth -= 1
        elif self_closing:
            deepest = max(deepest, depth + 1)
        else:
            depth += 1
            deepest = max(deepest, depth)
    return deepest


@dataclass(frozen=True)
class CacheKey:
    """Identity of a render request.

    Attributes:
        template_id: Template used
        theme_id: Theme id (or "custom:<hash>" for inline themes)
        data_hash: Stable hash of the prepared data tree
        variant: Output-affecting options (quality, template fingerprint)
        document_id: Caller-chosen document identity; defaults to one per template
    """

    template_id: str
    theme_id: str
    data_hash: str
    variant: str = ""
    document_id: str | None = None

    @property
    def lineage(self) -> str:
        """Key of the document across data and theme versions (diff baseline key)."""
        return f"{self.template_id}:{self.variant}:{self.document_id or '-'}"

    def __str__(self) -> str:
        return f"{self.lineage}:{self.theme_id}:{self.data_hash}"


@dataclass
class StructureSummary:
    """Cheap structural facts about rendered markup."""

    element_count: int = 0
    tag_counts: dict[str, int] = field(default_factory=dict)
    has_gradients: bool = False
    has_filters: bool = False
    has_animations: bool = False
    max_depth: int = 0

    @classmethod
    def from_markup(cls, markup: str) -> "StructureSummary":
        """Summarize markup by scanning its opening tags."""
        tags = [name for name in _OPEN_TAG.findall(markup)]
        counts = Counter(tag.split(":")[-1] for tag in tags)
        return cls(
            element_count=len(tags),
            tag_counts=dict(counts),
            has_gradients=bool(counts.get("linearGradient") or counts.get("radialGradient")),
            has_filters=bool(counts.get("filter")),
            has_animations=any(tag.startswith("animate") for tag in counts),
            max_depth=_max_depth(markup),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "element_count": self.element_count,
            "tag_counts": dict(self.tag_counts),
            "has_gradients": self.has_gradients,
            "has_filters": self.has_filters,
            "has_animations": self.has_animations,
            "max_depth": self.max_depth,
        }


@dataclass
class Snapshot:
    """Last rendered output for a document, used as the diff baseline."""

    cache_key: CacheKey
    rendered_text: str
    structure: StructureSummary
    hash: str
    timestamp: float = field(default_factory=time.monotonic)


class RenderMode(Enum):
    """Which terminal state produced the output."""

    CACHE = "cache"
    UNCHANGED = "unchanged"
    INCREMENTAL = "incremental"
    FULL = "full"


@dataclass
class ChartOptions:
    """Options for a single generate_chart call.

    Attributes:
        template_id: Template to render (config default when None)
        theme_id: Registered theme id (active theme when None)
        custom_theme: Inline theme config, validated like a registered theme
        width: Document width override
        height: Document height override
        quality: low, medium or high numeric precision
        enable_incremental: Allow patching a prior snapshot
        enable_caching: Allow reading/writing the generation cache
        document_id: Groups renders of the same document for diff baselines
        optimize: Override render.optimize for this call
        animations: Override render.animations for this call
        interactivity: Override render.interactivity for this call
    """

    template_id: str | None = None
    theme_id: str | None = None
    custom_theme: dict[str, Any] | None = None
    width: int | None = None
    height: int | None = None
    quality: str | None = None
    enable_incremental: bool = True
    enable_caching: bool = True
    document_id: str | None = None
    optimize: bool | None = None
    animations: bool | None = None
    interactivity: bool | None = None

    def __post_init__(self) -> None:
        """Validate option combinations."""
        if self.theme_id and self.custom_theme:
            raise ValueError("Pass either theme_id or custom_theme, not both")
        if self.quality is not None and self.quality not in ("low", "medium", "high"):
            raise ValueError(f"Invalid quality: {self.quality}")


@dataclass
class RenderMetadata:
    """Everything known about how an output was produced."""

    cache_key: str
    mode: RenderMode
    cache_hit: bool = False
    was_incremental: bool = False
    duration_ms: float = 0.0
    template_id: str = ""
    theme_id: str = ""
    patch_id: str | None = None
    change_count: int = 0
    efficiency: Efficiency | None = None
    apply_failures: list[ApplyFailure] = field(default_factory=list)
    missing_variables: list[str] = field(default_factory=list)
    fallback_reason: str | None = None
    coalesced: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "cache_key": self.cache_key,
            "mode": self.mode.value,
            "cache_hit": self.cache_hit,
            "was_incremental": self.was_incremental,
            "duration_ms": round(self.duration_ms, 3),
            "template_id": self.template_id,
            "theme_id": self.theme_id,
            "patch_id": self.patch_id,
            "change_count": self.change_count,
            "efficiency": self.efficiency.to_dict() if self.efficiency else None,
            "apply_failures": [failure.to_dict() for failure in self.apply_failures],
            "missing_variables": list(self.missing_variables),
            "fallback_reason": self.fallback_reason,
            "coalesced": self.coalesced,
        }


@dataclass
class RenderResult:
    """Output of ChartPipeline.generate_chart."""

    output: str
    metadata: RenderMetadata

    @property
    def cache_hit(self) -> bool:
        return self.metadata.cache_hit

    @property
    def was_incremental(self) -> bool:
        return self.metadata.was_incremental


@dataclass
class PipelineStats:
    """Aggregate pipeline counters."""

    total_generations: int = 0
    cache_hits: int = 0
    incremental_updates: int = 0
    full_rebuilds: int = 0
    average_time_ms: float = 0.0
    error_count: int = 0

    def record(self, duration_ms: float) -> None:
        """Count one generation and fold its duration into the running mean."""
        self.total_generations += 1
        self.average_time_ms += (duration_ms - self.average_time_ms) / self.total_generations

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        total = self.total_generations
        return {
            "total_generations": total,
            "cache_hits": self.cache_hits,
            "incremental_updates": self.incremental_updates,
            "full_rebuilds": self.full_rebuilds,
            "average_time_ms": round(self.average_time_ms, 3),
            "error_count": self.error_count,
            "cache_hit_rate": self.cache_hits / total if total else 0.0,
            "incremental_rate": self.incremental_updates / total if total else 0.0,
        }


@dataclass
class ValidationResult:
    """Declared template variables missing from a data tree."""

    valid: bool
    missing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"valid": self.valid, "missing": list(self.missing)}
