"""Chart generation pipeline.

Chooses, per request, the cheapest way to produce correct output:

1. Generation cache hit: return the cached output.
2. Same document rendered before, data unchanged: return the snapshot.
3. Same document rendered before, data changed: diff, build a patch and
   apply it when it is cheaper than a full render.
4. Otherwise: full render, which becomes the next diff baseline.

Incremental failures never reach the caller; they fall back to a full render.
"""

import asyncio
import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from chartsmith.config import ChartsmithConfig
from chartsmith.incremental import (
    DiffEngine,
    EfficiencyThresholds,
    MappingContext,
    PatchBuilder,
    PatchStore,
    SnapshotStore,
    apply_patch,
)
from chartsmith.layout import apply_layout
from chartsmith.markup import normalize_markup
from chartsmith.models.patch import Patch
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
from chartsmith.models.theme import Theme
from chartsmith.postprocess import PostProcessing, post_process
from chartsmith.renderers.filters import precision_for
from chartsmith.templates.compiler import CompiledTemplate
from chartsmith.templates.registry import TemplateRegistry
from chartsmith.themes.registry import ThemeRegistry
from chartsmith.utils.cache import BoundedCache
from chartsmith.utils.hashing import content_hash, stable_hash
from chartsmith.utils.logging import log_event

logger = logging.getLogger(__name__)

NO_THEME = "none"


@dataclass
class _Request:
    """A prepared render request."""

    key: CacheKey
    compiled: CompiledTemplate
    data: dict[str, Any]
    quality: str
    validation: ValidationResult
    steps: PostProcessing

    @property
    def precision(self) -> int:
        return precision_for(self.quality)


@dataclass
class _Attempt:
    """Outcome of the incremental path: a result, or why a full render is needed."""

    result: tuple[str, RenderMetadata] | None = None
    fallback_reason: str | None = None
    patch: Patch | None = None


class ChartPipeline:
    """Renders data trees through templates and themes, patching when cheaper.

    Registries are injected; when omitted, new ones are built from the
    configuration (built-in templates and themes plus configured directories).

    Usage:
        pipeline = ChartPipeline()
        result = pipeline.generate_chart({"title": "Q3", "sections": [...]})
        result.output              # rendered markup
        result.metadata.mode       # RenderMode.FULL
    """

    def __init__(
        self,
        config: ChartsmithConfig | None = None,
        templates: TemplateRegistry | None = None,
        themes: ThemeRegistry | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: chartsmith configuration (uses defaults if None)
            templates: Template registry (built from config if None)
            themes: Theme registry (built from config if None)
        """
        self.config = config or ChartsmithConfig()
        render = self.config.render
        cache = self.config.cache
        incremental = self.config.incremental

        if templates is None:
            templates = TemplateRegistry(
                minify=render.minify,
                max_cache_size=cache.max_template_renders,
                enable_cache=cache.enabled,
            )
            for directory in self.config.paths.templates:
                templates.load_directory(Path(directory))
        self.templates = templates

        if themes is None:
            themes = ThemeRegistry(default_theme=render.default_theme)
            for directory in self.config.paths.themes:
                themes.load_directory(Path(directory))
            if themes.active is None and themes.has(render.default_theme):
                themes.set_active(render.default_theme)
        self.themes = themes

        self.snapshots = SnapshotStore(incremental.max_snapshots)
        self.patches = PatchStore(incremental.max_patches)
        self.diff_engine = DiffEngine()
        self.patch_builder = PatchBuilder(
            EfficiencyThresholds(
                max_size_ratio=incremental.max_size_ratio,
                max_operations=incremental.max_operations,
                max_complexity=incremental.max_complexity,
            )
        )

        self._generations: BoundedCache[str, str] = BoundedCache(cache.max_generations)
        self._data: BoundedCache[str, dict[str, Any]] = BoundedCache(cache.max_data_entries)
        self._stats = PipelineStats()
        self._stats_lock = threading.Lock()
        self._inflight: dict[str, asyncio.Future[RenderResult]] = {}

    # =========================================================================
    # Public API
    # =========================================================================

    def generate_chart(
        self,
        data: dict[str, Any],
        options: ChartOptions | None = None,
    ) -> RenderResult:
        """Render data, reusing cached or incremental output when possible.

        Args:
            data: Data tree (never mutated)
            options: Per-request options

        Returns:
            RenderResult with the output and how it was produced

        Raises:
            NotFoundError: If the template or theme id is unknown
            RegistrationError: If an inline custom theme is invalid
        """
        options = options or ChartOptions()
        start = time.perf_counter()
        try:
            request = self._prepare(data, options)
            return self._execute(request, options, start)
        except Exception as e:
            with self._stats_lock:
                self._stats.error_count += 1
            logger.error("Chart generation failed: %s", e)
            raise

    async def generate_chart_async(
        self,
        data: dict[str, Any],
        options: ChartOptions | None = None,
    ) -> RenderResult:
        """Async generate_chart; concurrent requests for one cache key share a render.

        Work runs in a worker thread. Requests that arrive while an identical
        one is in flight await its result, marked coalesced.
        """
        options = options or ChartOptions()
        start = time.perf_counter()
        try:
            request = await asyncio.to_thread(self._prepare, data, options)
        except Exception:
            with self._stats_lock:
                self._stats.error_count += 1
            raise
        key = str(request.key)

        inflight = self._inflight.get(key)
        if inflight is not None:
            shared = await asyncio.shield(inflight)
            duration = (time.perf_counter() - start) * 1000
            with self._stats_lock:
                self._stats.record(duration)
                self._stats.cache_hits += 1
            metadata = dataclasses.replace(shared.metadata, coalesced=True, duration_ms=duration)
            log_event(logger, logging.DEBUG, "Coalesced chart request", cache_key=key)
            return RenderResult(output=shared.output, metadata=metadata)

        future: asyncio.Future[RenderResult] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await asyncio.to_thread(self._execute, request, options, start)
        except Exception as e:
            with self._stats_lock:
                self._stats.error_count += 1
            future.set_exception(e)
            # Waiters re-raise it; nobody else needs to retrieve it
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if not future.done():
                future.cancel()
            self._inflight.pop(key, None)

    def get_stats(self) -> PipelineStats:
        """Snapshot of the aggregate counters."""
        with self._stats_lock:
            return dataclasses.replace(self._stats)

    def reset_stats(self) -> None:
        with self._stats_lock:
            self._stats = PipelineStats()

    def clear_cache(self) -> None:
        """Drop cached output, diff baselines, snapshots and patch history."""
        self._generations.clear()
        self._data.clear()
        self.snapshots.clear()
        self.patches.clear()
        self.templates.clear_cache()
        logger.debug("Pipeline caches cleared")

    def cache_stats(self) -> dict[str, Any]:
        """Sizes and hit counters of every bounded store."""
        return {
            "generations": self._generations.stats(),
            "data": self._data.stats(),
            "snapshots": self.snapshots.stats(),
            "patches": self.patches.stats(),
            "templates": self.templates.stats(),
        }

    # =========================================================================
    # Preparation
    # =========================================================================

    def _resolve_theme(self, options: ChartOptions) -> Theme | None:
        if options.custom_theme is not None:
            return self.themes.resolve_custom(options.custom_theme)
        if options.theme_id:
            return self.themes.get(options.theme_id)
        return self.themes.active

    def _prepare(self, data: dict[str, Any], options: ChartOptions) -> _Request:
        """Apply theme and layout, compile the template and derive the cache key."""
        if not isinstance(data, dict):
            raise TypeError(f"Chart data must be a mapping, got {type(data).__name__}")

        render = self.config.render
        template_id = options.template_id or render.default_template
        quality = options.quality or render.quality
        steps = PostProcessing(
            optimize=render.optimize if options.optimize is None else options.optimize,
            animations=render.animations if options.animations is None else options.animations,
            interactivity=render.interactivity if options.interactivity is None else options.interactivity,
        )
        compiled = self.templates.compile(template_id)
        theme = self._resolve_theme(options)

        prepared = self.themes.apply_to_data(data, theme=theme)
        apply_layout(prepared, options.width, options.height, render.width, render.height)

        validation = self.templates.validate(template_id, prepared)
        if not validation.valid:
            log_event(
                logger, logging.WARNING, "Data is missing template variables",
                template=template_id, missing=validation.missing,
            )

        key = CacheKey(
            template_id=template_id,
            theme_id=theme.id if theme else NO_THEME,
            data_hash=stable_hash(prepared),
            # A recompiled template starts a new lineage
            variant=f"{quality}:{steps.tag}:{content_hash(compiled.source, length=8)}",
            document_id=options.document_id,
        )
        return _Request(
            key=key,
            compiled=compiled,
            data=prepared,
            quality=quality,
            validation=validation,
            steps=steps,
        )

    # =========================================================================
    # State machine
    # =========================================================================

    def _execute(self, request: _Request, options: ChartOptions, start: float) -> RenderResult:
        key = request.key
        caching = options.enable_caching and self.config.cache.enabled

        if caching:
            cached = self._generations.get(str(key))
            if cached is not None:
                metadata = self._metadata(request, RenderMode.CACHE, cache_hit=True)
                return self._finish(cached, metadata, start)

        attempt = _Attempt()
        if options.enable_incremental and self.config.incremental.enabled:
            attempt = self._incremental(request)

        if attempt.result is None:
            output = self._full_render(request)
            # A rejected patch still explains why the full render happened
            metadata = self._metadata(request, RenderMode.FULL, patch=attempt.patch)
            metadata.fallback_reason = attempt.fallback_reason
        else:
            output, metadata = attempt.result

        # Snapshots hold the output before post-processing
        output = post_process(output, request.steps)
        if caching:
            self._generations.set(str(key), output)
        return self._finish(output, metadata, start)

    def _incremental(self, request: _Request) -> _Attempt:
        """Try the snapshot path."""
        lineage = request.key.lineage
        snapshot = self.snapshots.get(lineage)
        previous = self._data.get(lineage)
        if snapshot is None or previous is None:
            return _Attempt()

        changes = self.diff_engine.diff(previous, request.data)
        if not changes:
            metadata = self._metadata(request, RenderMode.UNCHANGED, was_incremental=True)
            return _Attempt(result=(snapshot.rendered_text, metadata))

        ctx = MappingContext(
            compiled=request.compiled,
            renderer=self.templates.renderer,
            new_data=request.data,
            precision=request.precision,
        )
        try:
            patch = self.patch_builder.build_patch(changes, snapshot, ctx)
        except Exception as e:
            logger.warning("Patch build failed, rendering fully: %s", e)
            return _Attempt(fallback_reason="build_failed")
        self.patches.add(patch)

        if not patch.efficiency.should_patch:
            reason = patch.efficiency.reason
            log_event(
                logger, logging.DEBUG, "Patch rejected",
                patch=patch.id, changes=len(changes), reason=reason,
            )
            return _Attempt(fallback_reason=reason, patch=patch)

        try:
            applied = apply_patch(snapshot.rendered_text, patch)
        except Exception as e:
            logger.warning("Patch %s could not be applied, rendering fully: %s", patch.id, e)
            return _Attempt(fallback_reason="apply_failed", patch=patch)

        if applied.failures and self.config.incremental.fallback_on_apply_failure:
            logger.warning(
                "Patch %s: %d failed operation(s), rendering fully", patch.id, len(applied.failures)
            )
            return _Attempt(fallback_reason="apply_failures", patch=patch)

        self._remember(request, applied.output)
        metadata = self._metadata(request, RenderMode.INCREMENTAL, was_incremental=True, patch=patch)
        metadata.apply_failures = list(applied.failures)
        return _Attempt(result=(applied.output, metadata))

    def _full_render(self, request: _Request) -> str:
        """Render from scratch and make the output the new diff baseline."""
        raw = self.templates.render(request.compiled, request.data, request.quality)
        output = normalize_markup(raw)
        self._remember(request, output)
        return output

    def _remember(self, request: _Request, output: str) -> None:
        lineage = request.key.lineage
        self.snapshots.put(
            lineage,
            Snapshot(
                cache_key=request.key,
                rendered_text=output,
                structure=StructureSummary.from_markup(output),
                hash=content_hash(output),
            ),
        )
        self._data.set(lineage, request.data)

    # =========================================================================
    # Results
    # =========================================================================

    def _metadata(
        self,
        request: _Request,
        mode: RenderMode,
        cache_hit: bool = False,
        was_incremental: bool = False,
        patch: Patch | None = None,
    ) -> RenderMetadata:
        return RenderMetadata(
            cache_key=str(request.key),
            mode=mode,
            cache_hit=cache_hit,
            was_incremental=was_incremental,
            template_id=request.key.template_id,
            theme_id=request.key.theme_id,
            patch_id=patch.id if patch else None,
            change_count=len(patch.changes) if patch else 0,
            efficiency=patch.efficiency if patch else None,
            missing_variables=list(request.validation.missing),
        )

    def _finish(self, output: str, metadata: RenderMetadata, start: float) -> RenderResult:
        metadata.duration_ms = (time.perf_counter() - start) * 1000
        with self._stats_lock:
            self._stats.record(metadata.duration_ms)
            if metadata.mode == RenderMode.CACHE:
                self._stats.cache_hits += 1
            elif metadata.mode == RenderMode.FULL:
                self._stats.full_rebuilds += 1
            else:
                self._stats.incremental_updates += 1

        log_event(
            logger, logging.DEBUG, "Chart generated",
            mode=metadata.mode.value,
            cache_key=metadata.cache_key,
            duration_ms=round(metadata.duration_ms, 3),
        )
        return RenderResult(output=output, metadata=metadata)
