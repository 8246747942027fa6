"""Template registry.

Templates and global partials are registered by id. Every registration
compiles eagerly, so syntax problems and unresolved partials surface as a
RegistrationError at register() time rather than at render time.

Usage:
    templates = TemplateRegistry()
    templates.register_partial("label", "<text>{{name}}</text>")
    templates.register("grid", {"body": "<g>{{#each items}}{{> label}}{{/each}}</g>"})
    templates.render("grid", {"items": [{"name": "A"}]})
"""

import itertools
import logging
import re
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from chartsmith.errors import NotFoundError, RegistrationError
from chartsmith.models.render import ValidationResult
from chartsmith.models.template import TemplateDefinition
from chartsmith.renderers.filters import precision_for
from chartsmith.templates.compiler import (
    CompiledTemplate,
    PartialLookup,
    compile_template,
    inline_partials,
    prepare_source,
)
from chartsmith.templates.renderer import TemplateRenderer, resolve_path
from chartsmith.utils.cache import BoundedCache
from chartsmith.utils.hashing import stable_hash

logger = logging.getLogger(__name__)

_PARTIAL_NAME = re.compile(r"[\w.\-/]+")


class TemplateRegistry:
    """Registry of templates, global partials and compiled forms.

    Compiled templates are cached per id and invalidated when the template
    or any global partial changes. Render results are cached in a bounded
    cache keyed by template id, data hash and quality.
    """

    def __init__(
        self,
        renderer: TemplateRenderer | None = None,
        minify: bool = True,
        max_cache_size: int = 100,
        enable_cache: bool = True,
        load_builtin: bool = True,
    ) -> None:
        """Initialize the registry.

        Args:
            renderer: Jinja2-backed renderer (a new one when None)
            minify: Strip whitespace around tags at compile time
            max_cache_size: Bound of the render-result cache
            enable_cache: Cache render results
            load_builtin: Register the packaged templates
        """
        self.renderer = renderer or TemplateRenderer()
        self.minify = minify
        self.enable_cache = enable_cache
        self._templates: dict[str, TemplateDefinition] = {}
        self._partials: dict[str, str] = {}
        self._compiled: dict[str, CompiledTemplate] = {}
        self._render_cache: BoundedCache[tuple[str, str, str], str] = BoundedCache(max_cache_size)
        self._renders = 0

        if load_builtin:
            self.load_builtin_templates()

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, template_id: str, config: dict[str, Any]) -> TemplateDefinition:
        """Register (or replace) a template and compile it.

        Raises:
            RegistrationError: On an empty body, unbalanced blocks or
                unresolved/recursive partials; nothing is stored
        """
        definition = TemplateDefinition.from_config(template_id, config)
        if not definition.body.strip():
            raise RegistrationError(template_id, "template body is empty")

        compiled = self._compile_definition(definition)

        self._templates[template_id] = definition
        self._compiled[template_id] = compiled
        self._render_cache.delete_where(lambda key: key[0] == template_id)
        logger.debug("Registered template %s (%s)", template_id, definition.category)
        return definition

    def register_partial(self, name: str, body: str) -> None:
        """Register (or replace) a global partial.

        Every registered template is recompiled against the new partial set.
        If the body is malformed or any template stops compiling, the
        previous partial is restored and nothing changes.

        Raises:
            RegistrationError: On an invalid name, unbalanced blocks, a
                recursive reference or a template that no longer compiles
        """
        if not _PARTIAL_NAME.fullmatch(name or ""):
            raise RegistrationError(name, "partial names may only contain letters, digits, '-', '_', '.', '/'")

        missing = object()
        previous = self._partials.get(name, missing)
        self._partials[name] = body
        try:
            counter = itertools.count(1)
            prepared = prepare_source(body, counter, name, self.minify)
            # Partials registered later may fill unknown names; only cycles are errors here
            inline_partials(
                prepared, lambda ref: self._partials.get(ref, ""), counter, name, self.minify, (name,)
            )
            compiled = {
                template_id: self._compile_definition(definition)
                for template_id, definition in self._templates.items()
            }
        except RegistrationError as e:
            if previous is missing:
                del self._partials[name]
            else:
                self._partials[name] = previous  # type: ignore[assignment]
            errors = e.errors if e.subject == name else [f"{e.subject}: {error}" for error in e.errors]
            raise RegistrationError(name, errors) from e

        self._compiled = compiled
        self._render_cache.clear()
        logger.debug("Registered partial %s (%d template(s) recompiled)", name, len(compiled))

    def load_builtin_templates(self) -> list[str]:
        """Register the templates packaged with chartsmith."""
        loaded: list[str] = []
        package = resources.files("chartsmith.templates") / "builtin"
        for entry in sorted(package.iterdir(), key=lambda e: e.name):
            if entry.name.endswith((".yaml", ".yml")):
                data = yaml.safe_load(entry.read_text(encoding="utf-8")) or {}
                loaded.extend(self._register_document(data, entry.name.rsplit(".", 1)[0]))
        return loaded

    def load_directory(self, directory: Path) -> list[str]:
        """Register every *.yaml template in a directory.

        A file may also register global partials under "global_partials".
        Invalid files are logged and skipped.
        """
        loaded: list[str] = []
        if not directory.is_dir():
            logger.warning("Template directory not found: %s", directory)
            return loaded

        for path in sorted(directory.glob("*.y*ml")):
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                loaded.extend(self._register_document(data, path.stem))
            except (RegistrationError, yaml.YAMLError) as e:
                logger.warning("Skipping template file %s: %s", path, e)
        return loaded

    def _register_document(self, data: dict[str, Any], default_id: str) -> list[str]:
        for name, body in (data.pop("global_partials", None) or {}).items():
            self.register_partial(name, body)
        if not data.get("body") and not data.get("template"):
            return []
        template_id = data.pop("id", default_id)
        self.register(template_id, data)
        return [template_id]

    # =========================================================================
    # Compilation and rendering
    # =========================================================================

    def _lookup_partial(self, definition: TemplateDefinition) -> PartialLookup:
        def lookup(name: str) -> str | None:
            if name in definition.partials:
                return definition.partials[name]
            return self._partials.get(name)

        return lookup

    def _compile_definition(self, definition: TemplateDefinition) -> CompiledTemplate:
        compiled = compile_template(
            definition.id,
            definition.body,
            self._lookup_partial(definition),
            minify=self.minify,
        )
        return self.renderer.prepare(compiled)

    def get(self, template_id: str) -> TemplateDefinition:
        """Get a registered template definition.

        Raises:
            NotFoundError: If the id is not registered
        """
        definition = self._templates.get(template_id)
        if definition is None:
            raise NotFoundError("template", template_id, sorted(self._templates))
        return definition

    def has(self, template_id: str) -> bool:
        return template_id in self._templates

    def compile(self, template_id: str) -> CompiledTemplate:
        """Compiled form of a template (cached until the template or a partial changes)."""
        compiled = self._compiled.get(template_id)
        if compiled is None:
            compiled = self._compile_definition(self.get(template_id))
            self._compiled[template_id] = compiled
        return compiled

    def render(
        self,
        template: str | CompiledTemplate,
        data: dict[str, Any],
        quality: str | None = None,
    ) -> str:
        """Render a template id or compiled template against data.

        Unresolved placeholders stay verbatim in the output.

        Raises:
            NotFoundError: If a template id is not registered
        """
        compiled = self.compile(template) if isinstance(template, str) else template
        cache_key = (compiled.template_id, stable_hash(data), quality or "high")

        if self.enable_cache:
            cached = self._render_cache.get(cache_key)
            if cached is not None:
                return cached

        output = self.renderer.render(compiled, data, precision_for(quality))
        self._renders += 1
        if self.enable_cache:
            self._render_cache.set(cache_key, output)
        return output

    def validate(self, template_id: str, data: dict[str, Any]) -> ValidationResult:
        """Check the template's declared variables against a data tree.

        "prefix.*" entries require prefix to resolve to a mapping.

        Raises:
            NotFoundError: If the id is not registered
        """
        definition = self.get(template_id)
        missing: list[str] = []
        for variable in definition.variables:
            if variable.endswith(".*"):
                found, value = resolve_path(data, variable[:-2])
                if not found or not isinstance(value, dict):
                    missing.append(variable)
            else:
                found, _ = resolve_path(data, variable)
                if not found:
                    missing.append(variable)
        return ValidationResult(valid=not missing, missing=missing)

    # =========================================================================
    # Introspection and maintenance
    # =========================================================================

    def info(self, template_id: str) -> dict[str, Any]:
        """Describe a template, including its compile-time patch analysis."""
        definition = self.get(template_id)
        compiled = self.compile(template_id)
        info = definition.to_dict()
        info.update({
            "compiled_size": len(compiled.source),
            "blocks": compiled.block_count,
            "bindings": sum(len(items) for items in compiled.bindings.values()),
            "anchored_loops": sorted(compiled.loops),
        })
        return info

    def list_templates(self) -> list[dict[str, Any]]:
        return [definition.to_dict() for definition in self._templates.values()]

    def list_partials(self) -> list[str]:
        return sorted(self._partials)

    def remove(self, template_id: str) -> bool:
        """Remove a template with its compiled form and cached renders."""
        if self._templates.pop(template_id, None) is None:
            return False
        self._compiled.pop(template_id, None)
        self._render_cache.delete_where(lambda key: key[0] == template_id)
        return True

    def clear_cache(self) -> None:
        self._render_cache.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "templates": len(self._templates),
            "partials": len(self._partials),
            "compiled": len(self._compiled),
            "renders": self._renders,
            "render_cache": self._render_cache.stats(),
        }
