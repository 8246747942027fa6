"""Template renderer.

Compiled node trees are emitted as Jinja2 source and executed by a Jinja2
environment. Placeholders become calls to scope-aware helpers:

    {{title}}              ->  {{ _var(_s0, "title") }}
    {{#if x}}..{{/if}}     ->  {% if _truthy(_s0, "x") %}..{% endif %}
    {{#each xs}}..{{/each}} ->  {% for _s1 in _each(_s0, "xs") %}..{% endfor %}

Lookups walk outward through enclosing loop scopes, so "{{theme.primary}}"
works inside loops; "../name" starts one scope further out. Unresolved
placeholders render verbatim and rendering never raises for missing data.
Output is autoescaped.
"""

import json
import logging
from typing import Any

from jinja2 import Environment, Template, TemplateSyntaxError

from chartsmith.errors import RegistrationError
from chartsmith.renderers.filters import format_value
from chartsmith.templates.compiler import Block, CompiledTemplate, LoopAnchor, Node, Text, Var

logger = logging.getLogger(__name__)

_LOOP_VARIABLES = ("@index", "@key", "@first", "@last")


# =============================================================================
# Scope resolution
# =============================================================================


def resolve_path(value: Any, path: str) -> tuple[bool, Any]:
    """Resolve a dotted path inside one value.

    Mapping keys that themselves contain dots (flattened theme variables) are
    matched longest-first. Numeric segments index into lists.

    Returns:
        (found, value); found is False when any step is missing
    """
    if path == "":
        return True, value

    segments = path.split(".")
    current = value
    i = 0
    while i < len(segments):
        if isinstance(current, dict):
            for end in range(len(segments), i, -1):
                key = ".".join(segments[i:end])
                if key in current:
                    current = current[key]
                    i = end
                    break
            else:
                return False, None
        elif isinstance(current, list | tuple) and segments[i].isdigit():
            index = int(segments[i])
            if index >= len(current):
                return False, None
            current = current[index]
            i += 1
        else:
            return False, None
    return True, current


class Scope:
    """One level of the render context: the root data or a loop item."""

    __slots__ = ("value", "parent", "index", "key", "first", "last", "precision")

    def __init__(
        self,
        value: Any,
        parent: "Scope | None" = None,
        index: int | None = None,
        key: str | None = None,
        first: bool = False,
        last: bool = False,
        precision: int = 3,
    ) -> None:
        self.value = value
        self.parent = parent
        self.index = index
        self.key = key
        self.first = first
        self.last = last
        self.precision = precision

    @classmethod
    def root(cls, data: Any, precision: int = 3) -> "Scope":
        return cls(data, precision=precision)

    def child(self, value: Any, index: int, key: str | None, count: int) -> "Scope":
        """Scope of one loop item."""
        return Scope(
            value,
            parent=self,
            index=index,
            key=key,
            first=index == 0,
            last=index == count - 1,
            precision=self.precision,
        )

    def loop_variable(self, name: str) -> tuple[bool, Any]:
        if self.index is None:
            return False, None
        if name == "@index":
            return True, self.index
        if name == "@key":
            return self.key is not None, self.key
        if name == "@first":
            return True, self.first
        return True, self.last

    def lookup(self, expr: str) -> tuple[bool, Any]:
        """Resolve an expression against this scope and its ancestors."""
        scope: Scope = self
        while expr.startswith("../"):
            expr = expr[3:]
            if scope.parent is not None:
                scope = scope.parent

        if expr in _LOOP_VARIABLES:
            return scope.loop_variable(expr)
        if expr == "this" or expr == ".":
            return True, scope.value
        if expr.startswith("this."):
            return resolve_path(scope.value, expr[5:])

        current: Scope | None = scope
        while current is not None:
            found, value = resolve_path(current.value, expr)
            if found:
                return True, value
            current = current.parent
        return False, None


# =============================================================================
# Jinja2 helpers
# =============================================================================


def _var(scope: Scope, raw: str) -> str:
    found, value = scope.lookup(raw.strip())
    if not found:
        return "{{" + raw + "}}"
    return format_value(value, scope.precision)


def _truthy(scope: Scope, expr: str) -> bool:
    found, value = scope.lookup(expr)
    return found and bool(value)


def _each(scope: Scope, expr: str) -> list[Scope]:
    found, value = scope.lookup(expr)
    if not found:
        return []
    if isinstance(value, list | tuple):
        return [scope.child(item, i, None, len(value)) for i, item in enumerate(value)]
    if isinstance(value, dict):
        return [scope.child(item, i, str(key), len(value)) for i, (key, item) in enumerate(value.items())]
    return []


def _literal(value: str) -> str:
    return json.dumps(value)


def _raw(text: str) -> str:
    """Protect literal template text from the Jinja2 lexer."""
    if not any(char in text for char in "{}#%"):
        return text
    # "endraw" would close the raw block early; split it across two blocks
    pieces = text.replace("endraw", "end\x00raw").split("\x00")
    return "".join(f"{{% raw %}}{piece}{{% endraw %}}" for piece in pieces)


def emit(nodes: list[Node], depth: int = 0) -> str:
    """Translate a node tree into Jinja2 source.

    Args:
        nodes: Nodes to emit
        depth: Loop depth; the scope variable is named _s<depth>
    """
    scope = f"_s{depth}"
    parts: list[str] = []
    for node in nodes:
        if isinstance(node, Text):
            parts.append(_raw(node.text))
        elif isinstance(node, Var):
            parts.append(f"{{{{ _var({scope}, {_literal(node.raw)}) }}}}")
        elif isinstance(node, Block) and node.kind == "if":
            parts.append(f"{{% if _truthy({scope}, {_literal(node.expr)}) %}}")
            parts.append(emit(node.body, depth))
            if node.alternative:
                parts.append("{% else %}")
                parts.append(emit(node.alternative, depth))
            parts.append("{% endif %}")
        elif isinstance(node, Block):
            item_scope = f"_s{depth + 1}"
            parts.append(f"{{% for {item_scope} in _each({scope}, {_literal(node.expr)}) %}}")
            parts.append(emit(node.body, depth + 1))
            if node.alternative:
                parts.append("{% else %}")
                parts.append(emit(node.alternative, depth))
            parts.append("{% endfor %}")
    return "".join(parts)


class TemplateRenderer:
    """Executes compiled templates through a Jinja2 environment.

    Usage:
        renderer = TemplateRenderer()
        renderer.prepare(compiled)
        markup = renderer.render(compiled, data, precision=3)
    """

    def __init__(self) -> None:
        self._env = Environment(
            autoescape=True,
            keep_trailing_newline=True,
        )
        self._env.globals.update(_var=_var, _truthy=_truthy, _each=_each)
        self._env.filters["format_value"] = format_value

    def _build(self, source: str, subject: str) -> Template:
        try:
            return self._env.from_string(source)
        except TemplateSyntaxError as e:
            logger.error("Generated template source for %s failed to compile: %s", subject, e)
            raise RegistrationError(subject, f"template source failed to compile: {e}") from e

    def prepare(self, compiled: CompiledTemplate) -> CompiledTemplate:
        """Build the executable templates of a compiled template and its anchored loops."""
        compiled.jinja_source = emit(compiled.nodes)
        compiled.template = self._build(compiled.jinja_source, compiled.template_id)
        for anchors in compiled.loops.values():
            for anchor in anchors:
                anchor.template = self._build(emit(anchor.body, depth=1), compiled.template_id)
        return compiled

    def render(self, compiled: CompiledTemplate, data: Any, precision: int = 3) -> str:
        """Render a prepared template against a data tree."""
        if compiled.template is None:
            self.prepare(compiled)
        template: Template = compiled.template  # type: ignore[assignment]
        return template.render(_s0=Scope.root(data, precision))

    def render_loop_item(
        self,
        anchor: LoopAnchor,
        data: Any,
        index: int,
        precision: int = 3,
    ) -> str | None:
        """Render the element one loop item produces, or None if the item does not exist."""
        root = Scope.root(data, precision)
        found, items = root.lookup(anchor.path.replace("[", ".").replace("]", ""))
        if not found or not isinstance(items, list) or index >= len(items):
            return None
        if anchor.template is None:
            raise RuntimeError(f"Loop template for {anchor.path} was not prepared")
        template: Template = anchor.template  # type: ignore[assignment]
        return template.render(_s1=root.child(items[index], index, None, len(items)))
