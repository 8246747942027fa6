"""Template compiler.

Templates use a small mustache-style syntax:

    {{path.to.value}}                       placeholder
    {{#if path}}...{{else}}...{{/if}}       conditional
    {{#each path}}...{{else}}...{{/each}}   loop over a list or mapping
    {{> name}}                              partial
    {{! comment}}                           dropped

Compilation runs in a fixed order:
1. Whitespace normalization (and optional minification around tags)
2. Conditional tagging: {{#if x}}..{{/if}} -> {{#if:N:x}}..{{/if:N:x}}
3. Loop tagging, analogously, sharing the same sequence counter
4. Partial inlining; partial bodies are normalized and tagged first
5. Parsing of the tagged source into a node tree

The node tree is then analyzed for incremental patching: placeholders that
fill a whole attribute value or a whole element text at a statically
addressable position become Bindings, and top-level loops with a static
position whose body renders exactly one element become LoopAnchors.
"""

import itertools
import logging
import re
from collections import defaultdict
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from bs4 import Comment, NavigableString, Tag

from chartsmith.errors import MarkupError, RegistrationError
from chartsmith.markup import MarkupDocument
from chartsmith.models.patch import TEXT_CONTENT

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_TAG_EDGES = re.compile(r"\s*([<>])\s*")
_PARTIAL = re.compile(r"\{\{>\s*([\w.\-/]+)\s*\}\}")
_TOKEN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_TAGGED_OPEN = re.compile(r"#(if|each):(\d+):(.*)", re.DOTALL)
_TAGGED_CLOSE = re.compile(r"/(if|each):(\d+):(.*)", re.DOTALL)
_NUMERIC_SEGMENT = re.compile(r"\.(\d+)(?=\.|$)")
_INDEX_SEGMENT = re.compile(r"\[(\d+)\]")

# Private-use characters never appear in real templates and are legal XML text
VAR_MARK = "\ue000v{}\ue001"
BLOCK_MARK = "\ue000b{}\ue001"
_VAR_MARK_RE = re.compile("\ue000v(\\d+)\ue001")
_BLOCK_MARK_RE = re.compile("\ue000b(\\d+)\ue001")

PartialLookup = Callable[[str], str | None]


# =============================================================================
# Node tree
# =============================================================================


@dataclass(eq=False)
class Text:
    text: str


@dataclass(eq=False)
class Var:
    """A {{...}} placeholder; raw keeps the original spacing for verbatim output."""

    raw: str

    @property
    def expr(self) -> str:
        return self.raw.strip()

    @property
    def placeholder(self) -> str:
        return "{{" + self.raw + "}}"


@dataclass(eq=False)
class Block:
    """An if/each block; alternative holds the {{else}} branch."""

    kind: str
    expr: str
    seq: int
    body: list["Node"] = field(default_factory=list)
    alternative: list["Node"] = field(default_factory=list)


Node = Text | Var | Block


def walk_nodes(nodes: list[Node]) -> Iterator[Node]:
    """Yield every node depth-first, including block branches."""
    for node in nodes:
        yield node
        if isinstance(node, Block):
            yield from walk_nodes(node.body)
            yield from walk_nodes(node.alternative)


# =============================================================================
# Patch analysis results
# =============================================================================


@dataclass
class Binding:
    """A placeholder that fills one attribute (or the text) of one element.

    Attributes:
        path: Data path in change-record form ("a.b", "items[0]")
        selector: Selector of the element, relative to the document root
        attribute: Attribute name, or "textContent"
        placeholder: Verbatim text rendered when the path is unresolved
    """

    path: str
    selector: str
    attribute: str
    placeholder: str


@dataclass
class LoopAnchor:
    """A top-level loop whose rendered items sit at known element positions.

    Item i renders as the (offset + i + 1)-th element child of the parent.
    """

    path: str
    parent_selector: str
    offset: int
    body: list[Node]
    uses_last: bool = False
    template: object | None = None

    def item_selector(self, index: int) -> str:
        return f"{self.parent_selector} > :nth-child({self.offset + index + 1})"

    def position(self, index: int) -> int:
        return self.offset + index


@dataclass
class CompiledTemplate:
    """Output of compile_template.

    Attributes:
        template_id: Registry id
        source: Normalized, tagged source with partials inlined
        nodes: Parsed node tree
        bindings: Change path -> element bindings
        loops: Change path -> anchored loops
        references: Change path -> how it is used
            ("binding", "inline", "loop" or "block")
        jinja_source: Source of the executable Jinja2 template
        template: Executable Jinja2 template (set by the renderer)
    """

    template_id: str
    source: str
    nodes: list[Node]
    bindings: dict[str, list[Binding]] = field(default_factory=dict)
    loops: dict[str, list[LoopAnchor]] = field(default_factory=dict)
    references: dict[str, set[str]] = field(default_factory=dict)
    block_count: int = 0
    jinja_source: str = ""
    template: object | None = None

    def touching(self, change_path: str) -> list[str]:
        """Referenced paths whose rendered output a change at change_path can affect."""
        return [ref for ref in self.references if touches(ref, change_path)]


# =============================================================================
# Compilation passes
# =============================================================================


def normalize_whitespace(body: str, minify: bool = True) -> str:
    """Collapse whitespace runs; with minify, also strip whitespace around < and >."""
    text = _WHITESPACE.sub(" ", body).strip()
    if minify:
        text = _TAG_EDGES.sub(r"\1", text)
    return text


def tag_blocks(text: str, kind: str, counter: Iterator[int], subject: str) -> str:
    """Rewrite {{#kind x}}..{{/kind}} pairs into sequence-numbered tags.

    Raises:
        RegistrationError: On unbalanced or empty blocks
    """
    pattern = re.compile(r"\{\{(#|/)" + kind + r"(?:\s+([^}]*?))?\s*\}\}")
    parts: list[str] = []
    stack: list[tuple[int, str]] = []
    pos = 0

    for match in pattern.finditer(text):
        parts.append(text[pos:match.start()])
        pos = match.end()

        if match.group(1) == "#":
            expr = (match.group(2) or "").strip()
            if not expr:
                raise RegistrationError(subject, f"{{{{#{kind}}}}} block without an expression")
            seq = next(counter)
            stack.append((seq, expr))
            parts.append(f"{{{{#{kind}:{seq}:{expr}}}}}")
        else:
            if not stack:
                raise RegistrationError(subject, f"unmatched {{{{/{kind}}}}}")
            seq, expr = stack.pop()
            parts.append(f"{{{{/{kind}:{seq}:{expr}}}}}")

    if stack:
        unclosed = ", ".join(expr for _, expr in stack)
        raise RegistrationError(subject, f"unclosed {{{{#{kind}}}}} block(s): {unclosed}")

    parts.append(text[pos:])
    return "".join(parts)


def prepare_source(body: str, counter: Iterator[int], subject: str, minify: bool = True) -> str:
    """Normalize, then tag conditionals, then tag loops."""
    text = normalize_whitespace(body, minify)
    text = tag_blocks(text, "if", counter, subject)
    return tag_blocks(text, "each", counter, subject)


def inline_partials(
    text: str,
    lookup: PartialLookup,
    counter: Iterator[int],
    subject: str,
    minify: bool = True,
    chain: tuple[str, ...] = (),
) -> str:
    """Replace {{> name}} references with prepared partial bodies.

    Each inlined occurrence is tagged separately, so sequence numbers stay unique.

    Raises:
        RegistrationError: For unresolved or recursive partials
    """
    names = _PARTIAL.findall(text)
    missing = sorted({name for name in names if lookup(name) is None})
    if missing:
        raise RegistrationError(subject, [f"unresolved partial: {name}" for name in missing])

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in chain:
            raise RegistrationError(subject, f"recursive partial: {' -> '.join([*chain, name])}")
        prepared = prepare_source(lookup(name) or "", counter, f"{subject}/{name}", minify)
        return inline_partials(prepared, lookup, counter, subject, minify, (*chain, name))

    return _PARTIAL.sub(replace, text)


def parse_tagged(source: str, subject: str) -> list[Node]:
    """Parse tagged source into a node tree.

    Raises:
        RegistrationError: On crossed blocks or a stray {{else}}
    """
    root: list[Node] = []
    # (open block, list currently being filled)
    stack: list[tuple[Block | None, list[Node]]] = [(None, root)]
    pos = 0

    for match in _TOKEN.finditer(source):
        current = stack[-1][1]
        if match.start() > pos:
            current.append(Text(source[pos:match.start()]))
        pos = match.end()
        inner = match.group(1)

        if opened := _TAGGED_OPEN.fullmatch(inner):
            block = Block(kind=opened.group(1), expr=opened.group(3).strip(), seq=int(opened.group(2)))
            current.append(block)
            stack.append((block, block.body))
        elif closed := _TAGGED_CLOSE.fullmatch(inner):
            block = stack[-1][0]
            if block is None or block.kind != closed.group(1) or block.seq != int(closed.group(2)):
                raise RegistrationError(subject, f"crossed or unbalanced block near '{{{{{inner}}}}}'")
            stack.pop()
        elif inner.strip() == "else":
            block = stack[-1][0]
            if block is None or stack[-1][1] is block.alternative:
                raise RegistrationError(subject, "{{else}} outside of an if/each block")
            stack[-1] = (block, block.alternative)
        elif inner.lstrip().startswith(">"):
            raise RegistrationError(subject, f"unresolved partial: {inner.strip()[1:].strip()}")
        elif inner.lstrip().startswith("!"):
            continue
        else:
            current.append(Var(inner))

    if len(stack) > 1:
        raise RegistrationError(subject, f"unclosed block: {stack[-1][0].expr}")  # type: ignore[union-attr]

    if pos < len(source):
        root.append(Text(source[pos:]))
    return root


# =============================================================================
# Path helpers
# =============================================================================


def to_change_path(path: str) -> str:
    """Convert template path syntax to change-record syntax ("a.0.b" -> "a[0].b")."""
    return _NUMERIC_SEGMENT.sub(r"[\1]", path)


def _segments(path: str) -> list[str]:
    # "a[0]" and "a.0" address the same value: a list index or a digit-named key
    return _INDEX_SEGMENT.sub(r".\1", path).split(".")


def touches(ref: str, change_path: str) -> bool:
    """True when one path is the other or an ancestor of it ("" is the data root)."""
    if ref == "" or change_path == "" or ref == change_path:
        return True
    ref_segments = _segments(ref)
    change_segments = _segments(change_path)
    common = min(len(ref_segments), len(change_segments))
    return ref_segments[:common] == change_segments[:common]


def root_reference(expr: str, depth: int) -> str | None:
    """Root data path an expression can read at a given loop depth.

    Inside loops, names may fall back to enclosing scopes, so any relative
    name is reported as a potential root path. Loop variables and "this"
    inside a loop never read root data and give None.
    """
    expr = expr.strip()
    if not expr or expr.startswith("@") or expr[0].isdigit() or expr[0] in "\"'":
        return None

    ups = 0
    while expr.startswith("../"):
        ups += 1
        expr = expr[3:]

    if expr == "this" or expr.startswith("this."):
        if depth - ups > 0:
            return None
        return expr[5:]
    return expr


def _is_plain_path(expr: str) -> bool:
    return bool(expr) and not expr.startswith(("@", "../", "this")) and not expr[0].isdigit()


# =============================================================================
# Patch analysis
# =============================================================================


def _skeleton(nodes: list[Node], variables: list[Var], blocks: list[Block]) -> str:
    """Flatten one level of nodes into markup with marker characters."""
    parts: list[str] = []
    for node in nodes:
        if isinstance(node, Text):
            parts.append(node.text)
        elif isinstance(node, Var):
            variables.append(node)
            parts.append(VAR_MARK.format(len(variables) - 1))
        else:
            blocks.append(node)
            parts.append(BLOCK_MARK.format(len(blocks) - 1))
    return "".join(parts)


def _renders_single_element(body: list[Node]) -> bool:
    try:
        doc = MarkupDocument(_skeleton(body, [], []))
    except MarkupError:
        return False
    return len(doc.elements()) == 1 and not doc.texts()


def _uses_last(body: list[Node]) -> bool:
    for node in walk_nodes(body):
        if isinstance(node, Var) and "@last" in node.expr:
            return True
        if isinstance(node, Block) and "@last" in node.expr:
            return True
    return False


class _Analyzer:
    """Walks the skeleton of the root node list collecting bindings and anchors."""

    def __init__(self, nodes: list[Node]) -> None:
        self.variables: list[Var] = []
        self.blocks: list[Block] = []
        self.skeleton = _skeleton(nodes, self.variables, self.blocks)
        self.bindings: list[tuple[Var, Binding]] = []
        self.anchors: list[tuple[Block, LoopAnchor]] = []

    def run(self) -> None:
        try:
            doc = MarkupDocument(self.skeleton)
        except MarkupError as e:
            logger.debug("Template markup is not statically analyzable: %s", e)
            return
        self._walk(doc.root, ":scope", addressable=True)

    def _walk(self, parent: Tag, selector: str, addressable: bool) -> None:
        position = 0
        shifted = False

        for child in parent.children:
            if isinstance(child, Tag):
                position += 1
                child_selector = f"{selector} > :nth-child({position})"
                static = addressable and not shifted
                if static:
                    self._collect_bindings(child, child_selector)
                self._walk(child, child_selector, static)
                continue

            if not isinstance(child, NavigableString):
                continue
            marks = _BLOCK_MARK_RE.findall(str(child))
            if not marks:
                continue
            # Blocks can render any number of elements, so later siblings move
            if addressable and not shifted and str(child) == BLOCK_MARK.format(marks[0]):
                self._anchor_loop(self.blocks[int(marks[0])], selector, position)
            shifted = True

    def _bind(self, mark: str, selector: str, attribute: str) -> None:
        var = self.variables[int(mark)]
        path = root_reference(var.expr, 0)
        if not path:
            return
        binding = Binding(to_change_path(path), selector, attribute, var.placeholder)
        self.bindings.append((var, binding))

    def _collect_bindings(self, element: Tag, selector: str) -> None:
        for name, value in element.attrs.items():
            if isinstance(value, str) and (match := _VAR_MARK_RE.fullmatch(value)):
                self._bind(match.group(1), selector, str(name))

        children = list(element.children)
        if len(children) == 1 and isinstance(children[0], NavigableString) and not isinstance(children[0], Comment):
            if match := _VAR_MARK_RE.fullmatch(str(children[0])):
                self._bind(match.group(1), selector, TEXT_CONTENT)

    def _anchor_loop(self, block: Block, parent_selector: str, offset: int) -> None:
        if block.kind != "each" or block.alternative or not _is_plain_path(block.expr):
            return
        if not _renders_single_element(block.body):
            return
        anchor = LoopAnchor(
            path=to_change_path(block.expr),
            parent_selector=parent_selector,
            offset=offset,
            body=block.body,
            uses_last=_uses_last(block.body),
        )
        self.anchors.append((block, anchor))


def collect_references(
    nodes: list[Node],
    binding_vars: set[int],
    anchored_blocks: set[int],
) -> dict[str, set[str]]:
    """Classify every root data path the template can read."""
    references: dict[str, set[str]] = defaultdict(set)

    def add(expr: str, depth: int, kind: str) -> None:
        path = root_reference(expr, depth)
        if path is not None:
            references[to_change_path(path)].add(kind)

    def visit(level: list[Node], depth: int, nested: bool) -> None:
        for node in level:
            if isinstance(node, Var):
                if nested:
                    add(node.expr, depth, "block")
                else:
                    add(node.expr, depth, "binding" if id(node) in binding_vars else "inline")
            elif isinstance(node, Block):
                anchored = not nested and id(node) in anchored_blocks
                add(node.expr, depth, "loop" if anchored else "block")
                visit(node.body, depth + 1 if node.kind == "each" else depth, True)
                visit(node.alternative, depth, True)

    visit(nodes, 0, False)
    return dict(references)


def compile_template(
    template_id: str,
    body: str,
    lookup: PartialLookup,
    minify: bool = True,
) -> CompiledTemplate:
    """Run every compilation pass and the patch analysis.

    Args:
        template_id: Id used in error messages
        body: Template source
        lookup: Partial resolver (template-local first, then global)
        minify: Strip whitespace around tags

    Raises:
        RegistrationError: On unbalanced blocks or unresolved/recursive partials
    """
    counter = itertools.count(1)
    source = prepare_source(body, counter, template_id, minify)
    source = inline_partials(source, lookup, counter, template_id, minify)
    nodes = parse_tagged(source, template_id)

    analyzer = _Analyzer(nodes)
    analyzer.run()

    bindings: dict[str, list[Binding]] = defaultdict(list)
    for _, binding in analyzer.bindings:
        bindings[binding.path].append(binding)
    loops: dict[str, list[LoopAnchor]] = defaultdict(list)
    for _, anchor in analyzer.anchors:
        loops[anchor.path].append(anchor)

    references = collect_references(
        nodes,
        {id(var) for var, _ in analyzer.bindings},
        {id(block) for block, _ in analyzer.anchors},
    )

    block_count = sum(1 for node in walk_nodes(nodes) if isinstance(node, Block))
    logger.debug(
        "Compiled %s: %d blocks, %d bindings, %d anchored loops",
        template_id, block_count, len(analyzer.bindings), len(analyzer.anchors),
    )
    return CompiledTemplate(
        template_id=template_id,
        source=source,
        nodes=nodes,
        bindings=dict(bindings),
        loops=dict(loops),
        references=references,
        block_count=block_count,
    )
