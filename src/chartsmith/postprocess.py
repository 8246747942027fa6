"""Output post-processing.

Runs on the final markup of every render, after any patch is applied, so
snapshots keep the template's own structure and compile-time selectors stay
valid. Steps:

- optimize: drop <defs> children nothing references, then duplicate <style> blocks
- animations: fade-in style block in the document's <defs>
- interactivity: hover style block in the document's <defs>
"""

import logging
import re
from dataclasses import dataclass

from bs4 import Tag

from chartsmith.errors import MarkupError
from chartsmith.markup import MarkupDocument

logger = logging.getLogger(__name__)

ANIMATION_STYLES = (
    "svg { animation: chartsmith-fade-in 0.5s ease-in; }"
    " @keyframes chartsmith-fade-in { from { opacity: 0; } to { opacity: 1; } }"
)
INTERACTIVE_STYLES = (
    ".section:hover { opacity: 0.8; cursor: pointer; }"
    " .item:hover { font-weight: bold; cursor: pointer; }"
)
STYLE_MARKER = "data-chartsmith"

_URL_REF = re.compile(r"url\(\s*['\"]?#([^)'\"\s]+)")


@dataclass(frozen=True)
class PostProcessing:
    """Which post-processing steps run."""

    optimize: bool = True
    animations: bool = False
    interactivity: bool = False

    @property
    def enabled(self) -> bool:
        return self.optimize or self.animations or self.interactivity

    @property
    def tag(self) -> str:
        """Compact form for cache keys, e.g. "oa" or "-"."""
        steps = (("o", self.optimize), ("a", self.animations), ("i", self.interactivity))
        return "".join(flag for flag, on in steps if on) or "-"


def referenced_ids(doc: MarkupDocument) -> set[str]:
    """Ids referenced through url(#id) or href="#id" anywhere in the document."""
    ids: set[str] = set()
    for element in doc.root.find_all(True):
        for name, value in element.attrs.items():
            text = value if isinstance(value, str) else " ".join(value)
            ids.update(_URL_REF.findall(text))
            if name.split(":")[-1] == "href" and text.startswith("#"):
                ids.add(text[1:])
        if element.name == "style":
            ids.update(_URL_REF.findall(element.get_text()))
    return ids


def remove_unused_defs(doc: MarkupDocument) -> int:
    """Remove <defs> children whose id is never referenced, and empty <defs>.

    Returns:
        Number of removed elements
    """
    referenced = referenced_ids(doc)
    removed = 0
    for defs in doc.root.find_all("defs"):
        for child in [child for child in defs.children if isinstance(child, Tag)]:
            element_id = child.get("id")
            if element_id and element_id not in referenced:
                child.decompose()
                removed += 1
        if not defs.find(True) and not defs.get_text(strip=True):
            defs.decompose()
            removed += 1
    return removed


def merge_styles(doc: MarkupDocument) -> int:
    """Remove <style> blocks repeating an earlier block's rules."""
    seen: set[str] = set()
    removed = 0
    for style in doc.root.find_all("style"):
        rules = " ".join(style.get_text().split())
        if rules in seen:
            style.decompose()
            removed += 1
        else:
            seen.add(rules)
    return removed


def inject_style(doc: MarkupDocument, name: str, css: str) -> int:
    """Add a marked <style> block to the first element's <defs> (created if needed).

    Returns:
        1 when a block was added, 0 when it was already present or the
        document has no element to hold it
    """
    elements = doc.elements()
    if not elements:
        return 0
    document = elements[0]

    defs = document.find("defs", recursive=False)
    if defs is None:
        defs = doc.soup.new_tag("defs")
        document.insert(0, defs)
    elif defs.find("style", attrs={STYLE_MARKER: name}) is not None:
        return 0

    style = doc.soup.new_tag("style", attrs={STYLE_MARKER: name})
    style.string = css
    defs.append(style)
    return 1


def post_process(markup: str, steps: PostProcessing) -> str:
    """Apply the enabled steps; markup nothing applies to is returned as is."""
    if not steps.enabled:
        return markup
    try:
        doc = MarkupDocument(markup)
    except MarkupError as e:
        logger.debug("Skipping post-processing: %s", e)
        return markup

    changes = 0
    if steps.optimize:
        changes += remove_unused_defs(doc) + merge_styles(doc)
    if steps.animations:
        changes += inject_style(doc, "animations", ANIMATION_STYLES)
    if steps.interactivity:
        changes += inject_style(doc, "interactivity", INTERACTIVE_STYLES)

    return doc.serialize() if changes else markup
