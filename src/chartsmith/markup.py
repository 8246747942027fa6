"""Markup parsing and serialization.

Rendered output is handled as an XML fragment wrapped in a synthetic root
element. Parsing goes through BeautifulSoup's lxml XML builder, which keeps
attribute case (viewBox, preserveAspectRatio) intact, and CSS selectors are
resolved with soupsieve via Tag.select().

Selectors produced at compile time are relative to the synthetic root:
    ":scope > :nth-child(1) > :nth-child(3)"
"""

import logging

from bs4 import BeautifulSoup, NavigableString, Tag
from lxml import etree

from chartsmith.errors import MarkupError

logger = logging.getLogger(__name__)

ROOT_TAG = "cs-root"


def wrap(markup: str) -> str:
    """Wrap a fragment in the synthetic root element."""
    return f"<{ROOT_TAG}>{markup}</{ROOT_TAG}>"


def check_well_formed(markup: str) -> None:
    """Raise MarkupError unless the fragment parses as strict XML.

    BeautifulSoup's XML builder recovers from errors silently, so strictness
    is checked with lxml first.
    """
    parser = etree.XMLParser(recover=False, resolve_entities=False, no_network=True)
    try:
        etree.fromstring(wrap(markup).encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise MarkupError(f"Markup is not well-formed: {e}") from e


def is_well_formed(markup: str) -> bool:
    try:
        check_well_formed(markup)
    except MarkupError:
        return False
    return True


class MarkupDocument:
    """A parsed markup fragment that can be queried and mutated.

    Usage:
        doc = MarkupDocument("<svg width='10'/>")
        for el in doc.select("svg"):
            el["width"] = "20"
        doc.serialize()  # '<svg width="20"/>'
    """

    def __init__(self, markup: str) -> None:
        """Parse a fragment.

        Raises:
            MarkupError: If the fragment is not well-formed XML
        """
        check_well_formed(markup)
        self.soup = BeautifulSoup(wrap(markup), "xml")
        root = self.soup.find(ROOT_TAG)
        if root is None:
            raise MarkupError("Markup produced no document root")
        self.root: Tag = root

    def select(self, selector: str) -> list[Tag]:
        """All elements matching a CSS selector, in document order."""
        return list(self.root.select(selector))

    def elements(self) -> list[Tag]:
        """Top-level elements of the fragment."""
        return [child for child in self.root.children if isinstance(child, Tag)]

    def texts(self) -> list[NavigableString]:
        """Top-level text nodes of the fragment."""
        return [child for child in self.root.children if isinstance(child, NavigableString)]

    def serialize(self) -> str:
        """Serialize the fragment (without the synthetic root)."""
        return self.root.decode_contents()


def parse_element(markup: str) -> Tag:
    """Parse markup holding exactly one element and return it, detached.

    Raises:
        MarkupError: If the markup is malformed or is not a single element
    """
    doc = MarkupDocument(markup)
    elements = doc.elements()
    if len(elements) != 1 or any(text.strip() for text in doc.texts()):
        raise MarkupError(f"Expected exactly one element, got {len(elements)}")
    return elements[0].extract()


def normalize_markup(markup: str) -> str:
    """Canonical serialization of a fragment.

    Full renders and patched documents both pass through this, so equal trees
    always produce equal text. Malformed markup is returned unchanged.
    """
    try:
        return MarkupDocument(markup).serialize()
    except MarkupError as e:
        logger.debug("Skipping normalization: %s", e)
        return markup
