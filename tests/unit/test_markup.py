"""Unit tests for markup parsing and serialization."""

import pytest

from chartsmith.errors import MarkupError
from chartsmith.markup import (
    MarkupDocument,
    check_well_formed,
    is_well_formed,
    normalize_markup,
    parse_element,
)


class TestWellFormed:
    """Tests for the strict well-formedness check."""

    def test_fragment_with_several_roots(self) -> None:
        """Test that fragments may hold several top-level elements and text."""
        check_well_formed("<a/>text<b/>")

    def test_unclosed_tag(self) -> None:
        """Test that unclosed tags raise."""
        with pytest.raises(MarkupError, match="not well-formed"):
            check_well_formed("<svg><g></svg>")

    def test_is_well_formed(self) -> None:
        """Test the boolean helper."""
        assert is_well_formed('<svg width="1"/>')
        assert not is_well_formed("<svg width=1/>")


class TestMarkupDocument:
    """Tests for MarkupDocument."""

    def test_keeps_attribute_case(self) -> None:
        """Test that camelCase attributes survive a round trip."""
        doc = MarkupDocument('<svg viewBox="0 0 1 1"/>')

        assert doc.serialize() == '<svg viewBox="0 0 1 1"/>'

    def test_scope_selectors(self) -> None:
        """Test positional selectors relative to the synthetic root."""
        doc = MarkupDocument("<svg><a/><b/></svg>")

        [element] = doc.select(":scope > :nth-child(1) > :nth-child(2)")

        assert element.name == "b"

    def test_top_level_elements_and_texts(self) -> None:
        """Test top-level node accessors."""
        doc = MarkupDocument("<a/>x<b/>")

        assert [element.name for element in doc.elements()] == ["a", "b"]
        assert [str(text) for text in doc.texts()] == ["x"]


class TestParseElement:
    """Tests for parse_element."""

    def test_single_element(self) -> None:
        """Test parsing one element."""
        element = parse_element('<text fill="red">A</text>')

        assert element.name == "text"
        assert element["fill"] == "red"
        assert element.parent is None

    def test_rejects_two_elements(self) -> None:
        """Test that more than one element raises."""
        with pytest.raises(MarkupError, match="exactly one element"):
            parse_element("<a/><b/>")

    def test_rejects_stray_text(self) -> None:
        """Test that text beside the element raises."""
        with pytest.raises(MarkupError):
            parse_element("<a/>tail")


class TestNormalizeMarkup:
    """Tests for canonical serialization."""

    def test_idempotent(self) -> None:
        """Test that normalizing twice changes nothing."""
        markup = '<svg width="1"><g></g><text>A &amp; B</text></svg>'

        once = normalize_markup(markup)

        assert normalize_markup(once) == once

    def test_malformed_passes_through(self) -> None:
        """Test that unparsable markup is returned as-is."""
        assert normalize_markup("<svg>") == "<svg>"
