"""Selection: an ordered node-set over a parsed lxml document.

A Selection is what extractors, dividers and paginators work on. It wraps
zero or more lxml HtmlElements, keeps the URL of the page they came from
and supports nested CSS or XPath queries, so a block can be sub-selected
the same way the whole document is.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from html import escape

from lxml import etree, html
from lxml.cssselect import SelectorError
from lxml.html import HtmlElement

from blockscrape.common.exceptions import (
    DivisionError,
    InvalidSelectorError,
)
from blockscrape.common.selector_utils import (
    ROOT_SELECTOR,
    selector_type,
)


class Selection:
    """Ordered, duplicate-free set of HTML elements.

    Attributes:
        url: URL of the page the elements were parsed from.
    """

    def __init__(self, elements: Iterable[HtmlElement], url: str = "") -> None:
        """Initialize the selection.

        Args:
            elements: The lxml elements to wrap. Duplicates are dropped,
                first occurrence wins.
            url: URL of the page, used for error context and URL resolution.
        """
        seen: set[int] = set()
        unique: list[HtmlElement] = []
        for element in elements:
            if id(element) in seen:
                continue
            seen.add(id(element))
            unique.append(element)
        self._elements = unique
        self.url = url

    @classmethod
    def from_html(cls, content: bytes | str, url: str = "") -> Selection:
        """Parse a document into a single-element selection of its root.

        Args:
            content: Raw HTML. Bytes are decoded by lxml using the document's
                declared encoding.
            url: URL the document was fetched from.

        Returns:
            Selection holding the document's <html> element.

        Raises:
            DivisionError: If the content cannot be parsed as HTML.
        """
        try:
            root = html.document_fromstring(content)
        except (etree.ParserError, ValueError) as e:
            raise DivisionError(
                f"could not parse document: {e}", request_url=url
            ) from e
        return cls([root], url)

    @property
    def elements(self) -> list[HtmlElement]:
        return list(self._elements)

    def __len__(self) -> int:
        return len(self._elements)

    def __iter__(self) -> Iterator[Selection]:
        for element in self._elements:
            yield Selection([element], self.url)

    def __repr__(self) -> str:
        tags = ", ".join(el.tag for el in self._elements[:5])
        more = ", ..." if len(self._elements) > 5 else ""
        return f"Selection([{tags}{more}])"

    def find(self, selector: str, include_self: bool = False) -> Selection:
        """Query every element of this selection.

        CSS selectors return descendants of each element. The element itself
        can still satisfy the ancestor side of a combinator, so "div > a"
        works on a div block. XPath expressions are evaluated with each
        element as the context node; results that are not elements (text
        nodes, attribute values) are discarded.

        Args:
            selector: CSS or XPath selector. "." returns this selection.
            include_self: Let CSS selectors match the elements of this
                selection too (lxml's descendant-or-self semantics).

        Returns:
            A new Selection with all matches, in query order.

        Raises:
            InvalidSelectorError: If the selector does not compile.
        """
        if selector == ROOT_SELECTOR:
            return self

        kind = selector_type(selector)
        matches: list[HtmlElement] = []
        for element in self._elements:
            try:
                if kind == "xpath":
                    results = element.xpath(selector)
                else:
                    results = element.cssselect(selector)
                    if not include_self:
                        results = [r for r in results if r is not element]
            except (etree.XPathError, SelectorError) as e:
                raise InvalidSelectorError(selector, kind, str(e)) from e

            if not isinstance(results, list):
                continue
            matches.extend(r for r in results if isinstance(r, HtmlElement))

        return Selection(matches, self.url)

    def text(self) -> str:
        """Combined text content of all elements."""
        return "".join(el.text_content() for el in self._elements)

    def texts(self) -> list[str]:
        """Text content of each element, one entry per element."""
        return [el.text_content() for el in self._elements]

    def inner_html(self) -> str | None:
        """Inner HTML of the first element, or None when empty."""
        if not self._elements:
            return None
        elem = self._elements[0]
        inner = escape(elem.text or "", quote=False)
        inner += "".join(
            html.tostring(child, encoding="unicode") for child in elem
        )
        return inner

    def outer_html(self) -> str | None:
        """Outer HTML of the first element, or None when empty."""
        if not self._elements:
            return None
        return html.tostring(
            self._elements[0], encoding="unicode", with_tail=False
        )

    def attr(self, name: str) -> str | None:
        """Value of an attribute on the first element that has it."""
        for element in self._elements:
            value = element.get(name)
            if value is not None:
                return value
        return None

    def attrs(self, name: str) -> list[str]:
        """Values of an attribute on every element that has it."""
        return [
            element.get(name)
            for element in self._elements
            if element.get(name) is not None
        ]
