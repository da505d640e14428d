"""Page division.

A divider splits a fetched document into blocks, the repeated units (rows,
cards, list items) from which one record each is extracted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence

from lxml.html import HtmlElement

from blockscrape.common.selection import Selection
from blockscrape.data_types import DividePageFunc

logger = logging.getLogger(__name__)


def divide_page_by_selector(selector: str) -> DividePageFunc:
    """Return a divider producing one block per element matching selector.

    ``divide_page_by_selector("body")`` treats the whole document as a
    single block.
    """

    def divide(document: Selection) -> list[Selection]:
        return list(document.find(selector, include_self=True))

    return divide


def _containers(element: HtmlElement) -> Iterator[HtmlElement]:
    """Yield the strict ancestors of an element, nearest first.

    The document root has no ancestors and is its own container.
    """
    parent = element.getparent()
    if parent is None:
        yield element
        return
    yield parent
    yield from parent.iterancestors()


def _holding(found: list[HtmlElement]) -> set[HtmlElement]:
    """Every element that contains at least one of the matches."""
    holding: set[HtmlElement] = set()
    for element in found:
        for container in _containers(element):
            if container in holding:
                break
            holding.add(container)
    return holding


def divide_page_by_intersection(selectors: Sequence[str]) -> DividePageFunc:
    """Return a divider producing the smallest units holding every selector.

    For each selector, every element containing one of its matches is
    collected. The intersection of these sets holds the elements that
    contain a match of every selector. Each match is then assigned the
    nearest such element above it. Units that contain another unit are
    dropped so two records never end up in one block. The remaining units
    are returned in document order.

    If any selector has no match on a page, the page has no blocks.

    Args:
        selectors: CSS or XPath selectors that must all match inside a block.

    Returns:
        A divider function.
    """
    selectors = tuple(selectors)
    if not selectors:
        raise ValueError("divide_page_by_intersection needs selectors")

    def divide(document: Selection) -> list[Selection]:
        matches = [
            document.find(selector, include_self=True).elements
            for selector in selectors
        ]
        if any(not found for found in matches):
            logger.debug(
                f"Not every selector matched on {document.url}, no blocks",
                extra={"selectors": selectors},
            )
            return []

        intersection = set.intersection(
            *(_holding(found) for found in matches)
        )

        units: dict[HtmlElement, None] = {}
        for found in matches:
            for element in found:
                for container in _containers(element):
                    if container in intersection:
                        units[container] = None
                        break

        nested: set[HtmlElement] = set()
        for unit in units:
            for ancestor in unit.iterancestors():
                if ancestor in units:
                    nested.add(ancestor)

        blocks = [unit for unit in units if unit not in nested]
        if not blocks:
            return []

        root = blocks[0].getroottree().getroot()
        position = {element: i for i, element in enumerate(root.iter())}
        blocks.sort(key=lambda unit: position[unit])

        return [Selection([unit], document.url) for unit in blocks]

    return divide
