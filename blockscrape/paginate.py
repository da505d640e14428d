"""Paginators compute the URL of the next page from the current document."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urljoin, urlparse

from blockscrape.common.exceptions import PaginationError
from blockscrape.common.selection import Selection

logger = logging.getLogger(__name__)

_FOLLOWABLE_SCHEMES = ("http", "https")


class Paginator(Protocol):
    def next_page(self, url: str, document: Selection) -> str:
        """Return the next page's URL, or "" if there is none.

        Args:
            url: URL of the page that was just fetched.
            document: The parsed page.

        Raises:
            PaginationError: If the next URL cannot be computed.
        """
        ...


class NoPaginator:
    """Paginator for single-page scrapes: there is never a next page."""

    def next_page(self, url: str, document: Selection) -> str:
        return ""


@dataclass(frozen=True)
class BySelector:
    """Follows the first element matching a selector.

    The value of ``attribute`` on the first matching element that has it is
    resolved against the current URL. No match, or an empty value, ends the
    pagination.

    Attributes:
        selector: CSS or XPath selector of the "next" control.
        attribute: Attribute holding the next URL.
    """

    selector: str
    attribute: str = "href"

    def next_page(self, url: str, document: Selection) -> str:
        value = document.find(self.selector, include_self=True).attr(
            self.attribute
        )
        if value is None or not value.strip():
            logger.debug(f"No next page found on {url}")
            return ""

        try:
            next_url = urljoin(url, value.strip())
        except ValueError as e:
            raise PaginationError(
                f"could not resolve next page link '{value}': {e}",
                request_url=url,
                context={"selector": self.selector},
            ) from e

        scheme = urlparse(next_url).scheme
        if scheme not in _FOLLOWABLE_SCHEMES:
            raise PaginationError(
                f"next page link '{value}' has unsupported scheme "
                f"'{scheme}'",
                request_url=url,
                context={
                    "selector": self.selector,
                    "attribute": self.attribute,
                },
            )
        return next_url
