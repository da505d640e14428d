"""Selector utility functions.

Selectors in a payload may be either CSS or XPath. These helpers decide
which kind a selector is and check that lxml can compile it.
"""

from lxml import etree
from lxml.cssselect import CSSSelector, SelectorError

from blockscrape.common.exceptions import InvalidSelectorError

# A selector of exactly "." addresses the block root itself.
ROOT_SELECTOR = "."

_XPATH_PREFIXES = ("/", "./", "../", "(")


def selector_type(selector: str) -> str:
    """Determine whether a selector is XPath or CSS.

    Args:
        selector: The selector string.

    Returns:
        "xpath" or "css".

    Examples:
        >>> selector_type("//div[@class='item']")
        'xpath'
        >>> selector_type("./a/@href")
        'xpath'
        >>> selector_type("div.item > a")
        'css'
        >>> selector_type(".title")
        'css'
    """
    if selector.strip().startswith(_XPATH_PREFIXES):
        return "xpath"
    return "css"


def validate_selector(selector: str) -> None:
    """Compile a selector once to make sure lxml accepts it.

    Args:
        selector: CSS or XPath selector. The root selector "." is always valid.

    Raises:
        InvalidSelectorError: If the selector does not compile.
    """
    if selector == ROOT_SELECTOR:
        return

    kind = selector_type(selector)
    try:
        if kind == "xpath":
            etree.XPath(selector)
        else:
            CSSSelector(selector, translator="html")
    except (etree.XPathError, SelectorError) as e:
        raise InvalidSelectorError(selector, kind, str(e)) from e


def is_absolute_xpath(selector: str) -> bool:
    """Whether an XPath selector starts at the document root.

    Absolute paths ignore the context node, so they cannot be confined
    to a block.

    Examples:
        >>> is_absolute_xpath("//a")
        True
        >>> is_absolute_xpath("(//a)[1]")
        True
        >>> is_absolute_xpath(".//a")
        False
        >>> is_absolute_xpath("a.title")
        False
    """
    if selector_type(selector) != "xpath":
        return False
    return selector.strip().lstrip("(").startswith("/")
