"""Field compiler: turns a payload into a Scraper.

Each payload field becomes one Part, or two for the composite ``link`` and
``image`` types. The parts are validated, the selectors of all fields are
handed to the page divider, and the paginator and options are set up. All
problems found here are ConfigurationExceptions and prevent task creation.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from blockscrape.common.exceptions import (
    ConfigurationException,
    DetailsDepthError,
    DuplicatePartNameError,
    InvalidSelectorError,
    MissingPartNameError,
    MissingSelectorError,
    NoPartsError,
)
from blockscrape.common.selector_utils import (
    ROOT_SELECTOR,
    is_absolute_xpath,
    validate_selector,
)
from blockscrape.data_types import (
    DividePageFunc,
    FetcherKind,
    Part,
    ScrapeOptions,
    Scraper,
    Task,
)
from blockscrape.divider import (
    divide_page_by_intersection,
    divide_page_by_selector,
)
from blockscrape.extractors import Image, Link, build_extractor
from blockscrape.paginate import BySelector, NoPaginator, Paginator
from blockscrape.payload import FieldPayload, Payload, load_payload

logger = logging.getLogger(__name__)

# Maximum nesting of details scrapers below a top-level scraper.
MAX_DETAILS_DEPTH = 3

DETAILS_SUFFIX = "_details"


def _field_parts(field: FieldPayload, depth: int) -> list[Part]:
    """Build the parts for one payload field."""
    extractor = build_extractor(
        field.name, field.extractor.type, field.extractor.params
    )

    details = None
    if field.details is not None:
        if isinstance(extractor, Image):
            raise ConfigurationException(
                f"image field '{field.name}' cannot have details",
                context={"field": field.name},
            )
        if depth + 1 > MAX_DETAILS_DEPTH:
            raise DetailsDepthError(field.name, MAX_DETAILS_DEPTH)
        details = new_scraper(field.details, depth=depth + 1)

    if isinstance(extractor, Link | Image):
        expanded = extractor.expand(field.name)
        # Without a field name the generated names would look valid.
        names = [name if field.name else "" for name, _ in expanded]
        parts = [
            Part(name=name, selector=field.selector, extractor=sub)
            for name, (_, sub) in zip(names, expanded, strict=True)
        ]
        if details is not None:
            # The URL to follow is the link part.
            parts[1] = replace(parts[1], details=details)
        return parts

    return [
        Part(
            name=field.name,
            selector=field.selector,
            extractor=extractor,
            details=details,
        )
    ]


def validate_parts(parts: list[Part]) -> None:
    """Check that parts are usable.

    Raises:
        NoPartsError: If there are no parts.
        MissingPartNameError: If a part has no name.
        DuplicatePartNameError: If two parts (or a part and the details key
            of another) share a name.
        MissingSelectorError: If a part has no selector.
        InvalidSelectorError: If a selector does not compile, or is an
            XPath anchored at the document root.
    """
    if not parts:
        raise NoPartsError()

    seen_names: set[str] = set()
    for i, part in enumerate(parts):
        if not part.name:
            raise MissingPartNameError(i)
        if part.name in seen_names:
            raise DuplicatePartNameError(part.name, i)
        seen_names.add(part.name)

        if not part.selector:
            raise MissingSelectorError(part.name, i)
        validate_selector(part.selector)
        if is_absolute_xpath(part.selector):
            raise InvalidSelectorError(
                part.selector,
                "xpath",
                "part selectors must be relative to the block, e.g. './/a'",
            )

    for i, part in enumerate(parts):
        if part.details is not None:
            details_key = part.name + DETAILS_SUFFIX
            if details_key in seen_names:
                raise DuplicatePartNameError(details_key, i)


def _paginator(payload: Payload) -> Paginator:
    if payload.paginator is None:
        return NoPaginator()
    validate_selector(payload.paginator.selector)
    return BySelector(
        selector=payload.paginator.selector,
        attribute=payload.paginator.attribute or "href",
    )


def _divider(selectors: list[str]) -> DividePageFunc:
    if not selectors:
        return divide_page_by_selector("body")
    return divide_page_by_intersection(selectors)


def new_scraper(payload: Payload, depth: int = 0) -> Scraper:
    """Create a Scraper from a payload.

    Args:
        payload: The validated payload.
        depth: Nesting level, used when compiling details payloads.

    Returns:
        The immutable scrape plan.

    Raises:
        ConfigurationException: If the payload cannot be compiled.
    """
    parts: list[Part] = []
    selectors: list[str] = []
    for field in payload.fields:
        parts.extend(_field_parts(field, depth))
        # One selector per field, however many parts it generated.
        if field.selector and field.selector != ROOT_SELECTOR:
            if field.selector not in selectors:
                selectors.append(field.selector)

    validate_parts(parts)

    opts = ScrapeOptions(
        max_pages=payload.paginator.max_pages if payload.paginator else 0,
        format=payload.format,
        paginate_results=payload.paginate_results,
        fetch_delay=payload.fetch_delay,
        randomize_fetch_delay=payload.randomize_fetch_delay,
        retry_times=payload.retry_times,
        fetcher_kind=(
            payload.request.type if payload.request else FetcherKind.BASE
        ),
    )

    scraper = Scraper(
        paginator=_paginator(payload),
        divide_page=_divider(selectors),
        parts=tuple(parts),
        opts=opts,
        depth=depth,
    )
    logger.debug(
        f"Built scraper with parts {scraper.part_names()}",
        extra={"selectors": selectors, "depth": depth},
    )
    return scraper


def new_task(payload: Payload | dict[str, Any] | str | bytes) -> Task:
    """Create a Task from a payload.

    Args:
        payload: A Payload, or a dict / JSON document to validate first.

    Raises:
        ConfigurationException: If the payload is invalid; no task is created.
    """
    if not isinstance(payload, Payload):
        payload = load_payload(payload)
    return Task(scraper=new_scraper(payload))
