"""Per-block extraction.

Every Part of a Scraper is evaluated against every block of a page, in
declared order, and the values are assembled into one record per block.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from blockscrape.common.exceptions import ExtractionError
from blockscrape.common.selection import Selection
from blockscrape.data_types import Part

logger = logging.getLogger(__name__)


def extract_block(block: Selection, parts: Sequence[Part]) -> dict[str, Any]:
    """Extract one record from a block.

    Args:
        block: The block to extract from.
        parts: Parts to evaluate, in order.

    Returns:
        Mapping of part name to value. Parts whose extractor returned None
        are left out.

    Raises:
        ExtractionError: If any extractor fails. The error names the part.
    """
    record: dict[str, Any] = {}
    for part in parts:
        sel = block.find(part.selector)
        try:
            value = part.extractor.extract(sel)
        except ExtractionError as e:
            raise ExtractionError(
                f"part '{part.name}' failed: {e.message}",
                request_url=block.url,
                context={
                    "part": part.name,
                    "selector": part.selector,
                    **e.context,
                },
            ) from e

        # A None result means the part does not exist in this block.
        if value is None:
            continue
        record[part.name] = value
    return record


def extract_blocks(
    blocks: Sequence[Selection], parts: Sequence[Part]
) -> list[dict[str, Any]]:
    """Extract the records of one page.

    Blocks that produce an empty record are dropped.

    Raises:
        ExtractionError: If any extractor fails; no partial page is returned.
    """
    page: list[dict[str, Any]] = []
    for block in blocks:
        record = extract_block(block, parts)
        if record:
            page.append(record)
    logger.debug(f"Extracted {len(page)} of {len(blocks)} blocks")
    return page
