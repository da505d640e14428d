"""Data types for scrape plans, tasks and results.

A Scraper is the immutable plan built from a payload: the parts extracted
from every block, the function dividing a page into blocks, the paginator
and the options. A Task is one execution of a Scraper, with its own Session
and Results.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.robotparser import RobotFileParser

if TYPE_CHECKING:
    from blockscrape.common.selection import Selection
    from blockscrape.extractors import Extractor
    from blockscrape.fetch import Fetcher
    from blockscrape.paginate import Paginator


class FetcherKind(Enum):
    """Kind of fetch a scrape needs.

    Values:
        BASE: Plain HTTP request.
        HEADLESS: Rendered by a headless browser.
    """

    BASE = "base"
    HEADLESS = "headless"


class TaskState(Enum):
    """State of a task's pagination loop. Task.status holds the value."""

    CREATED = "created"
    FETCHING = "fetching"
    DIVIDING = "dividing"
    EXTRACTING = "extracting"
    ADVANCING = "advancing"
    DONE = "done"
    FAILED = "failed"


# Splits a page into blocks. Every Part is evaluated against every block.
DividePageFunc = Callable[["Selection"], "list[Selection]"]


@dataclass(frozen=True)
class Part:
    """A named piece of data extracted from every block.

    Attributes:
        name: Key of the value in each block record. Unique within a Scraper.
        selector: Sub-selector applied within the block; "." uses the block
            itself.
        extractor: Turns the selected node-set into a value.
        details: Optional child Scraper run against the URL this part
            extracts.
    """

    name: str
    selector: str
    extractor: Extractor
    details: Scraper | None = None


@dataclass(frozen=True)
class ScrapeOptions:
    """Options used while a scrape is in progress.

    Attributes:
        max_pages: Maximum number of pages to fetch. 0 means unlimited.
        format: Output format tag, passed through to the output layer.
        paginate_results: Keep results grouped by page instead of flattening.
        fetch_delay: Milliseconds to wait between consecutive fetches.
        randomize_fetch_delay: Draw each delay from 0.5x to 1.5x fetch_delay.
        retry_times: Extra fetch attempts after a transient failure.
        fetcher_kind: Whether pages need plain HTTP or a headless browser.
    """

    max_pages: int = 0
    format: str = "json"
    paginate_results: bool = True
    fetch_delay: int = 0
    randomize_fetch_delay: bool = False
    retry_times: int = 0
    fetcher_kind: FetcherKind = FetcherKind.BASE


@dataclass(frozen=True)
class Scraper:
    """An immutable scrape plan.

    Scrapers are built once by blockscrape.compiler.new_scraper and can be
    shared, read-only, between tasks running at the same time.

    Attributes:
        paginator: Computes the next page URL from a fetched page.
        divide_page: Splits a page into blocks.
        parts: Data extracted from each block, in declared order.
        opts: Options for the scrape.
        depth: Nesting level; 0 for a top-level scraper, n + 1 for the
            details scraper of a level-n part.
    """

    paginator: Paginator
    divide_page: DividePageFunc
    parts: tuple[Part, ...]
    opts: ScrapeOptions = field(default_factory=ScrapeOptions)
    depth: int = 0

    def part_names(self) -> list[str]:
        return [part.name for part in self.parts]


@dataclass
class Session:
    """State carried from one page request to the next.

    Attributes:
        robots: Parsed robots.txt policy of the target site, if loaded.
        cookies: Cookie header value to send with the next request.
    """

    robots: RobotFileParser | None = None
    cookies: str = ""


@dataclass
class Results:
    """Results of a scrape.

    Attributes:
        visited: Every URL fetched, mapped to the error it caused (None on
            success).
        results: One entry per completed page; each page is a list of block
            records mapping part names to values.
    """

    visited: dict[str, Exception | None] = field(default_factory=dict)
    results: list[list[dict[str, Any]]] = field(default_factory=list)

    def first(self) -> dict[str, Any] | None:
        """Return the first block of the first page, or None."""
        if not self.results or not self.results[0]:
            return None
        return self.results[0][0]

    def all_blocks(self) -> list[dict[str, Any]]:
        """Return the records of every block on every page, in order.

        Always returns a list, even if no blocks were found.
        """
        return [block for page in self.results for block in page]

    def output(
        self, paginate_results: bool
    ) -> list[list[dict[str, Any]]] | list[dict[str, Any]]:
        """Shape the results for output, grouped by page or flattened."""
        if paginate_results:
            return self.results
        return self.all_blocks()


@dataclass
class Task:
    """One scrape execution.

    Attributes:
        scraper: The plan being executed.
        id: Opaque unique identifier.
        created_at: When the task was created (UTC).
        session: Cookies and robots data, updated as pages are fetched.
        status: Current TaskState value.
        results: Accumulated results.
    """

    scraper: Scraper
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    session: Session = field(default_factory=Session)
    status: str = TaskState.CREATED.value
    results: Results = field(default_factory=Results)

    def start_time(self) -> datetime:
        return self.created_at

    def output(self) -> list[list[dict[str, Any]]] | list[dict[str, Any]]:
        return self.results.output(self.scraper.opts.paginate_results)

    def run(
        self,
        url: str,
        fetcher: Fetcher,
        **kwargs: Any,
    ) -> Results:
        """Run this task from a seed URL.

        See blockscrape.engine.PaginationEngine for keyword arguments.
        """
        from blockscrape.engine import PaginationEngine

        return PaginationEngine(self, fetcher, **kwargs).run(url)
