"""Pagination engine.

Runs a Task: fetch a page, divide it into blocks, extract a record from
every block, ask the paginator for the next URL, and repeat until there is
no next URL or the page limit is reached.

The loop is sequential; the next URL is only known once the current page
has been processed. Any fetch (after retries), division, extraction or
pagination error fails the task. Pages completed before the failure stay in
the task's Results, and the failing URL is recorded in Results.visited with
its error.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urljoin
from urllib.robotparser import RobotFileParser

from blockscrape.common.exceptions import TransientException
from blockscrape.common.selection import Selection
from blockscrape.compiler import DETAILS_SUFFIX
from blockscrape.data_types import (
    Results,
    ScrapeOptions,
    Task,
    TaskState,
)
from blockscrape.fetch import Fetcher, FetchRequest, FetchResponse
from blockscrape.pipeline import extract_blocks

logger = logging.getLogger(__name__)


class PaginationEngine:
    """Drives the fetch, divide, extract and advance cycle of one task.

    Example::

        task = new_task(payload)
        with HttpFetcher() as fetcher:
            results = PaginationEngine(task, fetcher).run(url)
    """

    def __init__(
        self,
        task: Task,
        fetcher: Fetcher,
        on_page: Callable[[str, list[dict[str, Any]]], None] | None = None,
        robots_provider: Callable[[str], RobotFileParser | None]
        | None = None,
        sleep: Callable[[float], None] = time.sleep,
        pace_first_fetch: bool = False,
    ) -> None:
        """Initialize the engine.

        Args:
            task: The task to run. Its session and results are updated in
                place.
            fetcher: Transport used for every page. Must not be shared with
                another task running at the same time.
            on_page: Optional callback invoked with the URL and the records
                of each completed page.
            robots_provider: Optional callable returning the robots policy
                for the seed URL. Stored on the session, not enforced here.
            sleep: Function used to wait between fetches.
            pace_first_fetch: Also wait before the first fetch. Used for
                details scrapes, which follow a fetch of the parent.
        """
        self.task = task
        self.fetcher = fetcher
        self.on_page = on_page
        self.robots_provider = robots_provider
        self._sleep = sleep
        self._fetch_count = 1 if pace_first_fetch else 0

    @property
    def opts(self) -> ScrapeOptions:
        return self.task.scraper.opts

    def _set_state(self, state: TaskState) -> None:
        self.task.status = state.value

    def _fetch_delay(self) -> float:
        """Seconds to wait before the next fetch."""
        delay = self.opts.fetch_delay / 1000
        if self.opts.randomize_fetch_delay:
            delay = random.uniform(0.5 * delay, 1.5 * delay)
        return delay

    def _pause(self) -> None:
        delay = self._fetch_delay()
        if delay > 0:
            self._sleep(delay)

    def _fetch(self, url: str) -> FetchResponse:
        """Fetch a page, retrying transient failures.

        Raises:
            TransientException: When the last attempt fails.
        """
        request = FetchRequest(
            url=url,
            cookies=self.task.session.cookies,
            kind=self.opts.fetcher_kind,
        )
        attempts = self.opts.retry_times + 1
        attempt = 1
        while True:
            if self._fetch_count > 0:
                self._pause()
            self._fetch_count += 1
            try:
                return self.fetcher.fetch(request)
            except TransientException as e:
                if attempt >= attempts:
                    raise
                logger.warning(
                    f"Fetch of {url} failed (attempt {attempt}/{attempts}), "
                    f"retrying: {e}",
                    extra={"url": url, "attempt": attempt},
                )
            attempt += 1

    def _resolve_details(
        self, page: list[dict[str, Any]], page_url: str
    ) -> None:
        """Run the details scrapers of this page's records.

        The flattened records of each details scrape are stored under
        ``<part name>_details``.
        """
        for part in self.task.scraper.parts:
            if part.details is None:
                continue
            for record in page:
                value = record.get(part.name)
                if value is None:
                    continue
                if not isinstance(value, str):
                    logger.warning(
                        f"Cannot follow details of part '{part.name}': "
                        f"expected a URL, got {type(value).__name__}",
                        extra={"part": part.name, "url": page_url},
                    )
                    continue

                child = Task(scraper=part.details, session=self.task.session)
                engine = PaginationEngine(
                    child,
                    self.fetcher,
                    sleep=self._sleep,
                    pace_first_fetch=True,
                )
                try:
                    engine.run(urljoin(page_url, value))
                finally:
                    self.task.results.visited.update(child.results.visited)
                record[part.name + DETAILS_SUFFIX] = child.results.all_blocks()

    def run(self, url: str) -> Results:
        """Run the task from a seed URL.

        Returns:
            The task's Results.

        Raises:
            TransientException: If a fetch still fails after all retries.
            ScrapeException: If division, extraction or pagination fails.
        """
        if not url:
            raise ValueError("no URL provided")

        task = self.task
        scraper = task.scraper
        results = task.results
        num_pages = 0
        current = url

        if self.robots_provider is not None and task.session.robots is None:
            task.session.robots = self.robots_provider(url)

        logger.info(
            f"Starting task {task.id} at {url}",
            extra={"task_id": task.id, "max_pages": self.opts.max_pages},
        )
        try:
            while True:
                # Repeat until we don't have any more URLs, or until we hit
                # our page limit.
                if not url or (
                    self.opts.max_pages > 0
                    and num_pages >= self.opts.max_pages
                ):
                    break

                current = url
                self._set_state(TaskState.FETCHING)
                response = self._fetch(current)
                task.session.cookies = response.cookies
                results.visited[current] = None

                self._set_state(TaskState.DIVIDING)
                document = Selection.from_html(response.content, response.url)
                blocks = scraper.divide_page(document)

                self._set_state(TaskState.EXTRACTING)
                page = extract_blocks(blocks, scraper.parts)
                self._resolve_details(page, response.url)

                results.results.append(page)
                num_pages += 1
                logger.info(
                    f"Page {num_pages} of task {task.id}: "
                    f"{len(page)} records from {current}",
                    extra={"task_id": task.id, "url": current},
                )
                if self.on_page:
                    self.on_page(current, page)

                self._set_state(TaskState.ADVANCING)
                url = scraper.paginator.next_page(response.url, document)
        except Exception as e:
            results.visited[current] = e
            self._set_state(TaskState.FAILED)
            logger.error(
                f"Task {task.id} failed on {current}: {e}",
                extra={"task_id": task.id, "url": current},
            )
            raise

        self._set_state(TaskState.DONE)
        logger.info(
            f"Task {task.id} done after {num_pages} pages",
            extra={"task_id": task.id, "pages": num_pages},
        )
        return results
