"""Test utilities for engine and CLI tests."""

import logging

from blockscrape.common.exceptions import (
    HTMLResponseAssumptionException,
    UnexpectedStatusError,
)
from blockscrape.fetch import FetchRequest, FetchResponse

logger = logging.getLogger(__name__)


class FakeFetcher:
    """Fetcher serving canned HTML from a dict.

    Attributes:
        pages: URL -> HTML. URLs missing from the dict answer with a 404.
        failures: URL -> number of times the URL fails with a 503 before
            it is served.
        set_cookies: URL -> cookie string merged into the session when the
            URL is fetched.
        requests: Every request received, in order.
    """

    def __init__(
        self,
        pages: dict[str, str],
        failures: dict[str, int] | None = None,
        set_cookies: dict[str, str] | None = None,
    ) -> None:
        self.pages = pages
        self.failures = dict(failures or {})
        self.set_cookies = set_cookies or {}
        self.requests: list[FetchRequest] = []

    def fetch(self, request: FetchRequest) -> FetchResponse:
        self.requests.append(request)
        url = request.url
        logger.debug(f"Fake fetch of {url}")

        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            raise HTMLResponseAssumptionException(
                status_code=503, expected_codes=[200], url=url
            )
        if url not in self.pages:
            raise UnexpectedStatusError(404, url)

        cookies = request.cookies
        if url in self.set_cookies:
            cookies = "; ".join(
                c for c in (cookies, self.set_cookies[url]) if c
            )
        return FetchResponse(
            url=url,
            status_code=200,
            content=self.pages[url].encode("utf-8"),
            cookies=cookies,
        )

    @property
    def urls(self) -> list[str]:
        """URLs requested so far, in order."""
        return [request.url for request in self.requests]


class RecordingSleep:
    """Stand-in for time.sleep that records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
