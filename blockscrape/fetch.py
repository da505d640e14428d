"""Fetchers: the transport the pagination engine gets documents from.

The engine only depends on the Fetcher protocol. HttpFetcher is the plain
HTTP implementation built on httpx.

An HttpFetcher owns an httpx.Client. Give every concurrently running task
its own fetcher rather than sharing one.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urljoin
from urllib.robotparser import RobotFileParser

import httpx

from blockscrape.common.exceptions import (
    HTMLResponseAssumptionException,
    RequestFailedException,
    RequestTimeoutException,
    ScrapeException,
    TransientException,
    UnexpectedStatusError,
    UnsupportedFetchError,
)
from blockscrape.data_types import FetcherKind

logger = logging.getLogger(__name__)

# Statuses worth retrying besides 5xx: request timeout and rate limiting.
RETRYABLE_STATUS_CODES = frozenset({408, 429})

DEFAULT_USER_AGENT = "blockscrape (+https://pypi.org/project/blockscrape/)"


@dataclass(frozen=True)
class FetchRequest:
    """A page request.

    Attributes:
        url: Absolute URL to fetch.
        cookies: Cookie header value from the task's session.
        kind: Plain HTTP or headless browser.
    """

    url: str
    cookies: str = ""
    kind: FetcherKind = FetcherKind.BASE


@dataclass(frozen=True)
class FetchResponse:
    """A fetched page.

    Attributes:
        url: Final URL after any redirects.
        status_code: HTTP status code.
        content: Raw response body.
        cookies: Cookie header value to send with the next request.
        headers: Response headers.
    """

    url: str
    status_code: int
    content: bytes
    cookies: str = ""
    headers: dict[str, str] = field(default_factory=dict)


class Fetcher(Protocol):
    def fetch(self, request: FetchRequest) -> FetchResponse:
        """Fetch a page.

        Raises:
            TransientException: For failures that may go away on retry.
            ScrapeException: For failures that will not.
        """
        ...


def parse_cookie_header(header: str) -> dict[str, str]:
    """Split a Cookie header value into a name -> value mapping."""
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        name, sep, value = pair.strip().partition("=")
        if sep and name:
            cookies[name] = value
    return cookies


def format_cookie_header(cookies: dict[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


class HttpFetcher:
    """Fetches pages over plain HTTP with httpx.

    Cookies are not kept in the client: the caller's session is the only
    cookie store, and every response returns the merged cookie string.

    Example::

        with HttpFetcher(timeout=30.0) as fetcher:
            response = fetcher.fetch(FetchRequest(url="https://example.com"))
    """

    def __init__(
        self,
        timeout: float | None = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        ssl_context: ssl.SSLContext | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            timeout: Request timeout in seconds. None means no timeout.
            user_agent: User-Agent header sent with every request.
            ssl_context: Optional SSL context for HTTPS connections.
            transport: Optional httpx transport, e.g. httpx.MockTransport.
        """
        self.timeout = timeout
        self.user_agent = user_agent

        client_kwargs: dict[str, Any] = {
            "timeout": timeout,
            "follow_redirects": True,
            "headers": {"User-Agent": user_agent},
        }
        if ssl_context:
            client_kwargs["verify"] = ssl_context
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.Client(**client_kwargs)

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def fetch(self, request: FetchRequest) -> FetchResponse:
        """Fetch a page with a GET request.

        Raises:
            UnsupportedFetchError: For headless requests.
            HTMLResponseAssumptionException: For 5xx, 408 and 429 responses.
            UnexpectedStatusError: For other non-2xx responses.
            RequestTimeoutException: If the request times out.
            RequestFailedException: For other transport errors.
            ScrapeException: If the URL is invalid.
        """
        if request.kind is not FetcherKind.BASE:
            raise UnsupportedFetchError(
                f"HttpFetcher cannot serve {request.kind.value} requests",
                request_url=request.url,
            )

        headers = {}
        if request.cookies:
            headers["Cookie"] = request.cookies

        logger.debug(f"GET {request.url}")
        try:
            http_response = self._client.get(request.url, headers=headers)
        except httpx.TimeoutException as e:
            raise RequestTimeoutException(
                url=request.url, timeout_seconds=self.timeout
            ) from e
        except httpx.TransportError as e:
            raise RequestFailedException(url=request.url, reason=str(e)) from e
        except httpx.InvalidURL as e:
            raise ScrapeException(
                f"invalid URL: {e}", request_url=request.url
            ) from e
        finally:
            self._client.cookies.clear()

        status = http_response.status_code
        if not http_response.is_success:
            if status >= 500 or status in RETRYABLE_STATUS_CODES:
                raise HTMLResponseAssumptionException(
                    status_code=status, expected_codes=[200], url=request.url
                )
            raise UnexpectedStatusError(status, request.url)

        cookies = parse_cookie_header(request.cookies)
        for cookie in http_response.cookies.jar:
            if cookie.value is not None:
                cookies[cookie.name] = cookie.value

        return FetchResponse(
            url=str(http_response.url),
            status_code=http_response.status_code,
            content=http_response.content,
            cookies=format_cookie_header(cookies),
            headers=dict(http_response.headers),
        )


def load_robots(fetcher: Fetcher, url: str) -> RobotFileParser | None:
    """Fetch and parse the robots.txt of the site serving url.

    Returns:
        The parsed policy, or None if the site has no usable robots.txt.
    """
    robots_url = urljoin(url, "/robots.txt")
    try:
        response = fetcher.fetch(FetchRequest(url=robots_url))
    except (TransientException, ScrapeException) as e:
        logger.info(f"No robots.txt loaded for {url}: {e}")
        return None

    parser = RobotFileParser(robots_url)
    text = response.content.decode("utf-8", errors="replace")
    parser.parse(text.splitlines())
    return parser
