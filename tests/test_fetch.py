"""Tests for HttpFetcher and robots loading.

Tests use a real aiohttp server to verify actual HTTP behavior, and
httpx.MockTransport for failures that are hard to provoke from a server.
"""

import httpx
import pytest

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
from blockscrape.fetch import (
    FetchRequest,
    HttpFetcher,
    format_cookie_header,
    load_robots,
    parse_cookie_header,
)


class TestCookieHeaders:
    def test_parse(self):
        assert parse_cookie_header("a=1; b=two; junk") == {
            "a": "1",
            "b": "two",
        }

    def test_parse_empty(self):
        assert parse_cookie_header("") == {}

    def test_format(self):
        assert format_cookie_header({"a": "1", "b": "2"}) == "a=1; b=2"


class TestTransientExceptions:
    def test_all_fetch_failures_are_transient(self):
        for exc_type in (
            HTMLResponseAssumptionException,
            RequestTimeoutException,
            RequestFailedException,
        ):
            assert issubclass(exc_type, TransientException)

    def test_status_message(self):
        exc = HTMLResponseAssumptionException(
            status_code=503, expected_codes=[200], url="http://example.com/x"
        )
        assert "HTTP 503" in str(exc)
        assert "expected one of: 200" in str(exc)

    def test_timeout_message(self):
        exc = RequestTimeoutException(
            url="http://example.com/slow", timeout_seconds=12.5
        )
        assert "timed out" in str(exc)
        assert "12.5" in str(exc)


class TestHttpFetcherWithServer:
    def test_fetch_page(self, server_url: str):
        with HttpFetcher(timeout=5.0) as fetcher:
            response = fetcher.fetch(FetchRequest(url=f"{server_url}/products"))

        assert response.status_code == 200
        assert b"Dewdrop Canteen" in response.content
        assert response.url == f"{server_url}/products"
        assert response.cookies == ""

    def test_server_error_is_transient(self, server_url: str):
        url = f"{server_url}/products?server_error=true"
        with HttpFetcher(timeout=5.0) as fetcher:
            with pytest.raises(HTMLResponseAssumptionException) as exc_info:
                fetcher.fetch(FetchRequest(url=url))

        assert exc_info.value.status_code == 500
        assert exc_info.value.url == url

    def test_not_found_is_not_transient(self, server_url: str):
        with HttpFetcher(timeout=5.0) as fetcher:
            with pytest.raises(UnexpectedStatusError) as exc_info:
                fetcher.fetch(
                    FetchRequest(url=f"{server_url}/products/BM-999")
                )

        assert exc_info.value.status_code == 404
        assert not isinstance(exc_info.value, TransientException)

    def test_response_cookies_returned(self, server_url: str):
        with HttpFetcher(timeout=5.0) as fetcher:
            response = fetcher.fetch(
                FetchRequest(url=f"{server_url}/login", cookies="theme=dark")
            )

        assert parse_cookie_header(response.cookies) == {
            "theme": "dark",
            "hive_session": "queen-bee",
        }

    def test_client_keeps_no_cookies(self, server_url: str):
        """Only the cookies passed in a request are sent."""
        with HttpFetcher(timeout=5.0) as fetcher:
            fetcher.fetch(FetchRequest(url=f"{server_url}/login"))
            response = fetcher.fetch(FetchRequest(url=f"{server_url}/account"))

        assert b"anonymous" in response.content

    def test_request_cookies_sent(self, server_url: str):
        with HttpFetcher(timeout=5.0) as fetcher:
            response = fetcher.fetch(
                FetchRequest(
                    url=f"{server_url}/account",
                    cookies="hive_session=drone",
                )
            )

        assert b"drone" in response.content

    def test_load_robots(self, server_url: str):
        with HttpFetcher(timeout=5.0) as fetcher:
            robots = load_robots(fetcher, f"{server_url}/products?page=2")

        assert robots is not None
        assert robots.can_fetch("blockscrape", f"{server_url}/products")
        assert not robots.can_fetch("blockscrape", f"{server_url}/private")


class TestHttpFetcherWithMockTransport:
    def test_headless_requests_unsupported(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        with HttpFetcher(transport=transport) as fetcher:
            with pytest.raises(UnsupportedFetchError):
                fetcher.fetch(
                    FetchRequest(
                        url="https://example.com", kind=FetcherKind.HEADLESS
                    )
                )

    def test_user_agent_sent(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user-agent"] = request.headers["user-agent"]
            return httpx.Response(200, text="<html></html>")

        transport = httpx.MockTransport(handler)
        with HttpFetcher(user_agent="bug-bot/1.0", transport=transport) as f:
            f.fetch(FetchRequest(url="https://example.com"))

        assert seen["user-agent"] == "bug-bot/1.0"

    @pytest.mark.parametrize("status", [408, 429, 502])
    def test_retryable_statuses_are_transient(self, status):
        transport = httpx.MockTransport(lambda request: httpx.Response(status))
        with HttpFetcher(transport=transport) as fetcher:
            with pytest.raises(HTMLResponseAssumptionException) as exc_info:
                fetcher.fetch(FetchRequest(url="https://example.com/busy"))

        assert exc_info.value.status_code == status

    @pytest.mark.parametrize("status", [400, 403, 410])
    def test_client_errors_are_fatal(self, status):
        transport = httpx.MockTransport(lambda request: httpx.Response(status))
        with HttpFetcher(transport=transport) as fetcher:
            with pytest.raises(UnexpectedStatusError) as exc_info:
                fetcher.fetch(FetchRequest(url="https://example.com/nope"))

        assert exc_info.value.status_code == status
        assert exc_info.value.request_url == "https://example.com/nope"

    def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        transport = httpx.MockTransport(handler)
        with HttpFetcher(timeout=1.5, transport=transport) as fetcher:
            with pytest.raises(RequestTimeoutException) as exc_info:
                fetcher.fetch(FetchRequest(url="https://example.com/slow"))

        assert exc_info.value.timeout_seconds == 1.5

    def test_connection_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = httpx.MockTransport(handler)
        with HttpFetcher(transport=transport) as fetcher:
            with pytest.raises(RequestFailedException) as exc_info:
                fetcher.fetch(FetchRequest(url="https://example.com/"))

        assert "refused" in str(exc_info.value)

    def test_invalid_url(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        with HttpFetcher(transport=transport) as fetcher:
            with pytest.raises(ScrapeException):
                fetcher.fetch(FetchRequest(url="http://[invalid/"))

    def test_missing_robots(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        with HttpFetcher(transport=transport) as fetcher:
            assert load_robots(fetcher, "https://example.com/list") is None
