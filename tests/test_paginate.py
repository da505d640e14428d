"""Tests for paginators."""

import pytest

from blockscrape.common.exceptions import PaginationError
from blockscrape.common.selection import Selection
from blockscrape.paginate import BySelector, NoPaginator

PAGE_URL = "https://example.com/products?page=1"


def doc(body: str) -> Selection:
    return Selection.from_html(f"<html><body>{body}</body></html>", PAGE_URL)


class TestNoPaginator:
    def test_never_has_next_page(self):
        assert NoPaginator().next_page(PAGE_URL, doc("<a>x</a>")) == ""


class TestBySelector:
    def test_relative_link_resolved(self):
        page = doc('<a class="next" href="?page=2">Next</a>')
        assert (
            BySelector("a.next").next_page(PAGE_URL, page)
            == "https://example.com/products?page=2"
        )

    def test_absolute_link(self):
        page = doc('<a class="next" href="https://other.example/p2">Next</a>')
        assert (
            BySelector("a.next").next_page(PAGE_URL, page)
            == "https://other.example/p2"
        )

    def test_custom_attribute(self):
        page = doc('<button class="more" data-href="/p/2">More</button>')
        paginator = BySelector(".more", attribute="data-href")
        assert paginator.next_page(PAGE_URL, page) == "https://example.com/p/2"

    def test_xpath_selector(self):
        page = doc('<nav><a href="/p/3">3</a><a href="/p/4">next</a></nav>')
        paginator = BySelector("//nav/a[text()='next']")
        assert paginator.next_page(PAGE_URL, page) == "https://example.com/p/4"

    def test_no_match_ends_pagination(self):
        assert BySelector("a.next").next_page(PAGE_URL, doc("<p>end</p>")) == ""

    def test_empty_href_ends_pagination(self):
        page = doc('<a class="next" href="  ">Next</a>')
        assert BySelector("a.next").next_page(PAGE_URL, page) == ""

    def test_unsupported_scheme_fails(self):
        page = doc('<a class="next" href="javascript:void(0)">Next</a>')
        with pytest.raises(PaginationError) as exc_info:
            BySelector("a.next").next_page(PAGE_URL, page)

        assert exc_info.value.request_url == PAGE_URL
