"""Tests for per-block extraction."""

import re

import pytest

from blockscrape.common.exceptions import ExtractionError
from blockscrape.common.selection import Selection
from blockscrape.data_types import Part
from blockscrape.extractors import Attr, Const, Count, Regex, Text
from blockscrape.pipeline import extract_block, extract_blocks


@pytest.fixture
def blocks() -> list[Selection]:
    page = Selection.from_html(
        """
    <html><body>
        <div class="item"><span class="title">A</span><i>1</i></div>
        <div class="item"><span class="title">B</span></div>
        <div class="item"></div>
    </body></html>
    """,
        "https://example.com/list",
    )
    return list(page.find("div.item"))


class TestExtractBlock:
    def test_parts_in_declared_order(self, blocks: list[Selection]):
        parts = [
            Part(name="title", selector=".title", extractor=Text()),
            Part(name="count", selector="i", extractor=Count()),
        ]
        record = extract_block(blocks[0], parts)

        assert list(record) == ["title", "count"]
        assert record == {"title": "A", "count": 1}

    def test_absent_values_are_omitted(self, blocks: list[Selection]):
        parts = [
            Part(name="title", selector=".title", extractor=Text()),
            Part(name="extra", selector="i", extractor=Text()),
        ]
        assert extract_block(blocks[1], parts) == {"title": "B"}

    def test_root_selector_uses_block(self, blocks: list[Selection]):
        """A "." part sees the block itself, with no sub-selection."""
        part = Part(name="cls", selector=".", extractor=Attr(attr="class"))
        direct = Attr(attr="class").extract(blocks[0])

        assert extract_block(blocks[0], [part]) == {"cls": direct}
        assert direct == "item"

    def test_extractor_failure_names_the_part(self, blocks: list[Selection]):
        part = Part(
            name="price",
            selector=".title",
            extractor=Regex(regex=re.compile("x"), subexpression=1),
        )
        with pytest.raises(ExtractionError) as exc_info:
            extract_block(blocks[0], [part])

        assert exc_info.value.context["part"] == "price"
        assert exc_info.value.request_url == "https://example.com/list"


class TestExtractBlocks:
    def test_empty_records_are_dropped(self, blocks: list[Selection]):
        parts = [Part(name="title", selector=".title", extractor=Text())]
        page = extract_blocks(blocks, parts)

        assert page == [{"title": "A"}, {"title": "B"}]
        assert len(page) <= len(blocks)

    def test_const_keeps_every_block(self, blocks: list[Selection]):
        parts = [Part(name="site", selector=".", extractor=Const("shop"))]
        assert extract_blocks(blocks, parts) == [{"site": "shop"}] * 3

    def test_failure_aborts_page(self, blocks: list[Selection]):
        """One failing block fails the whole page."""
        parts = [
            Part(name="title", selector=".title", extractor=Text()),
            Part(name="bad", selector="i", extractor=Attr()),
        ]
        with pytest.raises(ExtractionError):
            extract_blocks(blocks, parts)

    def test_no_blocks(self):
        parts = [Part(name="title", selector=".title", extractor=Text())]
        assert extract_blocks([], parts) == []


class TestBlockConfinement:
    """Part selectors only see the inside of their block."""

    @pytest.fixture
    def cards(self) -> list[Selection]:
        page = Selection.from_html(
            """
        <html><body>
            <div class="item"><div class="t">A</div><a>x</a></div>
            <div class="item"><div class="t">B</div><a>y</a></div>
        </body></html>
        """,
            "https://example.com/cards",
        )
        return list(page.find("div.item"))

    def test_selector_matching_block_tag(self, cards: list[Selection]):
        """A "div" part inside a div block selects only the inner div."""
        parts = [Part(name="title", selector="div", extractor=Text())]
        assert extract_blocks(cards, parts) == [
            {"title": "A"},
            {"title": "B"},
        ]

    def test_relative_xpath(self, cards: list[Selection]):
        parts = [Part(name="link", selector=".//a", extractor=Text())]
        assert extract_blocks(cards, parts) == [
            {"link": "x"},
            {"link": "y"},
        ]
