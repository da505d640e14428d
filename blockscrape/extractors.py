"""Extractor registry.

An extractor turns the node-set selected by a Part inside one block into a
value. Returning None means "absent" and drops the key from the record;
raising ExtractionError aborts the scrape.

Each extractor kind has a typed params model. Payload params are validated
into that model (type mismatches are configuration errors, unknown keys are
logged and ignored) and the model then builds the extractor.

Example::

    extractor = build_extractor("price", "regex", {"regexp": r"\\d+"})
    extractor.extract(block.find(".price"))
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from blockscrape.common.exceptions import (
    ExtractionError,
    ExtractorParamsError,
    InvalidRegexError,
    UnknownExtractorError,
)
from blockscrape.common.selection import Selection

logger = logging.getLogger(__name__)


class Extractor(Protocol):
    """Capability shared by every registry member."""

    def extract(self, sel: Selection) -> Any | None:
        """Extract a value from a selection.

        Args:
            sel: The node-set selected within a block.

        Returns:
            The extracted value, or None if it is absent.

        Raises:
            ExtractionError: If the extractor cannot work on this input.
        """
        ...


def _collapse(
    values: list[Any], always_return_list: bool, include_if_empty: bool
) -> Any | None:
    """Shape a list of per-element values into an extractor result.

    No values gives None (or an empty list when include_if_empty is set),
    a single value is returned bare unless always_return_list is set.
    """
    if not values:
        return [] if include_if_empty else None
    if len(values) == 1 and not always_return_list:
        return values[0]
    return values


# =============================================================================
# Extractors
# =============================================================================


@dataclass(frozen=True)
class Const:
    """Returns a fixed value for every block."""

    value: Any = None

    def extract(self, sel: Selection) -> Any | None:
        return self.value


@dataclass(frozen=True)
class Count:
    """Counts the selected elements.

    Attributes:
        only_text: Only count elements with non-blank text content.
    """

    only_text: bool = False

    def extract(self, sel: Selection) -> int:
        if self.only_text:
            return sum(1 for text in sel.texts() if text.strip())
        return len(sel)


@dataclass(frozen=True)
class Text:
    """Returns the text content of the selected elements.

    Attributes:
        trim: Strip surrounding whitespace from each text.
        always_return_list: Return a list even for a single element.
        include_if_empty: Keep empty texts, and return an empty list
            rather than None when nothing was selected.
    """

    trim: bool = True
    always_return_list: bool = False
    include_if_empty: bool = False

    def extract(self, sel: Selection) -> Any | None:
        values = sel.texts()
        if self.trim:
            values = [value.strip() for value in values]
        if not self.include_if_empty:
            values = [value for value in values if value]
        return _collapse(
            values, self.always_return_list, self.include_if_empty
        )


@dataclass(frozen=True)
class Html:
    """Returns the inner HTML of the first selected element."""

    include_if_empty: bool = False

    def extract(self, sel: Selection) -> str | None:
        inner = sel.inner_html()
        if inner is None:
            return "" if self.include_if_empty else None
        return inner


@dataclass(frozen=True)
class OuterHtml:
    """Returns the outer HTML of the first selected element."""

    include_if_empty: bool = False

    def extract(self, sel: Selection) -> str | None:
        outer = sel.outer_html()
        if outer is None:
            return "" if self.include_if_empty else None
        return outer


@dataclass(frozen=True)
class Attr:
    """Returns the value of an attribute of the selected elements.

    Attributes:
        attr: Attribute name. Extraction fails if it is empty.
        always_return_list: Return a list even for a single element.
        include_if_empty: Keep empty attribute values, and return an empty
            list rather than None when no element has the attribute.
    """

    attr: str = ""
    always_return_list: bool = False
    include_if_empty: bool = False

    def extract(self, sel: Selection) -> Any | None:
        if not self.attr:
            raise ExtractionError(
                "no attribute provided", request_url=sel.url
            )

        values = sel.attrs(self.attr)
        if not self.include_if_empty:
            values = [value for value in values if value]
        return _collapse(
            values, self.always_return_list, self.include_if_empty
        )


@dataclass(frozen=True)
class Regex:
    """Runs a regular expression over each selected element.

    Every match in every element contributes the configured subexpression
    (group). By default the element's inner HTML is searched; with
    only_text its text content is searched instead.

    Attributes:
        regex: The compiled pattern.
        subexpression: Group number to return (0 is the whole match).
        only_text: Search text content instead of HTML.
        always_return_list: Return a list even for a single match.
        include_if_empty: Return an empty list rather than None when
            nothing matched.
    """

    regex: re.Pattern[str] | None = None
    subexpression: int = 0
    only_text: bool = False
    always_return_list: bool = False
    include_if_empty: bool = False

    def extract(self, sel: Selection) -> Any | None:
        if self.regex is None:
            raise ExtractionError("no regex given", request_url=sel.url)
        if not 0 <= self.subexpression <= self.regex.groups:
            raise ExtractionError(
                f"regex has {self.regex.groups} subexpressions, but "
                f"subexpression {self.subexpression} was requested",
                request_url=sel.url,
                context={"regexp": self.regex.pattern},
            )

        values: list[str] = []
        for element in sel:
            source = (
                element.text() if self.only_text else element.inner_html()
            )
            for match in self.regex.finditer(source or ""):
                group = match.group(self.subexpression)
                if group is not None:
                    values.append(group)

        return _collapse(
            values, self.always_return_list, self.include_if_empty
        )


@dataclass(frozen=True)
class Link:
    """Composite extractor for anchors: visible text plus a URL attribute."""

    text: Text = field(default_factory=Text)
    href: Attr = field(default_factory=lambda: Attr(attr="href"))

    def expand(self, name: str) -> list[tuple[str, Extractor]]:
        return [(f"{name}_text", self.text), (f"{name}_link", self.href)]


@dataclass(frozen=True)
class Image:
    """Composite extractor for images: source and alternative text."""

    src: Attr = field(default_factory=lambda: Attr(attr="src"))
    alt: Attr = field(default_factory=lambda: Attr(attr="alt"))

    def expand(self, name: str) -> list[tuple[str, Extractor]]:
        return [(f"{name}_src", self.src), (f"{name}_alt", self.alt)]


# =============================================================================
# Params models
# =============================================================================


class ExtractorParams(BaseModel):
    """Base class for typed extractor params.

    Keys are accepted in camelCase (as sent in payloads) or snake_case.
    Unknown keys are kept aside so they can be reported.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    def build(self, field_name: str) -> Any:
        raise NotImplementedError


class ConstParams(ExtractorParams):
    value: Any = None

    def build(self, field_name: str) -> Const:
        return Const(value=self.value)


class CountParams(ExtractorParams):
    only_text: bool = False

    def build(self, field_name: str) -> Count:
        return Count(only_text=self.only_text)


class TextParams(ExtractorParams):
    trim: bool = True
    always_return_list: bool = False
    include_if_empty: bool = False

    def build(self, field_name: str) -> Text:
        return Text(
            trim=self.trim,
            always_return_list=self.always_return_list,
            include_if_empty=self.include_if_empty,
        )


class HtmlParams(ExtractorParams):
    include_if_empty: bool = False

    def build(self, field_name: str) -> Html:
        return Html(include_if_empty=self.include_if_empty)


class OuterHtmlParams(ExtractorParams):
    include_if_empty: bool = False

    def build(self, field_name: str) -> OuterHtml:
        return OuterHtml(include_if_empty=self.include_if_empty)


class AttrParams(ExtractorParams):
    attr: str = ""
    always_return_list: bool = False
    include_if_empty: bool = False

    def build(self, field_name: str) -> Attr:
        return Attr(
            attr=self.attr,
            always_return_list=self.always_return_list,
            include_if_empty=self.include_if_empty,
        )


class RegexParams(ExtractorParams):
    regexp: str | None = None
    subexpression: int = Field(default=0, ge=0)
    only_text: bool = False
    always_return_list: bool = False
    include_if_empty: bool = False

    def build(self, field_name: str) -> Regex:
        if self.regexp is None:
            raise InvalidRegexError(field_name, None, "no regexp provided")
        try:
            compiled = re.compile(self.regexp)
        except re.error as e:
            raise InvalidRegexError(field_name, self.regexp, str(e)) from e
        if self.subexpression > compiled.groups:
            raise InvalidRegexError(
                field_name,
                self.regexp,
                f"subexpression {self.subexpression} requested but the "
                f"pattern has {compiled.groups}",
            )
        return Regex(
            regex=compiled,
            subexpression=self.subexpression,
            only_text=self.only_text,
            always_return_list=self.always_return_list,
            include_if_empty=self.include_if_empty,
        )


def _with_default_attrs(
    data: Any, defaults: dict[str, str]
) -> Any:
    # Partial overrides such as {"href": {"alwaysReturnList": true}} keep
    # the default attribute name.
    if not isinstance(data, dict):
        return data
    merged = dict(data)
    for key, attr in defaults.items():
        override = merged.get(key)
        if override is None:
            merged[key] = {"attr": attr}
        elif isinstance(override, dict):
            merged[key] = {"attr": attr, **override}
    return merged


class LinkParams(ExtractorParams):
    text: TextParams = TextParams()
    href: AttrParams = AttrParams(attr="href")

    @model_validator(mode="before")
    @classmethod
    def _default_href(cls, data: Any) -> Any:
        return _with_default_attrs(data, {"href": "href"})

    def build(self, field_name: str) -> Link:
        return Link(
            text=self.text.build(field_name),
            href=self.href.build(field_name),
        )


class ImageParams(ExtractorParams):
    src: AttrParams = AttrParams(attr="src")
    alt: AttrParams = AttrParams(attr="alt")

    @model_validator(mode="before")
    @classmethod
    def _default_attrs(cls, data: Any) -> Any:
        return _with_default_attrs(data, {"src": "src", "alt": "alt"})

    def build(self, field_name: str) -> Image:
        return Image(
            src=self.src.build(field_name),
            alt=self.alt.build(field_name),
        )


REGISTRY: dict[str, type[ExtractorParams]] = {
    "const": ConstParams,
    "count": CountParams,
    "text": TextParams,
    "html": HtmlParams,
    "outerHtml": OuterHtmlParams,
    "attr": AttrParams,
    "regex": RegexParams,
    "link": LinkParams,
    "image": ImageParams,
}


def unknown_params(config: BaseModel, prefix: str = "") -> list[str]:
    """List the keys of a params model (and nested models) that were not
    recognised, as dotted paths."""
    keys = [f"{prefix}{key}" for key in (config.model_extra or {})]
    for name in type(config).model_fields:
        value = getattr(config, name)
        if isinstance(value, BaseModel):
            keys.extend(unknown_params(value, f"{prefix}{name}."))
    return keys


def build_extractor(
    field_name: str,
    extractor_type: str,
    params: dict[str, Any] | None = None,
) -> Extractor | Link | Image:
    """Build an extractor from its type tag and payload params.

    Args:
        field_name: Name of the payload field, for error context.
        extractor_type: One of the keys of REGISTRY.
        params: Payload params for the extractor.

    Returns:
        An extractor, or a composite (Link, Image) for composite types.

    Raises:
        UnknownExtractorError: If the type tag is not registered.
        ExtractorParamsError: If a param has the wrong type.
        InvalidRegexError: If a regex extractor has no valid pattern.
    """
    params_cls = REGISTRY.get(extractor_type)
    if params_cls is None:
        raise UnknownExtractorError(field_name, extractor_type)

    try:
        config = params_cls.model_validate(params or {})
    except ValidationError as e:
        raise ExtractorParamsError(
            field_name, extractor_type, e.errors()
        ) from e

    for key in unknown_params(config):
        logger.warning(
            f"Ignoring unknown param '{key}' for {extractor_type} extractor "
            f"of field '{field_name}'",
            extra={
                "field": field_name,
                "extractor_type": extractor_type,
                "param": key,
            },
        )

    return config.build(field_name)
