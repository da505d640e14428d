"""Payload models.

A payload is the declarative description of a scrape: the fields to
extract, how to paginate and the scrape options. Keys are accepted in
camelCase, as sent by API clients, or in snake_case.

Example payload::

    {
        "name": "products",
        "request": {"url": "https://example.com/products", "type": "base"},
        "fields": [
            {"name": "title", "selector": ".title",
             "extractor": {"type": "link"}},
            {"name": "price", "selector": ".price",
             "extractor": {"type": "regex", "params": {"regexp": "[0-9.]+"}}}
        ],
        "paginator": {"selector": "a.next", "attribute": "href",
                      "maxPages": 5},
        "format": "json",
        "paginateResults": false,
        "fetchDelay": 500,
        "randomizeFetchDelay": true,
        "retryTimes": 2
    }
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from blockscrape.common.exceptions import ConfigurationException
from blockscrape.data_types import FetcherKind


class PayloadModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ExtractorPayload(PayloadModel):
    type: str
    params: dict[str, Any] | None = None


class FieldPayload(PayloadModel):
    """One field of a payload.

    Empty names and selectors are accepted here and rejected when the
    scraper is built, with a part-specific error.
    """

    name: str = ""
    selector: str = ""
    extractor: ExtractorPayload
    details: Payload | None = None


class PaginatorPayload(PayloadModel):
    selector: str
    attribute: str = "href"
    max_pages: int = Field(default=0, ge=0)


class RequestPayload(PayloadModel):
    url: str = ""
    type: FetcherKind = FetcherKind.BASE


class Payload(PayloadModel):
    name: str = ""
    request: RequestPayload | None = None
    fields: list[FieldPayload] = Field(default_factory=list)
    paginator: PaginatorPayload | None = None
    format: str = "json"
    paginate_results: bool = True
    fetch_delay: int = Field(default=500, ge=0)
    randomize_fetch_delay: bool = True
    retry_times: int = Field(default=2, ge=0)


FieldPayload.model_rebuild()
Payload.model_rebuild()


class PayloadError(ConfigurationException):
    """Raised when a payload does not match the payload schema.

    Attributes:
        errors: The pydantic validation errors.
    """

    def __init__(self, errors: list[dict[str, Any]]) -> None:
        self.errors = errors
        error_summary = ", ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in errors
        )
        super().__init__(
            f"invalid payload: {error_summary}",
            context={"error_count": len(errors)},
        )


def load_payload(data: str | bytes | dict[str, Any]) -> Payload:
    """Validate a payload given as JSON text or as a decoded dict.

    Raises:
        PayloadError: If the payload does not match the schema.
    """
    try:
        if isinstance(data, dict):
            return Payload.model_validate(data)
        return Payload.model_validate_json(data)
    except ValidationError as e:
        raise PayloadError(e.errors()) from e
