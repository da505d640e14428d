"""Exception types for scrape errors.

This module defines the exception hierarchy raised while building a scrape
plan and while running it. Configuration exceptions are raised at build
time and prevent a task from being created. Transient exceptions come from
the fetch step and may be retried. Scrape exceptions abort a running task.
"""

from typing import Any


class BlockscrapeException(Exception):
    """Base class for all errors raised by blockscrape.

    Carries a human-readable message, the URL being processed (if any) and
    an optional dict of additional context that is rendered into the
    exception's string form.
    """

    def __init__(
        self,
        message: str,
        request_url: str = "",
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the error.
            request_url: The URL being processed when the error occurred.
            context: Optional dict of additional context (selector, part, etc).
        """
        self.message = message
        self.request_url = request_url
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context.

        Returns:
            Formatted error message string.
        """
        parts = [self.message]
        if self.request_url:
            parts.append(f"URL: {self.request_url}")

        if self.context:
            parts.append("Context:")
            for key, value in self.context.items():
                parts.append(f"  {key}: {value}")

        return "\n".join(parts)


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationException(BlockscrapeException):
    """Raised when a payload cannot be turned into a scrape plan."""


class NoPartsError(ConfigurationException):
    """Raised when a payload produces no parts at all."""

    def __init__(self) -> None:
        super().__init__("no parts in the config")


class MissingPartNameError(ConfigurationException):
    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(
            f"no name provided for part {index}", context={"index": index}
        )


class DuplicatePartNameError(ConfigurationException):
    def __init__(self, name: str, index: int) -> None:
        self.name = name
        self.index = index
        super().__init__(
            f"part {name} has a duplicate name",
            context={"name": name, "index": index},
        )


class MissingSelectorError(ConfigurationException):
    def __init__(self, name: str, index: int) -> None:
        self.name = name
        self.index = index
        super().__init__(
            f"no selector provided for part {index}",
            context={"name": name, "index": index},
        )


class InvalidSelectorError(ConfigurationException):
    """Raised when a selector is neither valid CSS nor valid XPath."""

    def __init__(self, selector: str, selector_type: str, reason: str) -> None:
        self.selector = selector
        self.selector_type = selector_type
        super().__init__(
            f"invalid {selector_type} selector '{selector}': {reason}",
            context={"selector": selector, "selector_type": selector_type},
        )


class InvalidRegexError(ConfigurationException):
    def __init__(self, field_name: str, pattern: Any, reason: str) -> None:
        self.field_name = field_name
        self.pattern = pattern
        super().__init__(
            f"field '{field_name}' has an invalid regexp: {reason}",
            context={"field": field_name, "regexp": pattern},
        )


class UnknownExtractorError(ConfigurationException):
    def __init__(self, field_name: str, extractor_type: str) -> None:
        self.field_name = field_name
        self.extractor_type = extractor_type
        super().__init__(
            f"field '{field_name}' uses unknown extractor type "
            f"'{extractor_type}'",
            context={"field": field_name, "type": extractor_type},
        )


class ExtractorParamsError(ConfigurationException):
    """Raised when extractor params have the wrong type.

    Attributes:
        errors: The pydantic validation errors for the params.
    """

    def __init__(
        self,
        field_name: str,
        extractor_type: str,
        errors: list[dict[str, Any]],
    ) -> None:
        self.field_name = field_name
        self.extractor_type = extractor_type
        self.errors = errors

        error_summary = ", ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in errors
        )
        super().__init__(
            f"invalid params for {extractor_type} extractor of field "
            f"'{field_name}': {error_summary}",
            context={
                "field": field_name,
                "type": extractor_type,
                "error_count": len(errors),
            },
        )


class DetailsDepthError(ConfigurationException):
    def __init__(self, field_name: str, max_depth: int) -> None:
        self.field_name = field_name
        self.max_depth = max_depth
        super().__init__(
            f"details of field '{field_name}' nest deeper than {max_depth} "
            "levels",
            context={"field": field_name, "max_depth": max_depth},
        )


# =============================================================================
# Scrape errors
# =============================================================================


class ScrapeException(BlockscrapeException):
    """Raised when a running scrape has to be aborted."""


class ExtractionError(ScrapeException):
    """Raised by an extractor that cannot produce a value for a block.

    An extraction error aborts the whole scrape; it is never treated as a
    skippable per-record condition.
    """


class DivisionError(ScrapeException):
    """Raised when a page cannot be divided into blocks."""


class PaginationError(ScrapeException):
    """Raised when the next page URL cannot be computed."""


class UnsupportedFetchError(ScrapeException):
    """Raised when a fetcher is asked for a request kind it cannot serve."""


class UnexpectedStatusError(ScrapeException):
    """Raised for an HTTP status that retrying will not change, such as 404.

    Attributes:
        status_code: The HTTP status code received.
    """

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        super().__init__(
            f"HTTP {status_code}",
            request_url=url,
            context={"status_code": status_code},
        )


# =============================================================================
# Transient errors
# =============================================================================


class TransientException(Exception):
    """Base class for transient errors that might resolve on retry.

    Transient exceptions represent temporary failures like network issues,
    unexpected status codes or timeouts. The engine retries the fetch up to
    ``ScrapeOptions.retry_times`` times before giving up.
    """


class HTMLResponseAssumptionException(TransientException):
    """Raised when an HTTP response has an unexpected status code.

    Attributes:
        status_code: The actual HTTP status code received.
        expected_codes: List of status codes that were expected.
        url: The URL that returned the unexpected status.
        message: Human-readable error message.
    """

    def __init__(
        self,
        status_code: int,
        expected_codes: list[int],
        url: str,
    ) -> None:
        self.status_code = status_code
        self.expected_codes = expected_codes
        self.url = url

        expected_str = ", ".join(str(code) for code in expected_codes)
        self.message = (
            f"HTTP {status_code} from {url} (expected one of: {expected_str})"
        )
        super().__init__(self.message)


class RequestTimeoutException(TransientException):
    """Raised when a request times out.

    Attributes:
        url: The URL that timed out.
        timeout_seconds: The timeout duration in seconds.
        message: Human-readable error message.
    """

    def __init__(self, url: str, timeout_seconds: float | None) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.message = f"Request to {url} timed out after {timeout_seconds}s"
        super().__init__(self.message)


class RequestFailedException(TransientException):
    """Raised when the transport fails before a response is received."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        self.message = f"Request to {url} failed: {reason}"
        super().__init__(self.message)
