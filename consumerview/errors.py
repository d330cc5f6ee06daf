"""
Error taxonomy for the ConsumerView client.

Every error raised by this package derives from ConsumerViewError, so callers
can catch the whole family with a single except clause. HTTP failures carry
the status code and the "response" text extracted from the body.
"""

from typing import List


class ConsumerViewError(Exception):
    """Base class for all ConsumerView client errors."""
    pass


class ConfigurationError(ConsumerViewError):
    """Raised when required settings are missing or invalid."""
    pass


class ApiHttpError(ConsumerViewError):
    """Raised when the API answers with a non-200 HTTP status."""

    def __init__(self, status: int, response: str = ""):
        self.status = status
        self.response = response
        super().__init__(f"HTTP code [{status}], response text [{response}]")


class BadCredentials(ApiHttpError):
    """HTTP 401. The token or credentials were rejected.

    A concurrent login elsewhere revokes the previous token, so these are
    retried after a forced re-login.
    """
    pass


class EndpointNotFound(ApiHttpError):
    """HTTP 404. The API endpoints have moved."""
    pass


class MalformedRequest(ApiHttpError):
    """HTTP 417. The API rejected the shape of the JSON request."""
    pass


class ServerError(ApiHttpError):
    """HTTP 500, or a 503 that is not a data refresh."""
    pass


class ServerRefreshing(ApiHttpError):
    """HTTP 503 with "Internal refresh in progress". Safe to retry."""
    pass


class HttpVersionUnsupported(ApiHttpError):
    """HTTP 515."""
    pass


class UnhandledHttpError(ApiHttpError):
    """Any status code without a dedicated error."""
    pass


class MalformedResponse(ConsumerViewError):
    """Raised when a 200 response body cannot be parsed into the expected shape."""
    pass


class BatchTooLarge(ConsumerViewError):
    """Raised before any network call when a batch exceeds the API limit."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} items exceeds the maximum of {limit}")


class ResultSizeMismatch(ConsumerViewError):
    """Raised when the API returns a different number of records than were requested.

    Results are correlated with the request purely by position, so once the
    counts disagree no record can be trusted.
    """

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} results, API returned {actual}")


class UnrecognizedAttributeValue(ConsumerViewError):
    """Raised when a registered attribute carries a code missing from its table."""

    def __init__(self, attribute: str, code):
        self.attribute = attribute
        self.code = code
        super().__init__(f"Unrecognised value {code!r} for attribute {attribute!r}")


class RefreshFailed(ConsumerViewError):
    """Raised by the token cache when the refresh function fails."""
    pass


class InvalidSearchItems(ConsumerViewError, ValueError):
    """Raised when the search items passed to a lookup are malformed."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Invalid search items: " + "; ".join(errors))


RETRYABLE_ERRORS = (BadCredentials, ServerRefreshing)
