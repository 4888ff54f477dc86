"""
Crawl error taxonomy.

Target-level errors are collected into the run result; only
``CredentialError`` (and configuration problems) abort a whole run.
"""

from __future__ import annotations


class CrawlError(Exception):
    """Base exception for crawl failures."""


class ConfigurationError(CrawlError):
    """Raised when required settings are missing or invalid."""


class TransientNetworkError(CrawlError):
    """Raised on connection failures; retried against the target's budget."""


class RequestTimeoutError(TransientNetworkError):
    """Raised when one HTTP exchange exceeds its timeout."""


class RedirectLoopError(TransientNetworkError):
    """Raised when a redirect chain exceeds the hop limit."""

    def __init__(self, url: str, hops: int) -> None:
        self.url = url
        self.hops = hops
        super().__init__(f"Redirect limit exceeded after {hops} hop(s) starting at {url}")


class SessionExpiredError(CrawlError):
    """Raised when the portal answers with its login page."""


class BackendUnavailableError(CrawlError):
    """Raised when the portal serves its generic error page."""


class ContentIntegrityError(CrawlError):
    """
    Raised when a page belongs to a different entity or version than requested.

    Attributes:
        expected: Identity that was requested.
        actual: Identity or title found in the document, if any.
    """

    def __init__(self, message: str, *, expected: str | None = None, actual: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class CredentialError(CrawlError):
    """Raised when the portal rejects the configured credentials."""


class DiscoveryError(CrawlError):
    """Raised when epochs or entities cannot be read from the portal."""


class BaselineRequiredError(CrawlError):
    """Raised in strict mode when no baseline exists to compare against."""
