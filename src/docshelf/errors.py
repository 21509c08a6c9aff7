"""Failure taxonomy for the ingestion pipeline.

Every error the pipeline raises on purpose derives from :class:`IngestError`,
so the crawl controller can isolate one URL's failure from its siblings with a
single ``except`` clause.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .duplicates import DuplicateDecision


class IngestError(Exception):
    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class InvalidURLError(IngestError):
    pass


class SecurityError(IngestError):
    """A URL or payload violated the trust policy. Never retried."""


class UnsupportedSchemeError(SecurityError):
    def __init__(self, scheme: str, *, url: str | None = None) -> None:
        super().__init__(f"Unsupported URL scheme: {scheme or 'none'}", url=url)
        self.scheme = scheme


class InvalidHostError(SecurityError):
    def __init__(self, *, url: str | None = None) -> None:
        super().__init__("Invalid or missing host in URL", url=url)


class SuspiciousURLError(SecurityError):
    def __init__(self, pattern: str, *, url: str | None = None) -> None:
        super().__init__(f"Suspicious URL pattern detected: {pattern}", url=url)
        self.pattern = pattern


class URLTooLongError(SecurityError):
    def __init__(self, length: int, *, url: str | None = None) -> None:
        super().__init__(f"URL exceeds maximum allowed length ({length})", url=url)
        self.length = length


class EmptyContentError(SecurityError):
    def __init__(self, *, url: str | None = None) -> None:
        super().__init__("Content cannot be empty", url=url)


class ContentTooLargeError(SecurityError):
    def __init__(self, size: int, limit: int, *, url: str | None = None) -> None:
        super().__init__(f"Content too large: {size} bytes (limit {limit})", url=url)
        self.size = size
        self.limit = limit


class SuspiciousContentError(SecurityError):
    def __init__(self, pattern: str, *, url: str | None = None) -> None:
        super().__init__(f"Suspicious content pattern: {pattern}", url=url)
        self.pattern = pattern


class BlockedDomainError(IngestError):
    def __init__(self, host: str, *, url: str | None = None) -> None:
        super().__init__(f"Domain is blocked: {host}", url=url)
        self.host = host


class NetworkError(IngestError):
    """Transient transport failure, surfaced after retries are exhausted."""


class HTTPError(IngestError):
    def __init__(self, status_code: int, *, url: str | None = None) -> None:
        super().__init__(f"HTTP error: {status_code}", url=url)
        self.status_code = status_code


class EmptyResponseError(IngestError):
    def __init__(self, *, url: str | None = None) -> None:
        super().__init__("Empty response from server", url=url)


class ContentExtractionError(IngestError):
    pass


class ParsingError(IngestError):
    pass


class DuplicateDocumentError(IngestError):
    """The duplicate engine refused a re-import. An expected outcome."""

    def __init__(
        self, decision: DuplicateDecision, *, url: str | None = None
    ) -> None:
        super().__init__(decision.message, url=url)
        self.decision = decision


class AlreadyCrawledError(IngestError):
    def __init__(self, url: str) -> None:
        super().__init__(f"Already crawled: {url}", url=url)


class RenderError(IngestError):
    TIMEOUT = "timeout"
    NAVIGATION_FAILED = "navigation-failed"
    EMPTY_CONTENT = "empty-content"

    def __init__(self, reason: str, *, url: str | None = None) -> None:
        super().__init__(f"Rendering failed: {reason}", url=url)
        self.reason = reason


class OracleError(IngestError):
    pass


class StorageError(IngestError):
    pass
