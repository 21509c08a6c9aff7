from __future__ import annotations

import logging
import re
import unicodedata
from pathlib import PurePosixPath
from typing import Final, Iterable
from urllib.parse import urlparse

from .config import DEFAULT_TRUSTED_DOMAINS
from .errors import (
    BlockedDomainError,
    ContentTooLargeError,
    EmptyContentError,
    InvalidHostError,
    InvalidURLError,
    SuspiciousContentError,
    SuspiciousURLError,
    UnsupportedSchemeError,
    URLTooLongError,
)
from .urls import host_matches

logger = logging.getLogger(__name__)

MAX_URL_LENGTH: Final = 2048
MAX_FILENAME_LENGTH: Final = 255

_ALLOWED_SCHEMES: Final = frozenset({"http", "https"})

_SUSPICIOUS_URL_PATTERNS: Final[tuple[str, ...]] = (
    "file://",
    "ftp://",
    "data:text/html",
    "javascript:",
    "vbscript:",
)

_LOCAL_HOST_MARKERS: Final[tuple[str, ...]] = ("localhost", "127.0.0.1", "0.0.0.0")

# Patterns that should never show up in documentation we keep.
_DANGEROUS_CONTENT_PATTERNS: Final[tuple[str, ...]] = (
    "javascript:alert(",
    "javascript:eval(",
    "document.cookie",
    "window.location.href",
    "<script>alert(",
    "<script>eval(",
    "vbscript:",
    "data:text/html,<script",
    "file:///etc/passwd",
    "file:///windows/system32",
)

_REPETITION_MIN_LENGTH: Final = 1000
_REPETITION_SAMPLE: Final = 100
_REPETITION_MIN_DISTINCT: Final = 5

_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


class SecurityGate:
    """URL and payload checks that run before any write.

    Trusted hosts skip the URL pattern checks and content scanning, but never
    the scheme and host checks.
    """

    def __init__(
        self,
        *,
        trusted_domains: Iterable[str] = DEFAULT_TRUSTED_DOMAINS,
        blocked_domains: Iterable[str] = (),
        max_document_size: int = 50 * 1024 * 1024,
    ) -> None:
        self._trusted = tuple(d.lower() for d in trusted_domains)
        self._blocked = tuple(d.lower() for d in blocked_domains)
        self._max_document_size = max_document_size

    def is_trusted(self, url: str) -> bool:
        try:
            host = urlparse(url).hostname or ""
        except ValueError:
            return False
        return host_matches(host, self._trusted)

    def validate_url(self, url: str) -> None:
        try:
            parsed = urlparse(url.strip())
            host = parsed.hostname or ""
        except ValueError as e:
            raise InvalidURLError(f"Invalid URL: {url}", url=url) from e

        scheme = (parsed.scheme or "").lower()
        if scheme not in _ALLOWED_SCHEMES:
            raise UnsupportedSchemeError(scheme, url=url)
        if not host:
            raise InvalidHostError(url=url)

        if host_matches(host, self._trusted):
            logger.debug("URL validation passed for trusted domain: %s", host)
            return

        lowered = url.lower()
        for pattern in _SUSPICIOUS_URL_PATTERNS:
            if pattern in lowered:
                logger.warning("Rejected URL %s: contains %r", url, pattern)
                raise SuspiciousURLError(pattern, url=url)

        if any(marker in host for marker in _LOCAL_HOST_MARKERS):
            logger.warning("Allowing localhost URL for development: %s", host)

        if len(lowered) > MAX_URL_LENGTH:
            raise URLTooLongError(len(lowered), url=url)

        logger.debug("URL validation passed for: %s", host)

    def ensure_not_blocked(self, url: str) -> None:
        try:
            host = urlparse(url).hostname or ""
        except ValueError as e:
            raise InvalidURLError(f"Invalid URL: {url}", url=url) from e
        if host_matches(host, self._blocked):
            raise BlockedDomainError(host, url=url)

    def validate_content_size(self, size: int, *, url: str | None = None) -> None:
        if size <= 0:
            raise EmptyContentError(url=url)
        if size > self._max_document_size:
            raise ContentTooLargeError(size, self._max_document_size, url=url)
        logger.debug("Content size validation passed: %d bytes", size)

    def scan_content_for_threats(
        self,
        content: str,
        *,
        trusted: bool = False,
        url: str | None = None,
    ) -> None:
        if trusted:
            logger.debug("Content threat scan skipped for trusted domain")
            return

        lowered = content.lower()
        for pattern in _DANGEROUS_CONTENT_PATTERNS:
            if pattern in lowered:
                logger.warning("Dangerous content pattern detected: %s", pattern)
                raise SuspiciousContentError(pattern, url=url)

        # Crude garbage/DoS detector.
        if len(content) > _REPETITION_MIN_LENGTH:
            sample = content[:_REPETITION_SAMPLE]
            if len(set(sample)) < _REPETITION_MIN_DISTINCT:
                logger.warning("Excessive repetition in content from %s", url)
                raise SuspiciousContentError("excessive repetition", url=url)

        logger.debug("Content threat scan passed")


def sanitize_filename(filename: str) -> str:
    sanitized = _UNSAFE_FILENAME_CHARS.sub("_", filename)
    sanitized = "".join(
        ch for ch in sanitized if unicodedata.category(ch) not in {"Cc", "Cf"}
    )

    if len(sanitized) > MAX_FILENAME_LENGTH:
        path = PurePosixPath(sanitized)
        ext = path.suffix.lstrip(".")
        stem = path.stem if ext else sanitized
        max_stem = MAX_FILENAME_LENGTH - len(ext) - 1
        if max_stem > 0:
            stem = stem[:max_stem]
            sanitized = f"{stem}.{ext}" if ext else stem[:MAX_FILENAME_LENGTH]
        else:
            sanitized = f"document.{ext or 'txt'}"

    if not sanitized or set(sanitized) == {"."}:
        sanitized = "document.txt"
    return sanitized
