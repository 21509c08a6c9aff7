from __future__ import annotations

import re
from urllib.parse import ParseResult, urlparse, urlunparse

_TRACKING_QUERY_EXACT = {"utm_source=rss"}


def normalize_url(raw_url: str) -> str:
    """Normalize a URL for de-duplication.

    - Lowercases scheme + hostname.
    - Strips fragments.
    - Drops trivial tracking query params known to create duplicates.
    """

    parsed: ParseResult = urlparse(raw_url.strip())
    scheme = (parsed.scheme or "").lower()
    netloc = (parsed.netloc or "").lower()

    query = parsed.query
    if query.strip().lower() in _TRACKING_QUERY_EXACT:
        query = ""

    parsed = parsed._replace(
        scheme=scheme,
        netloc=netloc,
        fragment="",
        query=query,
    )
    return urlunparse(parsed)


def host_of(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def host_matches(host: str, suffixes) -> bool:
    """True when ``host`` equals one of ``suffixes`` or is a subdomain of it."""
    host = host.lower()
    if not host:
        return False
    for suffix in suffixes:
        suffix = suffix.lower().lstrip(".")
        if not suffix:
            continue
        if host == suffix or host.endswith("." + suffix):
            return True
    return False


def url_components(url: str) -> list[str]:
    """Host, host labels and path segments of ``url``, lowercased."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return []

    out: list[str] = []
    host = (parsed.hostname or "").lower()
    if host:
        out.append(host)
        out.extend(part for part in host.split(".") if part)
    out.extend(
        segment.lower() for segment in (parsed.path or "").split("/") if segment
    )
    return out


def safe_filename_piece(text: str, *, max_len: int = 80) -> str:
    text = text.strip()
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"[^A-Za-z0-9._-]+", "_", text)
    text = re.sub(r"-+", "-", text).strip("-")
    if not text:
        return "unknown"
    return text[:max_len]
