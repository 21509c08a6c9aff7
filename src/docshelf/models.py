from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from .urls import host_of, normalize_url


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Any) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ImportMethod(str, Enum):
    MANUAL = "manual"
    SCHEDULED_UPDATE = "scheduled-update"
    JS_RENDERED = "js-rendered"

    @property
    def display_name(self) -> str:
        return {
            ImportMethod.MANUAL: "Manual Import",
            ImportMethod.SCHEDULED_UPDATE: "Content Update",
            ImportMethod.JS_RENDERED: "JavaScript Rendering",
        }[self]


@dataclass
class DocumentRecord:
    title: str
    source_url: str
    location: str
    size_bytes: int
    summary: str | None = None
    tags: set[str] = field(default_factory=set)
    content_hash: str | None = None
    import_method: ImportMethod = ImportMethod.MANUAL
    rendered_with_js: bool = False
    crawl_depth: int = 0
    parent_url: str | None = None
    extracted_links: list[str] = field(default_factory=list)
    last_update_check: datetime | None = None
    access_count: int = 0
    created_at: datetime = field(default_factory=utc_now)
    modified_at: datetime | None = None
    accessed_at: datetime | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def display_title(self) -> str:
        return self.title or host_of(self.source_url) or "Unknown Document"

    @property
    def sorted_tags(self) -> list[str]:
        return sorted(self.tags)

    def needs_update_check(
        self, interval_s: float, *, now: datetime | None = None
    ) -> bool:
        if self.last_update_check is None:
            return True
        now = now or utc_now()
        return now - self.last_update_check > timedelta(seconds=interval_s)

    def record_access(self, *, now: datetime | None = None) -> None:
        self.accessed_at = now or utc_now()
        self.access_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "source_url": self.source_url,
            "location": self.location,
            "size_bytes": self.size_bytes,
            "summary": self.summary,
            "tags": self.sorted_tags,
            "content_hash": self.content_hash,
            "import_method": self.import_method.value,
            "rendered_with_js": self.rendered_with_js,
            "crawl_depth": self.crawl_depth,
            "parent_url": self.parent_url,
            "extracted_links": list(self.extracted_links),
            "last_update_check": _iso(self.last_update_check),
            "access_count": self.access_count,
            "created_at": _iso(self.created_at),
            "modified_at": _iso(self.modified_at),
            "accessed_at": _iso(self.accessed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentRecord:
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            source_url=str(data["source_url"]),
            location=str(data.get("location") or ""),
            size_bytes=int(data.get("size_bytes") or 0),
            summary=data.get("summary"),
            tags=set(data.get("tags") or ()),
            content_hash=data.get("content_hash"),
            import_method=ImportMethod(data.get("import_method") or "manual"),
            rendered_with_js=bool(data.get("rendered_with_js")),
            crawl_depth=int(data.get("crawl_depth") or 0),
            parent_url=data.get("parent_url"),
            extracted_links=list(data.get("extracted_links") or ()),
            last_update_check=_parse_iso(data.get("last_update_check")),
            access_count=int(data.get("access_count") or 0),
            created_at=_parse_iso(data.get("created_at")) or utc_now(),
            modified_at=_parse_iso(data.get("modified_at")),
            accessed_at=_parse_iso(data.get("accessed_at")),
        )


@dataclass
class CrawlSession:
    """Visited-URL bookkeeping for one top-level import."""

    root_url: str
    breadth_limit: int = 15
    max_depth: int = 3
    visited: set[str] = field(default_factory=set)

    @property
    def root_host(self) -> str:
        return host_of(self.root_url)

    def is_visited(self, url: str) -> bool:
        return normalize_url(url) in self.visited

    def mark_visited(self, url: str) -> bool:
        """Add ``url``; False when it was already visited in this session."""
        key = normalize_url(url)
        if key in self.visited:
            return False
        self.visited.add(key)
        return True

    def same_host(self, url: str) -> bool:
        host = host_of(url)
        return bool(host) and host == self.root_host
