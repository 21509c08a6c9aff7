"""Collaborators the pipeline talks to, expressed as protocols.

Anything with matching methods works; the concrete filesystem versions live in
:mod:`docshelf.storage` and two simple link oracles are defined here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Protocol

if TYPE_CHECKING:
    from .models import DocumentRecord


class Renderer(Protocol):
    async def render(self, url: str) -> str:
        """Return the post-JavaScript HTML of ``url`` or raise RenderError."""
        ...


class LinkOracle(Protocol):
    async def filter_relevant_links(
        self, links: list[str], content: str, title: str
    ) -> list[str]: ...

    async def should_continue_crawl(
        self,
        links: list[str],
        visited: set[str],
        content: str,
        title: str,
        *,
        depth: int,
    ) -> bool: ...


class DocumentStore(Protocol):
    def unique_filename_for(self, url: str) -> str: ...

    def store(self, content: str, suggested_name: str) -> str: ...

    def load(self, location: str) -> str: ...

    def delete(self, location: str) -> None: ...


class LibraryIndex(Protocol):
    def upsert_record(self, record: DocumentRecord) -> None: ...

    def remove_record(self, record: DocumentRecord) -> bool: ...

    def find_by_source_url(self, url: str) -> DocumentRecord | None: ...

    def records(self) -> list[DocumentRecord]: ...

    def get(self, record_id: str) -> DocumentRecord | None: ...


class NoFollowOracle:
    """Never crawls past the requested page."""

    async def filter_relevant_links(
        self, links: list[str], content: str, title: str
    ) -> list[str]:
        return []

    async def should_continue_crawl(
        self,
        links: list[str],
        visited: set[str],
        content: str,
        title: str,
        *,
        depth: int,
    ) -> bool:
        return False


class SameSiteOracle:
    """Keeps every link and continues while below ``max_depth``.

    Host filtering is left to the crawl controller.
    """

    def __init__(self, max_depth: int = 1, *, exclude: Iterable[str] = ()) -> None:
        self.max_depth = max_depth
        self._exclude = tuple(exclude)

    async def filter_relevant_links(
        self, links: list[str], content: str, title: str
    ) -> list[str]:
        return [link for link in links if not any(x in link for x in self._exclude)]

    async def should_continue_crawl(
        self,
        links: list[str],
        visited: set[str],
        content: str,
        title: str,
        *,
        depth: int,
    ) -> bool:
        return bool(links) and depth < self.max_depth
