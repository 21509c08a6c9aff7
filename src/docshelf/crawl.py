from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from .errors import (
    AlreadyCrawledError,
    DuplicateDocumentError,
    IngestError,
    InvalidURLError,
    OracleError,
)
from .ingest import DocumentIngestor
from .interfaces import LinkOracle
from .manifest import ImportLog
from .models import CrawlSession, DocumentRecord, ImportMethod
from .urls import normalize_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrawlItem:
    url: str
    depth: int
    parent_url: str | None = None


@dataclass(frozen=True)
class CrawlFailure:
    url: str
    depth: int
    error: IngestError


@dataclass
class CrawlReport:
    root: DocumentRecord
    ingested: list[DocumentRecord] = field(default_factory=list)
    failures: list[CrawlFailure] = field(default_factory=list)
    stats: Counter[str] = field(default_factory=Counter)

    @property
    def children(self) -> list[DocumentRecord]:
        return [r for r in self.ingested if r.id != self.root.id]


class CrawlController:
    """Depth-first import of a page and the links an oracle chooses to follow.

    Each call gets its own :class:`CrawlSession`, so one controller can serve
    concurrent imports. A failing child is logged and recorded; only a
    failure of the root URL reaches the caller.
    """

    def __init__(
        self,
        ingestor: DocumentIngestor,
        oracle: LinkOracle,
        *,
        breadth_limit: int = 15,
        max_depth: int = 3,
        log: ImportLog | None = None,
    ) -> None:
        self.ingestor = ingestor
        self.oracle = oracle
        self.breadth_limit = breadth_limit
        self.max_depth = max_depth
        self.log = log

    async def import_url(
        self,
        url: str,
        *,
        import_method: ImportMethod = ImportMethod.MANUAL,
        force: bool = False,
        tags: Iterable[str] = (),
    ) -> DocumentRecord:
        report = await self.crawl(
            url, import_method=import_method, force=force, tags=tags
        )
        return report.root

    async def crawl(
        self,
        url: str,
        *,
        import_method: ImportMethod = ImportMethod.MANUAL,
        force: bool = False,
        tags: Iterable[str] = (),
    ) -> CrawlReport:
        tags = set(tags)
        try:
            root_url = normalize_url(url)
        except ValueError as e:
            raise InvalidURLError(f"Invalid URL: {url}", url=url) from e
        session = CrawlSession(
            root_url=root_url,
            breadth_limit=self.breadth_limit,
            max_depth=self.max_depth,
        )

        stack = [CrawlItem(url=root_url, depth=0)]
        report: CrawlReport | None = None

        while stack:
            item = stack.pop()
            is_root = item.depth == 0 and item.parent_url is None
            try:
                if not session.mark_visited(item.url):
                    raise AlreadyCrawledError(item.url)
                record = await self.ingestor.ingest(
                    item.url,
                    depth=item.depth,
                    parent_url=item.parent_url,
                    import_method=(
                        import_method if is_root else ImportMethod.SCHEDULED_UPDATE
                    ),
                    force=force if is_root else False,
                    tags=tags,
                )
            except IngestError as e:
                self._log_failure(item, e)
                if is_root:
                    raise
                assert report is not None
                report.failures.append(CrawlFailure(item.url, item.depth, e))
                report.stats["skipped" if _is_skip(e) else "error"] += 1
                continue

            if self.log is not None:
                self.log.ingested(item.url, record_id=record.id, depth=item.depth)
            if report is None:
                report = CrawlReport(root=record)
            report.ingested.append(record)
            report.stats["ingested"] += 1

            children = await self._select_children(record, session, item.depth)
            # Reversed so the first child is popped (and finished) first.
            for child in reversed(children):
                stack.append(
                    CrawlItem(url=child, depth=item.depth + 1, parent_url=item.url)
                )

        assert report is not None
        logger.info(
            "Crawl of %s finished: %d ingested, %d failed",
            root_url,
            len(report.ingested),
            len(report.failures),
        )
        return report

    async def _select_children(
        self, record: DocumentRecord, session: CrawlSession, depth: int
    ) -> list[str]:
        links = list(record.extracted_links)
        if not links or depth >= session.max_depth:
            return []

        content = record.summary or ""
        try:
            relevant = await self.oracle.filter_relevant_links(
                links, content, record.title
            )
            proceed = await self.oracle.should_continue_crawl(
                list(relevant),
                set(session.visited),
                content,
                record.title,
                depth=depth,
            )
        except OracleError as e:
            logger.warning("Link oracle failed for %s: %s", record.source_url, e)
            return []
        if proceed is not True:
            return []

        children: list[str] = []
        for link in relevant:
            if len(children) >= session.breadth_limit:
                break
            link = normalize_url(link)
            if not session.same_host(link) or session.is_visited(link):
                continue
            if link in children:
                continue
            children.append(link)
        logger.debug("Following %d links from %s", len(children), record.source_url)
        return children

    def _log_failure(self, item: CrawlItem, error: IngestError) -> None:
        if _is_skip(error):
            logger.info("Skipped %s: %s", item.url, error)
            if self.log is not None:
                self.log.skipped(item.url, reason=str(error), depth=item.depth)
            return
        logger.warning("Import of %s failed: %s", item.url, error)
        if self.log is not None:
            self.log.error(item.url, error=error, depth=item.depth)


def _is_skip(error: IngestError) -> bool:
    return isinstance(error, (DuplicateDocumentError, AlreadyCrawledError))
