from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable

from .config import IngestConfig
from .content import needs_js_rendering
from .convert.html_to_md import extract_page, page_to_markdown_async, summarize
from .duplicates import Block, DuplicateEngine, Prompt, generate_content_hash
from .errors import DuplicateDocumentError, RenderError, SecurityError, StorageError
from .http_client import HttpClient
from .interfaces import DocumentStore, LibraryIndex, Renderer
from .models import DocumentRecord, ImportMethod, utc_now
from .search import SearchIndex
from .security import SecurityGate
from .urls import normalize_url

logger = logging.getLogger(__name__)


class DocumentIngestor:
    """Imports one URL: validate, fetch, render, extract, dedup, persist.

    Crawling is not handled here; see :class:`docshelf.crawl.CrawlController`.
    """

    def __init__(
        self,
        *,
        config: IngestConfig,
        gate: SecurityGate,
        http: HttpClient,
        duplicates: DuplicateEngine,
        store: DocumentStore,
        library: LibraryIndex,
        index: SearchIndex,
        renderer: Renderer | None = None,
        confirm: Callable[[Prompt], bool] | None = None,
    ) -> None:
        self.config = config
        self._gate = gate
        self._http = http
        self._duplicates = duplicates
        self._store = store
        self._library = library
        self._index = index
        self._renderer = renderer
        self._confirm = confirm

    async def _maybe_render(self, url: str, html: str) -> tuple[str, bool]:
        if self._renderer is None or not self.config.enable_js_rendering:
            return html, False
        if not needs_js_rendering(
            url, html, auto_detect=self.config.auto_detect_js, policy=self.config.policy
        ):
            return html, False

        logger.info("Rendering %s with JavaScript", url)
        try:
            rendered = await self._renderer.render(url)
            if not rendered.strip():
                raise RenderError(RenderError.EMPTY_CONTENT, url=url)
            self._gate.validate_content_size(len(rendered.encode("utf-8")), url=url)
        except (RenderError, SecurityError) as e:
            logger.warning("JS rendering failed for %s (%s); using static HTML", url, e)
            return html, False
        return rendered, True

    def _check_duplicate(
        self,
        url: str,
        method: ImportMethod,
        markdown: str,
        rendered: bool,
    ) -> None:
        decision = self._duplicates.decide(
            url, method, new_content=markdown, js_rendering_enabled=rendered
        )
        if isinstance(decision, Block):
            raise DuplicateDocumentError(decision, url=url)
        if isinstance(decision, Prompt):
            if self._confirm is None:
                logger.info("%s (no confirmation handler, proceeding)", decision.message)
            elif not self._confirm(decision):
                raise DuplicateDocumentError(decision, url=url)

    async def ingest(
        self,
        url: str,
        *,
        depth: int = 0,
        parent_url: str | None = None,
        import_method: ImportMethod = ImportMethod.MANUAL,
        force: bool = False,
        tags: Iterable[str] = (),
    ) -> DocumentRecord:
        self._gate.validate_url(url)
        normalized = normalize_url(url)
        self._gate.ensure_not_blocked(normalized)

        fetched = await self._http.fetch(normalized)
        html, rendered = await self._maybe_render(normalized, fetched.text)
        if rendered and import_method is ImportMethod.MANUAL:
            import_method = ImportMethod.JS_RENDERED

        trusted = self._gate.is_trusted(normalized)
        policy = self.config.policy
        page = await asyncio.to_thread(
            extract_page, html, base_url=normalized, policy=policy
        )
        self._gate.scan_content_for_threats(
            str(page.content), trusted=trusted, url=normalized
        )
        markdown = await page_to_markdown_async(
            page, source_url=normalized, policy=policy
        )
        self._gate.scan_content_for_threats(markdown, trusted=trusted, url=normalized)

        if not force:
            self._check_duplicate(normalized, import_method, markdown, rendered)

        return self._persist(
            normalized,
            markdown=markdown,
            title=page.title,
            links=page.links,
            method=import_method,
            rendered=rendered,
            depth=depth,
            parent_url=parent_url,
            tags=set(tags),
        )

    def _persist(
        self,
        url: str,
        *,
        markdown: str,
        title: str,
        links: list[str],
        method: ImportMethod,
        rendered: bool,
        depth: int,
        parent_url: str | None,
        tags: set[str],
    ) -> DocumentRecord:
        location = self._store.store(markdown, self._store.unique_filename_for(url))
        size = len(markdown.encode("utf-8"))
        summary = summarize(markdown, limit=self.config.policy.summary_chars)

        existing = self._library.find_by_source_url(url)
        old_location = existing.location if existing is not None else None
        if existing is not None:
            record = self._duplicates.refresh_for_reimport(
                existing, method, markdown, rendered
            )
            record.tags |= tags
        else:
            record = DocumentRecord(
                title=title,
                source_url=url,
                location=location,
                size_bytes=size,
                content_hash=generate_content_hash(markdown),
                import_method=method,
                rendered_with_js=rendered,
                last_update_check=utc_now(),
                tags=tags,
            )
        record.title = title
        record.location = location
        record.size_bytes = size
        record.summary = summary
        record.crawl_depth = depth
        record.parent_url = parent_url
        record.extracted_links = list(links)

        try:
            self._library.upsert_record(record)
        except StorageError:
            self._store.delete(location)
            raise

        if old_location and old_location != location:
            try:
                self._store.delete(old_location)
            except StorageError as e:
                logger.warning("Could not remove replaced file %s: %s", old_location, e)

        self._index.index(record)
        logger.info("Imported %s as %s (%d bytes)", url, record.id, size)
        return record
