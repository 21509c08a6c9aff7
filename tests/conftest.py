from __future__ import annotations

from pathlib import Path

import pytest
import requests

from docshelf.config import IngestConfig
from docshelf.duplicates import DuplicateEngine
from docshelf.http_client import HttpClient
from docshelf.ingest import DocumentIngestor
from docshelf.search import SearchIndex
from docshelf.security import SecurityGate
from docshelf.storage import FileDocumentStore, JsonLibraryIndex


class FakeResponse:
    def __init__(
        self,
        body: str | bytes = b"",
        *,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        url: str | None = None,
    ) -> None:
        self.content = body.encode("utf-8") if isinstance(body, str) else body
        self.status_code = status_code
        self.headers = headers or {"Content-Type": "text/html; charset=utf-8"}
        self.url = url


class FakeSession:
    """Serves canned responses per URL; a list is consumed one per call."""

    def __init__(self, routes: dict | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[str] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return None

    def get(self, url: str, *, timeout=None, headers=None):
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(b"not found", status_code=404, url=url)
        if isinstance(route, list):
            item = route.pop(0) if len(route) > 1 else route[0]
        else:
            item = route
        if isinstance(item, Exception):
            raise item
        if item.url is None:
            item.url = url
        return item


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def page(title: str, body: str, *, links: tuple[str, ...] = ()) -> str:
    anchors = "".join(f'<p><a href="{href}">{href}</a></p>' for href in links)
    return (
        f"<html><head><title>{title}</title></head>"
        f"<body><main><h1>{title}</h1>{body}{anchors}</main></body></html>"
    )


class Pipeline:
    def __init__(
        self,
        root: Path,
        session: FakeSession,
        *,
        renderer=None,
        confirm=None,
        **overrides,
    ) -> None:
        overrides.setdefault("trusted_domains", ())
        self.config = IngestConfig(**overrides)
        self.session = session
        self.sleep = SleepRecorder()
        self.gate = SecurityGate(
            trusted_domains=self.config.trusted_domains,
            blocked_domains=self.config.blocked_domains,
            max_document_size=self.config.max_document_size,
        )
        self.http = HttpClient(
            session,
            gate=self.gate,
            max_attempts=self.config.max_retry_attempts,
            backoff_base_s=self.config.retry_delay_s,
            sleep=self.sleep,
        )
        self.store = FileDocumentStore(root / "documents")
        self.library = JsonLibraryIndex(root / "library.json")
        self.index = SearchIndex(content_loader=lambda r: self.store.load(r.location))
        self.duplicates = DuplicateEngine(
            self.library,
            allow_duplicates=self.config.allow_duplicates,
            smart_handling=self.config.smart_duplicate_handling,
            check_for_updates=self.config.check_for_updates,
            update_check_interval_s=self.config.update_check_interval_s,
            confirm_reimports=self.config.confirm_reimports,
        )
        self.ingestor = DocumentIngestor(
            config=self.config,
            gate=self.gate,
            http=self.http,
            duplicates=self.duplicates,
            store=self.store,
            library=self.library,
            index=self.index,
            renderer=renderer,
            confirm=confirm,
        )


@pytest.fixture
def make_pipeline(tmp_path):
    def _make(routes: dict | None = None, **kwargs) -> Pipeline:
        return Pipeline(tmp_path, FakeSession(routes), **kwargs)

    return _make


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
