import asyncio
from pathlib import Path

import pytest

from conftest import FakeResponse, page
from docshelf.duplicates import Block, Prompt
from docshelf.errors import (
    BlockedDomainError,
    DuplicateDocumentError,
    HTTPError,
    RenderError,
    SuspiciousContentError,
)
from docshelf.models import ImportMethod

URL = "https://example.com/a"

WIDGETS_HTML = (
    "<html><head><title>Widgets</title></head>"
    "<body><p>Widgets are small gadgets.</p></body></html>"
)


class FakeRenderer:
    def __init__(self, html=None, error=None):
        self.html = html
        self.error = error
        self.calls = []

    async def render(self, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.html


def test_widgets_end_to_end(make_pipeline):
    pipe = make_pipeline({URL: FakeResponse(WIDGETS_HTML)})
    record = asyncio.run(pipe.ingestor.ingest(URL, tags=["gadgets"]))

    assert record.title == "Widgets"
    assert record.source_url == URL
    assert record.summary == "Widgets are small gadgets."
    assert record.tags == {"gadgets"}
    assert record.import_method is ImportMethod.MANUAL
    markdown = pipe.store.load(record.location)
    assert markdown.startswith("# Widgets\n\nSource: https://example.com/a\n\n")
    assert "Widgets are small gadgets." in markdown
    assert record.size_bytes == len(markdown.encode("utf-8"))
    assert pipe.library.get(record.id) is record
    assert record.id in pipe.index


def test_http_500_surfaces_after_two_backoffs(make_pipeline):
    pipe = make_pipeline({URL: [FakeResponse("err", status_code=500)]})
    with pytest.raises(HTTPError) as exc:
        asyncio.run(pipe.ingestor.ingest(URL))
    assert exc.value.status_code == 500
    assert pipe.sleep.delays == [2.0, 4.0]
    assert pipe.library.records() == []


def test_unchanged_reimport_is_blocked(make_pipeline):
    pipe = make_pipeline({URL: FakeResponse(WIDGETS_HTML)})
    asyncio.run(pipe.ingestor.ingest(URL))
    with pytest.raises(DuplicateDocumentError) as exc:
        asyncio.run(pipe.ingestor.ingest(URL))
    assert isinstance(exc.value.decision, Block)
    assert len(pipe.library.records()) == 1


def test_changed_content_reimport_replaces_file(make_pipeline):
    changed = WIDGETS_HTML.replace("small", "large")
    pipe = make_pipeline({URL: [FakeResponse(WIDGETS_HTML), FakeResponse(changed)]})
    first = asyncio.run(pipe.ingestor.ingest(URL))
    first_location = first.location
    second = asyncio.run(pipe.ingestor.ingest(URL))

    assert second.id == first.id
    assert second.location != first_location
    assert not Path(first_location).exists()
    assert "large" in pipe.store.load(second.location)
    assert second.modified_at is not None
    assert len(pipe.library.records()) == 1


def test_force_skips_duplicate_check(make_pipeline):
    pipe = make_pipeline({URL: FakeResponse(WIDGETS_HTML)})
    first = asyncio.run(pipe.ingestor.ingest(URL))
    again = asyncio.run(pipe.ingestor.ingest(URL, force=True))
    assert again.id == first.id


def test_declined_prompt_raises(make_pipeline):
    prompts = []

    def decline(prompt):
        prompts.append(prompt)
        return False

    changed = WIDGETS_HTML.replace("small", "large")
    pipe = make_pipeline(
        {URL: [FakeResponse(WIDGETS_HTML), FakeResponse(changed)]},
        confirm=decline,
        confirm_reimports=True,
    )
    asyncio.run(pipe.ingestor.ingest(URL))
    with pytest.raises(DuplicateDocumentError) as exc:
        asyncio.run(pipe.ingestor.ingest(URL))
    assert isinstance(exc.value.decision, Prompt)
    assert len(prompts) == 1


def test_threat_in_content_rejected_unless_trusted(make_pipeline):
    html = page("Evil", '<p>Click <a href="javascript:alert(1)">here</a> for docs.</p>')
    pipe = make_pipeline({URL: FakeResponse(html)})
    with pytest.raises(SuspiciousContentError):
        asyncio.run(pipe.ingestor.ingest(URL))
    assert pipe.library.records() == []

    trusted = make_pipeline({URL: FakeResponse(html)}, trusted_domains=("example.com",))
    record = asyncio.run(trusted.ingestor.ingest(URL))
    assert record.title == "Evil"


def test_blocked_domain_never_fetched(make_pipeline):
    pipe = make_pipeline(
        {URL: FakeResponse(WIDGETS_HTML)}, blocked_domains=frozenset({"example.com"})
    )
    with pytest.raises(BlockedDomainError):
        asyncio.run(pipe.ingestor.ingest(URL))
    assert pipe.session.calls == []


def test_js_rendering_used_for_short_static_pages(make_pipeline):
    rendered = page("Widgets", "<p>" + "Rendered widget docs. " * 60 + "</p>")
    renderer = FakeRenderer(html=rendered)
    pipe = make_pipeline({URL: FakeResponse(WIDGETS_HTML)}, renderer=renderer)
    record = asyncio.run(pipe.ingestor.ingest(URL))

    assert renderer.calls == [URL]
    assert record.rendered_with_js
    assert record.import_method is ImportMethod.JS_RENDERED
    assert "Rendered widget docs." in pipe.store.load(record.location)


def test_render_failure_falls_back_to_static_html(make_pipeline):
    renderer = FakeRenderer(error=RenderError(RenderError.TIMEOUT))
    pipe = make_pipeline({URL: FakeResponse(WIDGETS_HTML)}, renderer=renderer)
    record = asyncio.run(pipe.ingestor.ingest(URL))
    assert not record.rendered_with_js
    assert "Widgets are small gadgets." in pipe.store.load(record.location)


def test_renderer_skipped_when_disabled(make_pipeline):
    renderer = FakeRenderer(html="<p>never</p>")
    pipe = make_pipeline(
        {URL: FakeResponse(WIDGETS_HTML)}, renderer=renderer, enable_js_rendering=False
    )
    asyncio.run(pipe.ingestor.ingest(URL))
    assert renderer.calls == []
