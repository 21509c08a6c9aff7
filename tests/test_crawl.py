import asyncio

import pytest

from conftest import FakeResponse, page
from docshelf.crawl import CrawlController
from docshelf.errors import AlreadyCrawledError, HTTPError, OracleError
from docshelf.interfaces import NoFollowOracle, SameSiteOracle
from docshelf.manifest import ImportLog
from docshelf.models import ImportMethod

ROOT = "https://example.com/"
P1 = "https://example.com/p1"
P2 = "https://example.com/p2"
P3 = "https://example.com/p3"
P1A = "https://example.com/p1a"
OFFSITE = "https://other.example.org/x"


def _site():
    return {
        ROOT: FakeResponse(page("Home", "<p>Welcome home.</p>", links=(OFFSITE, P1, P2, P3))),
        P1: FakeResponse(page("Page One", "<p>First page.</p>", links=(P2, P1A))),
        P2: FakeResponse(page("Page Two", "<p>Second page.</p>")),
        P3: FakeResponse(page("Page Three", "<p>Third page.</p>")),
        P1A: FakeResponse(page("Page One A", "<p>Nested page.</p>")),
        OFFSITE: FakeResponse(page("Elsewhere", "<p>Other site.</p>")),
    }


class ScriptedOracle:
    def __init__(self, proceed=True, error=None):
        self.proceed = proceed
        self.error = error
        self.seen_depths = []

    async def filter_relevant_links(self, links, content, title):
        return links

    async def should_continue_crawl(self, links, visited, content, title, *, depth):
        self.seen_depths.append(depth)
        if self.error is not None:
            raise self.error
        return self.proceed


def test_depth_first_breadth_limited_crawl(make_pipeline):
    pipe = make_pipeline(_site())
    controller = CrawlController(
        pipe.ingestor, SameSiteOracle(max_depth=3), breadth_limit=2, max_depth=3
    )
    report = asyncio.run(controller.crawl(ROOT, tags=["docs"]))

    assert [r.source_url for r in report.ingested] == [ROOT, P1, P2, P1A]
    assert pipe.session.calls == [ROOT, P1, P2, P1A]
    assert report.root.source_url == ROOT
    assert len(report.children) == 3

    by_url = {r.source_url: r for r in report.ingested}
    assert by_url[P2].parent_url == P1
    assert by_url[P2].crawl_depth == 2
    assert by_url[P1].import_method is ImportMethod.SCHEDULED_UPDATE
    assert by_url[ROOT].import_method is ImportMethod.MANUAL
    assert all(r.tags == {"docs"} for r in report.ingested)

    assert len(report.failures) == 1
    assert report.failures[0].url == P2
    assert isinstance(report.failures[0].error, AlreadyCrawledError)


def test_child_failure_does_not_abort_siblings(make_pipeline):
    site = _site()
    site[ROOT] = FakeResponse(page("Home", "<p>Welcome.</p>", links=(P1, P2)))
    site[P1] = FakeResponse("down", status_code=500)
    pipe = make_pipeline(site)
    controller = CrawlController(pipe.ingestor, SameSiteOracle(max_depth=1))

    report = asyncio.run(controller.crawl(ROOT))
    assert [r.source_url for r in report.ingested] == [ROOT, P2]
    assert [f.url for f in report.failures] == [P1]
    assert isinstance(report.failures[0].error, HTTPError)
    assert report.stats["error"] == 1


def test_root_failure_propagates(make_pipeline):
    pipe = make_pipeline({})
    controller = CrawlController(pipe.ingestor, SameSiteOracle())
    with pytest.raises(HTTPError):
        asyncio.run(controller.import_url(ROOT))


def test_max_depth_stops_recursion(make_pipeline):
    pipe = make_pipeline(_site())
    controller = CrawlController(pipe.ingestor, SameSiteOracle(max_depth=5), max_depth=1)
    report = asyncio.run(controller.crawl(ROOT))
    assert P1A not in [r.source_url for r in report.ingested]
    assert max(r.crawl_depth for r in report.ingested) == 1


def test_no_follow_oracle_imports_only_root(make_pipeline):
    pipe = make_pipeline(_site())
    record = asyncio.run(CrawlController(pipe.ingestor, NoFollowOracle()).import_url(ROOT))
    assert record.title == "Home"
    assert pipe.session.calls == [ROOT]


def test_oracle_answer_must_be_strictly_true(make_pipeline):
    pipe = make_pipeline(_site())
    oracle = ScriptedOracle(proceed="yes")
    report = asyncio.run(CrawlController(pipe.ingestor, oracle).crawl(ROOT))
    assert [r.source_url for r in report.ingested] == [ROOT]
    assert oracle.seen_depths == [0]


def test_oracle_failure_means_do_not_follow(make_pipeline):
    pipe = make_pipeline(_site())
    oracle = ScriptedOracle(error=OracleError("model unavailable"))
    report = asyncio.run(CrawlController(pipe.ingestor, oracle).crawl(ROOT))
    assert [r.source_url for r in report.ingested] == [ROOT]
    assert report.failures == []


def test_cancellation_is_not_swallowed(make_pipeline):
    pipe = make_pipeline(_site())
    oracle = ScriptedOracle(error=asyncio.CancelledError())
    with pytest.raises(asyncio.CancelledError):
        asyncio.run(CrawlController(pipe.ingestor, oracle).crawl(ROOT))


def test_import_log_records_each_url(make_pipeline, tmp_path):
    site = _site()
    site[ROOT] = FakeResponse(page("Home", "<p>Welcome.</p>", links=(P2, P2 + "#dup")))
    pipe = make_pipeline(site)
    log = ImportLog(tmp_path / "logs")
    controller = CrawlController(pipe.ingestor, SameSiteOracle(max_depth=1), log=log)
    asyncio.run(controller.crawl(ROOT))

    events = log.read()
    assert [(e["event"], e["url"]) for e in events] == [
        ("ingested", ROOT),
        ("ingested", P2),
    ]
