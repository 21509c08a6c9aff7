from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import requests
from tqdm import tqdm

from .config import IngestConfig
from .crawl import CrawlController
from .duplicates import DuplicateEngine
from .errors import IngestError, StorageError
from .http_client import HttpClient
from .ingest import DocumentIngestor
from .interfaces import LinkOracle, NoFollowOracle, SameSiteOracle
from .manifest import ImportLog
from .models import DocumentRecord
from .search import SearchIndex
from .security import SecurityGate
from .storage import FileDocumentStore, JsonLibraryIndex


@dataclass
class Library:
    root: Path
    config: IngestConfig
    store: FileDocumentStore
    records: JsonLibraryIndex
    index: SearchIndex
    log: ImportLog

    @classmethod
    def open(cls, root: Path, *, config_path: Path | None = None) -> Library:
        config = IngestConfig.load(config_path or root / "config.json")
        store = FileDocumentStore(root / "documents")
        return cls(
            root=root,
            config=config,
            store=store,
            records=JsonLibraryIndex(root / "library.json"),
            index=SearchIndex(
                content_loader=lambda r: store.load(r.location),
                policy=config.policy,
            ),
            log=ImportLog(root),
        )

    def controller(
        self,
        session: requests.Session,
        *,
        oracle: LinkOracle,
        max_depth: int,
    ) -> CrawlController:
        cfg = self.config
        gate = SecurityGate(
            trusted_domains=cfg.trusted_domains,
            blocked_domains=cfg.blocked_domains,
            max_document_size=cfg.max_document_size,
        )
        http = HttpClient(
            session,
            gate=gate,
            timeout_s=cfg.network_timeout_s,
            max_attempts=cfg.max_retry_attempts,
            backoff_base_s=cfg.retry_delay_s,
            user_agent=cfg.user_agent,
        )
        duplicates = DuplicateEngine(
            self.records,
            allow_duplicates=cfg.allow_duplicates,
            smart_handling=cfg.smart_duplicate_handling,
            check_for_updates=cfg.check_for_updates,
            update_check_interval_s=cfg.update_check_interval_s,
            confirm_reimports=cfg.confirm_reimports,
        )
        ingestor = DocumentIngestor(
            config=cfg,
            gate=gate,
            http=http,
            duplicates=duplicates,
            store=self.store,
            library=self.records,
            index=self.index,
        )
        return CrawlController(
            ingestor,
            oracle,
            breadth_limit=cfg.crawl_breadth,
            max_depth=max_depth,
            log=self.log,
        )


def _format_record(record: DocumentRecord) -> str:
    tags = f" [{', '.join(record.sorted_tags)}]" if record.tags else ""
    return (
        f"{record.id}  {record.display_title}{tags}  "
        f"({record.import_method.display_name})\n    {record.source_url}"
    )


def _cmd_import(lib: Library, args: argparse.Namespace) -> int:
    max_depth = (
        args.max_depth if args.max_depth is not None else lib.config.max_crawl_depth
    )
    oracle: LinkOracle = (
        SameSiteOracle(max_depth=max_depth) if args.follow else NoFollowOracle()
    )
    with requests.Session() as session:
        controller = lib.controller(session, oracle=oracle, max_depth=max_depth)
        try:
            report = asyncio.run(
                controller.crawl(args.url, force=args.force, tags=args.tag)
            )
        except IngestError as e:
            print(f"import failed: {e}", file=sys.stderr)
            return 1

    print(_format_record(report.root))
    print(
        f"import: children={len(report.children)} "
        f"failures={len(report.failures)}"
    )
    return 0


def _cmd_search(lib: Library, args: argparse.Namespace) -> int:
    records = lib.records.records()
    lib.index.rebuild(records)
    results = lib.index.search(args.query, records)[: args.limit]
    for record in results:
        print(_format_record(record))
    try:
        for record in results:
            lib.records.record_access(record.id)
    except StorageError as e:
        print(str(e), file=sys.stderr)
        return 2
    if not results:
        print("search: no matches", file=sys.stderr)
    return 0


def _cmd_list(lib: Library, args: argparse.Namespace) -> int:
    for record in lib.records.records():
        print(_format_record(record))
    return 0


def _cmd_remove(lib: Library, args: argparse.Namespace) -> int:
    record = lib.records.get(args.id)
    if record is None:
        print(f"remove: no document with id {args.id}", file=sys.stderr)
        return 2
    try:
        lib.store.delete(record.location)
        lib.records.remove_record(record)
    except StorageError as e:
        print(str(e), file=sys.stderr)
        return 2
    print(f"removed {record.id}")
    return 0


def _cmd_reindex(lib: Library, args: argparse.Namespace) -> int:
    records = lib.records.records()
    lib.index.rebuild([])
    for record in tqdm(records, desc="Indexing", unit="doc"):
        lib.index.index(record)

    snap = lib.index.snapshot()
    print(
        f"reindex: documents={len(lib.index)} words={len(snap.word_map)} "
        f"tags={len(snap.tag_map)} url_parts={len(snap.url_map)}"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="docshelf")
    parser.add_argument("--library", type=Path, default=Path("library"))
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd", required=True)

    import_p = sub.add_parser("import", help="Import a documentation page")
    import_p.add_argument("url")
    import_p.add_argument(
        "--tag",
        action="append",
        default=[],
        help="Repeatable; e.g. --tag swift --tag tutorial",
    )
    import_p.add_argument("--force", action="store_true")
    import_p.add_argument(
        "--follow",
        action="store_true",
        help="Also import same-site links from the page",
    )
    import_p.add_argument("--max-depth", type=int, default=None)

    search_p = sub.add_parser("search", help="Search imported documents")
    search_p.add_argument("query")
    search_p.add_argument("--limit", type=int, default=10)

    sub.add_parser("list", help="List imported documents")

    remove_p = sub.add_parser("remove", help="Delete a document by id")
    remove_p.add_argument("id")

    sub.add_parser("reindex", help="Rebuild the search index")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        lib = Library.open(args.library, config_path=args.config)
    except StorageError as e:
        print(str(e), file=sys.stderr)
        return 2

    handlers = {
        "import": _cmd_import,
        "search": _cmd_search,
        "list": _cmd_list,
        "remove": _cmd_remove,
        "reindex": _cmd_reindex,
    }
    return handlers[args.cmd](lib, args)


if __name__ == "__main__":
    raise SystemExit(main())
