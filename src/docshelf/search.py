from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable

from .config import HeuristicPolicy
from .errors import StorageError
from .models import DocumentRecord, utc_now
from .urls import url_components

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should",
        "may", "might", "can", "this", "that", "these", "those",
    }
)  # fmt: skip

_NON_ALNUM = re.compile(r"[\W_]+")

TITLE_WEIGHT = 10.0
TAG_WEIGHT = 8.0
URL_WEIGHT = 5.0
SUMMARY_WEIGHT = 4.0
TOKEN_WEIGHT = 0.5
PHRASE_IN_TITLE_BONUS = 15.0
RECENT_BONUS = 2.0
RECENT_WINDOW = timedelta(days=7)
ACCESS_WEIGHT = 0.1


def tokenize(text: str) -> list[str]:
    return [
        tok
        for tok in _NON_ALNUM.sub(" ", text.lower()).split()
        if len(tok) > 2 and tok not in STOP_WORDS
    ]


@dataclass(frozen=True)
class SearchableDocument:
    record_id: str
    tokens: tuple[str, ...]
    tags: frozenset[str]
    url_parts: frozenset[str]


@dataclass(frozen=True)
class IndexSnapshot:
    word_map: dict[str, frozenset[str]]
    tag_map: dict[str, frozenset[str]]
    url_map: dict[str, frozenset[str]]


def _freeze(inverted: dict[str, set[str]]) -> dict[str, frozenset[str]]:
    return {key: frozenset(ids) for key, ids in inverted.items()}


class SearchIndex:
    """In-memory keyword index over document records.

    ``_docs`` holds the per-record token lists used for scoring; the three
    inverted maps (word, tag, url part -> record ids) are kept in step with
    it. Every method takes the same re-entrant lock, so a search never
    observes a half-applied index or rebuild.
    """

    def __init__(
        self,
        *,
        content_loader: Callable[[DocumentRecord], str] | None = None,
        policy: HeuristicPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._content_loader = content_loader
        self._content_token_limit = (policy or HeuristicPolicy()).index_content_tokens
        self._clock = clock
        self._lock = threading.RLock()
        self._docs: dict[str, SearchableDocument] = {}
        self._word_index: dict[str, set[str]] = {}
        self._tag_index: dict[str, set[str]] = {}
        self._url_index: dict[str, set[str]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._docs)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._docs

    def _load_content(self, record: DocumentRecord) -> str:
        if self._content_loader is None:
            return ""
        try:
            return self._content_loader(record)
        except (StorageError, OSError) as e:
            logger.warning("Indexing %s without content: %s", record.id, e)
            return ""

    def _build(self, record: DocumentRecord) -> SearchableDocument:
        tokens = tokenize(record.title)
        tokens += tokenize(record.summary or "")
        tokens += tokenize(self._load_content(record))[: self._content_token_limit]
        for tag in record.tags:
            tokens += tokenize(tag)
        return SearchableDocument(
            record_id=record.id,
            tokens=tuple(tokens),
            tags=frozenset(t.strip().lower() for t in record.tags if t.strip()),
            url_parts=frozenset(url_components(record.source_url)),
        )

    def _link(self, doc: SearchableDocument) -> None:
        for inverted, keys in (
            (self._word_index, set(doc.tokens)),
            (self._tag_index, doc.tags),
            (self._url_index, doc.url_parts),
        ):
            for key in keys:
                inverted.setdefault(key, set()).add(doc.record_id)
        self._docs[doc.record_id] = doc

    def _unlink(self, record_id: str) -> SearchableDocument | None:
        doc = self._docs.pop(record_id, None)
        if doc is None:
            return None
        for inverted, keys in (
            (self._word_index, set(doc.tokens)),
            (self._tag_index, doc.tags),
            (self._url_index, doc.url_parts),
        ):
            for key in keys:
                ids = inverted.get(key)
                if ids is None:
                    continue
                ids.discard(record_id)
                if not ids:
                    del inverted[key]
        return doc

    def index(self, record: DocumentRecord) -> None:
        doc = self._build(record)
        with self._lock:
            self._unlink(record.id)
            self._link(doc)
        logger.debug("Indexed %s (%d tokens)", record.id, len(doc.tokens))

    def remove(self, record_id: str) -> bool:
        with self._lock:
            return self._unlink(record_id) is not None

    def rebuild(self, records: Iterable[DocumentRecord]) -> None:
        docs = [self._build(r) for r in records]
        with self._lock:
            self._docs = {}
            self._word_index = {}
            self._tag_index = {}
            self._url_index = {}
            for doc in docs:
                self._link(doc)
            count = len(self._docs)
        logger.info("Rebuilt search index with %d documents", count)

    def snapshot(self) -> IndexSnapshot:
        with self._lock:
            return IndexSnapshot(
                word_map=_freeze(self._word_index),
                tag_map=_freeze(self._tag_index),
                url_map=_freeze(self._url_index),
            )

    def _score(
        self,
        record: DocumentRecord,
        doc: SearchableDocument | None,
        terms: list[str],
        phrase: str,
        now: datetime,
    ) -> float:
        title = record.title.lower()
        summary = (record.summary or "").lower()
        if doc is not None:
            tags: Iterable[str] = doc.tags
            url_parts: Iterable[str] = doc.url_parts
            tokens: Iterable[str] = doc.tokens
        else:
            tags = [t.lower() for t in record.tags]
            url_parts = [record.source_url.lower()]
            tokens = ()

        score = 0.0
        for term in terms:
            if term in title:
                score += TITLE_WEIGHT
            if any(term in tag for tag in tags):
                score += TAG_WEIGHT
            if any(term in part for part in url_parts):
                score += URL_WEIGHT
            if term in summary:
                score += SUMMARY_WEIGHT
            score += TOKEN_WEIGHT * sum(1 for tok in tokens if term in tok)
        if score <= 0:
            return 0.0

        if phrase in title:
            score += PHRASE_IN_TITLE_BONUS
        if now - record.created_at <= RECENT_WINDOW:
            score += RECENT_BONUS
        return score + ACCESS_WEIGHT * record.access_count

    def score(self, record: DocumentRecord, query: str) -> float:
        terms = tokenize(query)
        if not terms:
            return 0.0
        with self._lock:
            doc = self._docs.get(record.id)
            return self._score(record, doc, terms, query.strip().lower(), self._clock())

    def search(
        self, query: str, corpus: Iterable[DocumentRecord]
    ) -> list[DocumentRecord]:
        """Rank ``corpus`` against ``query``, best first, dropping non-matches."""

        corpus = list(corpus)
        query = query.strip()
        if not query:
            return corpus
        terms = tokenize(query)
        if not terms:
            return []

        phrase = query.lower()
        now = self._clock()
        with self._lock:
            scored = []
            for record in corpus:
                score = self._score(record, self._docs.get(record.id), terms, phrase, now)
                if score > 0:
                    scored.append((score, record))

        # sorted() is stable, so ties keep corpus order.
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [record for _, record in scored]
