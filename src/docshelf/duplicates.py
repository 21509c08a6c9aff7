from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Union

from .interfaces import LibraryIndex
from .models import DocumentRecord, ImportMethod, utc_now

logger = logging.getLogger(__name__)


class AllowReason(str, Enum):
    NEW_DOCUMENT = "new-document"
    DUPLICATES_ENABLED = "duplicates-enabled"
    IMPORT_METHOD_CHANGED = "import-method-changed"
    JS_RENDERING_ENABLED = "js-rendering-enabled"
    CONTENT_CHANGED = "content-changed"
    SCHEDULED_RECHECK = "scheduled-recheck"

    @property
    def description(self) -> str:
        return {
            AllowReason.NEW_DOCUMENT: "new document",
            AllowReason.DUPLICATES_ENABLED: "duplicates are allowed",
            AllowReason.IMPORT_METHOD_CHANGED: "different import method",
            AllowReason.JS_RENDERING_ENABLED: "JavaScript rendering now enabled",
            AllowReason.CONTENT_CHANGED: "content has changed",
            AllowReason.SCHEDULED_RECHECK: "scheduled update check",
        }[self]


def _describe(reasons: tuple[AllowReason, ...]) -> str:
    return ", ".join(r.description for r in reasons)


@dataclass(frozen=True)
class Allow:
    reasons: tuple[AllowReason, ...]

    allowed = True

    @property
    def message(self) -> str:
        return f"Import allowed: {_describe(self.reasons)}"


@dataclass(frozen=True)
class Block:
    existing: DocumentRecord

    allowed = False
    reason = "existing-unchanged-document"

    @property
    def message(self) -> str:
        return (
            f"Document already exists: {self.existing.display_title} "
            f"(imported {self.existing.created_at:%Y-%m-%d})"
        )


@dataclass(frozen=True)
class Prompt:
    """Re-import is justified but the caller asked to confirm first."""

    existing: DocumentRecord
    reasons: tuple[AllowReason, ...]

    allowed = False

    @property
    def message(self) -> str:
        return (
            f"Re-import {self.existing.display_title}? "
            f"Reasons: {_describe(self.reasons)}"
        )


DuplicateDecision = Union[Allow, Block, Prompt]


def generate_content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class DuplicateEngine:
    def __init__(
        self,
        library: LibraryIndex,
        *,
        allow_duplicates: bool = False,
        smart_handling: bool = True,
        check_for_updates: bool = True,
        update_check_interval_s: float = 24 * 60 * 60,
        confirm_reimports: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._library = library
        self._allow_duplicates = allow_duplicates
        self._smart_handling = smart_handling
        self._check_for_updates = check_for_updates
        self._update_check_interval_s = update_check_interval_s
        self._confirm_reimports = confirm_reimports
        self._clock = clock

    def decide(
        self,
        url: str,
        import_method: ImportMethod,
        new_content: str | None = None,
        js_rendering_enabled: bool = False,
    ) -> DuplicateDecision:
        """Classify an import of ``url`` against what the library already has.

        Lookup is by exact source URL. Reasons are collected in a fixed order:
        method change, newly enabled JS rendering, content hash change, and
        an elapsed update-check interval.
        """

        existing = self._library.find_by_source_url(url)
        if existing is None:
            return Allow((AllowReason.NEW_DOCUMENT,))
        if self._allow_duplicates:
            return Allow((AllowReason.DUPLICATES_ENABLED,))
        if not self._smart_handling:
            return Block(existing)

        reasons: list[AllowReason] = []
        if existing.import_method != import_method:
            reasons.append(AllowReason.IMPORT_METHOD_CHANGED)
        if js_rendering_enabled and not existing.rendered_with_js:
            reasons.append(AllowReason.JS_RENDERING_ENABLED)
        if (
            self._check_for_updates
            and existing.content_hash
            and new_content is not None
            and generate_content_hash(new_content) != existing.content_hash
        ):
            reasons.append(AllowReason.CONTENT_CHANGED)
        if self._check_for_updates and existing.needs_update_check(
            self._update_check_interval_s, now=self._clock()
        ):
            reasons.append(AllowReason.SCHEDULED_RECHECK)

        if not reasons:
            logger.info("Blocking unchanged re-import of %s", url)
            return Block(existing)
        if self._confirm_reimports:
            return Prompt(existing, tuple(reasons))
        logger.info("Re-import of %s allowed: %s", url, _describe(tuple(reasons)))
        return Allow(tuple(reasons))

    def refresh_for_reimport(
        self,
        record: DocumentRecord,
        method: ImportMethod,
        content: str,
        js_used: bool,
    ) -> DocumentRecord:
        now = self._clock()
        record.import_method = method
        record.content_hash = generate_content_hash(content)
        record.rendered_with_js = js_used
        record.last_update_check = now
        record.modified_at = now
        return record
