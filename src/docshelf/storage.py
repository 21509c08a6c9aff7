from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable

from .errors import StorageError
from .models import DocumentRecord, utc_now
from .security import sanitize_filename
from .urls import host_of, normalize_url, safe_filename_piece

logger = logging.getLogger(__name__)

CHECKSUM_DIR = ".checksums"


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8", newline="\n")
    os.replace(tmp, path)


class FileDocumentStore:
    """Markdown files in one directory, each with a SHA-256 sidecar."""

    def __init__(self, root: Path, *, clock: Callable[[], float] = time.time) -> None:
        self.root = Path(root)
        self._clock = clock
        self._lock = threading.Lock()

    def _checksum_path(self, path: Path) -> Path:
        return self.root / CHECKSUM_DIR / f"{path.name}.sha256"

    def unique_filename_for(self, url: str) -> str:
        host = safe_filename_piece(host_of(url) or "document")
        stem = f"{int(self._clock())}_{host}"
        name = f"{stem}.md"
        n = 1
        while (self.root / name).exists():
            name = f"{stem}_{n}.md"
            n += 1
        return name

    def store(self, content: str, suggested_name: str) -> str:
        name = sanitize_filename(suggested_name)
        data = content.encode("utf-8")
        with self._lock:
            path = self.root / name
            if path.exists():
                stem, suffix = path.stem, path.suffix or ".md"
                n = 1
                while path.exists():
                    path = self.root / f"{stem}_{n}{suffix}"
                    n += 1
            try:
                self.root.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
                _atomic_write_text(self._checksum_path(path), _sha256_hex(data) + "\n")
            except OSError as e:
                raise StorageError(f"Failed to store {path}: {e}") from e
        logger.debug("Stored %d bytes at %s", len(data), path)
        return str(path)

    def load(self, location: str) -> str:
        path = Path(location)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

        checksum_path = self._checksum_path(path)
        if checksum_path.exists():
            try:
                expected = checksum_path.read_text(encoding="utf-8").strip()
            except OSError as e:
                raise StorageError(f"Failed to read checksum for {path}: {e}") from e
            if expected != _sha256_hex(data):
                raise StorageError(f"Checksum mismatch for {path}")
        return data.decode("utf-8", errors="replace")

    def delete(self, location: str) -> None:
        path = Path(location)
        try:
            path.unlink(missing_ok=True)
            self._checksum_path(path).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e


class JsonLibraryIndex:
    """Document records kept in one JSON file, one record per source URL."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._records: dict[str, DocumentRecord] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read library {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Library {self.path} is not a JSON object")

        for item in data.get("records") or []:
            try:
                record = DocumentRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed library record: %s", e)
                continue
            self._records[record.id] = record

    def _save(self) -> None:
        payload = {
            "version": 1,
            "records": [r.to_dict() for r in self._records.values()],
        }
        try:
            _atomic_write_text(
                self.path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
            )
        except OSError as e:
            raise StorageError(f"Failed to write library {self.path}: {e}") from e

    def upsert_record(self, record: DocumentRecord) -> None:
        key = normalize_url(record.source_url)
        with self._lock:
            for other in list(self._records.values()):
                if other.id != record.id and normalize_url(other.source_url) == key:
                    del self._records[other.id]
            self._records[record.id] = record
            self._save()

    def remove_record(self, record: DocumentRecord) -> bool:
        with self._lock:
            if self._records.pop(record.id, None) is None:
                return False
            self._save()
            return True

    def find_by_source_url(self, url: str) -> DocumentRecord | None:
        key = normalize_url(url)
        with self._lock:
            for record in self._records.values():
                if normalize_url(record.source_url) == key:
                    return record
        return None

    def records(self) -> list[DocumentRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.created_at)

    def get(self, record_id: str) -> DocumentRecord | None:
        with self._lock:
            return self._records.get(record_id)

    def record_access(self, record_id: str) -> DocumentRecord | None:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return None
            record.record_access(now=utc_now())
            self._save()
            return record
