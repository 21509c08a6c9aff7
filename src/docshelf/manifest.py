from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def utc_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass
class ImportLog:
    """Append-only JSONL record of what each import run did per URL."""

    out_dir: Path

    def __post_init__(self) -> None:
        self.jsonl_path = self.out_dir / "imports.jsonl"

    def append(self, event: dict[str, Any]) -> None:
        event = dict(event)
        event.setdefault("at", utc_iso())
        self.jsonl_path.parent.mkdir(parents=True, exist_ok=True)
        with self.jsonl_path.open("a", encoding="utf-8", newline="\n") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")

    def ingested(self, url: str, *, record_id: str, depth: int) -> None:
        self.append(
            {"event": "ingested", "url": url, "id": record_id, "depth": depth}
        )

    def skipped(self, url: str, *, reason: str, depth: int) -> None:
        self.append({"event": "skipped", "url": url, "reason": reason, "depth": depth})

    def error(self, url: str, *, error: BaseException, depth: int) -> None:
        self.append(
            {
                "event": "error",
                "url": url,
                "error": type(error).__name__,
                "message": str(error),
                "depth": depth,
            }
        )

    def read(self) -> list[dict[str, Any]]:
        if not self.jsonl_path.exists():
            return []
        return [
            json.loads(line)
            for line in self.jsonl_path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
