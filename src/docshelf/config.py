from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "docshelf/0.1 (+documentation importer)"

DEFAULT_TRUSTED_DOMAINS: tuple[str, ...] = (
    "github.com",
    "docs.github.com",
    "developer.apple.com",
    "developer.mozilla.org",
    "docs.microsoft.com",
    "docs.python.org",
    "nodejs.org",
    "rust-lang.org",
    "kotlinlang.org",
    "swift.org",
    "stackoverflow.com",
    "medium.com",
    "wikipedia.org",
)


@dataclass(frozen=True)
class HeuristicPolicy:
    """Thresholds for the content heuristics, kept in one place."""

    # Navigation menus rendered as link lists.
    nav_list_min_links: int = 3
    nav_list_link_ratio: float = 0.8
    nav_link_max_chars: int = 50

    # Installer / shell command dumps inside <pre>.
    install_block_min_chars: int = 300
    shell_block_min_lines: int = 5
    shell_line_ratio: float = 0.7

    # Chunked conversion for very large pages.
    stream_threshold_chars: int = 1024 * 1024
    stream_chunk_chars: int = 4096

    # Static responses shorter than this probably need a JS renderer.
    js_short_content_chars: int = 1000

    summary_chars: int = 200
    index_content_tokens: int = 500


@dataclass
class IngestConfig:
    network_timeout_s: float = 30.0
    max_document_size: int = 50 * 1024 * 1024
    max_retry_attempts: int = 3
    retry_delay_s: float = 2.0

    allow_duplicates: bool = False
    smart_duplicate_handling: bool = True
    check_for_updates: bool = True
    update_check_interval_s: float = 24 * 60 * 60
    confirm_reimports: bool = False

    blocked_domains: frozenset[str] = frozenset()
    trusted_domains: tuple[str, ...] = DEFAULT_TRUSTED_DOMAINS

    enable_js_rendering: bool = True
    auto_detect_js: bool = True

    crawl_breadth: int = 15
    max_crawl_depth: int = 3

    user_agent: str = DEFAULT_USER_AGENT
    policy: HeuristicPolicy = field(default_factory=HeuristicPolicy)

    def __post_init__(self) -> None:
        self.blocked_domains = frozenset(d.lower() for d in self.blocked_domains)
        self.trusted_domains = tuple(d.lower() for d in self.trusted_domains)
        if self.max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be >= 1")
        if self.crawl_breadth < 0 or self.max_crawl_depth < 0:
            raise ValueError("crawl limits must be >= 0")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IngestConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))

        kwargs = {k: v for k, v in data.items() if k in known}
        if "policy" in kwargs:
            policy = kwargs["policy"] or {}
            policy_known = {f.name for f in fields(HeuristicPolicy)}
            kwargs["policy"] = HeuristicPolicy(
                **{k: v for k, v in policy.items() if k in policy_known}
            )
        if "blocked_domains" in kwargs:
            kwargs["blocked_domains"] = frozenset(kwargs["blocked_domains"] or ())
        if "trusted_domains" in kwargs:
            kwargs["trusted_domains"] = tuple(kwargs["trusted_domains"] or ())
        return cls(**kwargs)

    @classmethod
    def load(cls, path: Path) -> IngestConfig:
        """Read a JSON config file, falling back to defaults when unusable."""
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("No config at %s; using defaults", path)
            return cls()
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Failed to load config %s: %s; using defaults", path, e)
            return cls()

        if not isinstance(data, dict):
            logger.warning("Config %s is not a JSON object; using defaults", path)
            return cls()
        try:
            return cls.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Invalid config %s: %s; using defaults", path, e)
            return cls()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["blocked_domains"] = sorted(self.blocked_domains)
        data["trusted_domains"] = list(self.trusted_domains)
        return data

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
            newline="\n",
        )
