from __future__ import annotations

import asyncio
import copy
import logging
import re
from dataclasses import dataclass
from typing import Final
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, Tag
from markdownify import ATX, MarkdownConverter

from ..config import HeuristicPolicy
from ..errors import ContentExtractionError
from ..urls import host_of, normalize_url

logger = logging.getLogger(__name__)

CONTENT_SELECTORS: Final[tuple[str, ...]] = (
    "main",
    "article",
    "#main",
    "#content",
    ".main-content",
    ".content",
    ".post",
    "[role='main']",
)

NOISE_SELECTORS: Final[tuple[str, ...]] = (
    "nav",
    ".nav",
    ".navigation",
    ".navbar",
    ".menu",
    "header",
    ".header",
    "footer",
    ".footer",
    "aside",
    ".sidebar",
    ".aside",
    ".toc-sidebar",
    ".breadcrumb",
    ".breadcrumbs",
    ".advertisement",
    ".ads",
    ".banner",
    ".search-box",
    ".search-form",
    ".site-nav",
    ".doc-nav",
    ".page-nav",
    "[role='navigation']",
    "[role='banner']",
    "[role='complementary']",
    "[class*='loading']",
    "[class*='placeholder']",
)

_JUNK_TAGS: Final = ("script", "style", "noscript", "template", "iframe")

# Elements that carry meaning without text.
_KEEP_WHEN_EMPTY: Final = frozenset(
    {"img", "br", "hr", "td", "th", "video", "audio", "source", "picture", "input"}
)

_CODE_SELECTORS: Final = "pre, .highlight, .code-block"

_INSTALL_MARKERS: Final[tuple[tuple[str, ...], ...]] = (
    ("curl", "install"),
    ("wget", "download"),
    ("pip install", "--upgrade"),
    ("npm install", "global"),
    ("brew install",),
    ("apt-get install",),
    ("rm -rf", "$home"),
    ("echo", ">>", "bashrc"),
)

_SHELL_PREFIXES: Final = ("$", "PS>", "curl", "wget")

KNOWN_CODE_LANGUAGES: Final = frozenset(
    {
        "bash",
        "c",
        "console",
        "cpp",
        "css",
        "go",
        "html",
        "java",
        "javascript",
        "json",
        "kotlin",
        "objc",
        "php",
        "python",
        "ruby",
        "rust",
        "shell",
        "sql",
        "swift",
        "typescript",
        "xml",
        "yaml",
    }
)

_LANG_CLASS = re.compile(r"^(?:language|lang|highlight|sourcecode)-([\w+#.]+)$")

_SKIP_HREF_PREFIXES: Final = ("#", "mailto:", "javascript:", "tel:")

_JS_NOTICE = re.compile(
    r"^.*(?:This page requires JavaScript|Please turn on JavaScript).*(?:\n|$)",
    re.IGNORECASE | re.MULTILINE,
)


@dataclass(frozen=True)
class ExtractedPage:
    title: str
    content: Tag
    links: list[str]


def _attr_text(val: object) -> str:
    if isinstance(val, list):
        return str(val[0]) if val else ""
    return str(val or "")


def _class_list(el: Tag) -> list[str]:
    classes = el.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return [c.lower() for c in classes]


def _alive(el: Tag) -> bool:
    return not getattr(el, "decomposed", False)


def infer_code_language(el: Tag) -> str:
    """Best-effort fence language from class names on a code block."""

    classes = _class_list(el)
    code = el.find("code")
    if isinstance(code, Tag):
        classes += _class_list(code)
    parent = el.parent
    for _ in range(2):
        if not isinstance(parent, Tag):
            break
        classes += _class_list(parent)
        parent = parent.parent

    for cls in classes:
        m = _LANG_CLASS.match(cls)
        if m:
            return m.group(1)
    for cls in classes:
        for token in re.split(r"[-_]", cls):
            if token in KNOWN_CODE_LANGUAGES:
                return token
    return ""


class DocMarkdownConverter(MarkdownConverter):
    def __init__(self, **options) -> None:
        options.setdefault("heading_style", ATX)
        options.setdefault("bullets", "-")
        options.setdefault("escape_underscores", False)
        options.setdefault("escape_asterisks", False)
        options.setdefault("escape_misc", False)
        options.setdefault("code_language_callback", infer_code_language)
        super().__init__(**options)


def extract_title(soup: BeautifulSoup, *, url: str) -> str:
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(" ", strip=True)

    for attrs in ({"property": "og:title"}, {"name": "twitter:title"}):
        meta = soup.find("meta", attrs=attrs)
        if isinstance(meta, Tag):
            content = _attr_text(meta.get("content")).strip()
            if content:
                return content

    return host_of(url) or "Untitled"


def extract_links(soup: BeautifulSoup, *, page_url: str) -> list[str]:
    base_href = None
    base = soup.find("base")
    if isinstance(base, Tag):
        base_href = _attr_text(base.get("href")).strip() or None

    effective_base = page_url
    if base_href is not None:
        effective_base = urljoin(page_url, base_href)

    seen: set[str] = set()
    out: list[str] = []
    for a in soup.select("a[href]"):
        href = _attr_text(a.get("href")).strip()
        if not href or href.lower().startswith(_SKIP_HREF_PREFIXES):
            continue
        try:
            abs_url = normalize_url(urljoin(effective_base, href))
        except ValueError:
            continue
        if abs_url in seen:
            continue
        seen.add(abs_url)
        out.append(abs_url)
    return out


def _pick_main_content(soup: BeautifulSoup) -> Tag:
    for selector in CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node is not None and node.get_text(strip=True):
            return node

    if soup.body is not None:
        return soup.body
    if soup.get_text(strip=True):
        return soup
    raise ContentExtractionError("No body element found in HTML")


def is_navigation_list(lst: Tag, policy: HeuristicPolicy) -> bool:
    links = lst.find_all("a")
    items = lst.find_all("li")
    if len(links) <= policy.nav_list_min_links or not items:
        return False
    if len(links) / len(items) <= policy.nav_list_link_ratio:
        return False
    return all(
        len(link.get_text(" ", strip=True)) <= policy.nav_link_max_chars
        for link in links
    )


def is_command_dump(code_text: str, policy: HeuristicPolicy) -> bool:
    """Long installer scripts and bare shell transcripts are not content."""

    lowered = code_text.lower()
    if len(code_text) > policy.install_block_min_chars and any(
        all(marker in lowered for marker in combo) for combo in _INSTALL_MARKERS
    ):
        return True

    lines = [ln.strip() for ln in code_text.splitlines() if ln.strip()]
    if len(lines) <= policy.shell_block_min_lines:
        return False
    commands = sum(1 for ln in lines if ln.startswith(_SHELL_PREFIXES))
    return commands / len(lines) > policy.shell_line_ratio


def _clean_content_inplace(content: Tag, policy: HeuristicPolicy) -> None:
    for tag in content.find_all(_JUNK_TAGS):
        if _alive(tag):
            tag.decompose()

    for comment in content.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    for selector in NOISE_SELECTORS:
        for node in content.select(selector):
            if _alive(node):
                node.decompose()

    for lst in content.find_all(["ul", "ol"]):
        if _alive(lst) and is_navigation_list(lst, policy):
            lst.decompose()

    for block in content.select(_CODE_SELECTORS):
        if _alive(block) and is_command_dump(block.get_text("\n"), policy):
            block.decompose()

    # Reverse document order visits children before their parents.
    for el in reversed(content.find_all(True)):
        if not _alive(el) or el.name in _KEEP_WHEN_EMPTY:
            continue
        if el.get_text(strip=True):
            continue
        if el.find(list(_KEEP_WHEN_EMPTY)) is not None:
            continue
        el.decompose()


def _drop_title_heading(content: Tag, title: str) -> None:
    h1 = content.find("h1")
    if isinstance(h1, Tag) and h1.get_text(" ", strip=True).casefold() == (
        title.strip().casefold()
    ):
        h1.decompose()


def extract_page(
    html: str,
    *,
    base_url: str,
    policy: HeuristicPolicy | None = None,
) -> ExtractedPage:
    """Parse ``html`` into a title, a cleaned main-content element and links."""

    if not html or not html.strip():
        raise ContentExtractionError("Empty HTML document", url=base_url)

    policy = policy or HeuristicPolicy()
    soup = BeautifulSoup(html, "html.parser")

    title = extract_title(soup, url=base_url)
    links = extract_links(soup, page_url=base_url)

    try:
        content = _pick_main_content(soup)
    except ContentExtractionError as e:
        e.url = base_url
        raise

    _clean_content_inplace(content, policy)
    _drop_title_heading(content, title)
    return ExtractedPage(title=title, content=content, links=links)


def _finish_markdown(title: str, source_url: str, body: str) -> str:
    body = _JS_NOTICE.sub("", body)
    body = re.sub(r"\n{3,}", "\n\n", body).strip()
    header = f"# {title}\n\nSource: {source_url}\n"
    return header + (f"\n{body}\n" if body else "")


def page_to_markdown(page: ExtractedPage, *, source_url: str) -> str:
    body = DocMarkdownConverter().convert_soup(page.content)
    return _finish_markdown(page.title, source_url, body)


# Block wrappers whose children can be converted separately without changing
# the markdown they produce.
_SPLITTABLE_TAGS: Final = frozenset(
    {"div", "section", "article", "main", "body", "aside"}
)


def _chunk_nodes(nodes: list, limit: int) -> list[list]:
    """Group sibling nodes into runs of about ``limit`` serialized chars.

    An oversized block wrapper is opened up and its children grouped in its
    place, so a page wrapped in a single ``<div>`` still splits.
    """

    chunks: list[list] = []
    pending: list = []
    pending_chars = 0
    for node in nodes:
        size = len(str(node))
        if (
            size > limit
            and isinstance(node, Tag)
            and node.name in _SPLITTABLE_TAGS
            and node.contents
        ):
            if pending:
                chunks.append(pending)
                pending, pending_chars = [], 0
            chunks.extend(_chunk_nodes(list(node.children), limit))
            continue
        pending.append(node)
        pending_chars += size
        if pending_chars >= limit:
            chunks.append(pending)
            pending, pending_chars = [], 0
    if pending:
        chunks.append(pending)
    return chunks


def _convert_nodes(converter: DocMarkdownConverter, nodes: list) -> str:
    wrapper = BeautifulSoup("<div></div>", "html.parser")
    div = wrapper.div
    for node in nodes:
        div.append(copy.copy(node))
    return converter.convert_soup(div).strip()


async def page_to_markdown_async(
    page: ExtractedPage,
    *,
    source_url: str,
    policy: HeuristicPolicy | None = None,
) -> str:
    """Convert off the event loop, in yielding chunks for very large pages."""

    policy = policy or HeuristicPolicy()
    size = len(str(page.content))
    if size <= policy.stream_threshold_chars:
        return await asyncio.to_thread(page_to_markdown, page, source_url=source_url)

    chunks = await asyncio.to_thread(
        _chunk_nodes, list(page.content.children), policy.stream_chunk_chars
    )
    logger.info(
        "Streaming conversion for %s (%d chars, %d chunks)",
        source_url,
        size,
        len(chunks),
    )
    converter = DocMarkdownConverter()
    parts: list[str] = []
    for chunk in chunks:
        parts.append(await asyncio.to_thread(_convert_nodes, converter, chunk))
        await asyncio.sleep(0)

    body = "\n\n".join(p for p in parts if p)
    return _finish_markdown(page.title, source_url, body)


def summarize(markdown: str, *, limit: int = 200) -> str:
    """Plain-text excerpt of the body, skipping the title/source header."""

    lines = markdown.splitlines()
    if lines and lines[0].startswith("# "):
        lines = lines[1:]
    words: list[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(("```", "Source: ", "|")):
            continue
        words.append(stripped.lstrip("#>-* ").strip())
    text = re.sub(r"\s+", " ", " ".join(words)).strip()
    return text[:limit].rstrip()
