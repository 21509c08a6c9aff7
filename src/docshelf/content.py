from __future__ import annotations

import re
from typing import Final

from .config import HeuristicPolicy
from .urls import host_of

# Documentation sites that ship an empty shell without JavaScript.
JS_REQUIRED_HOSTS: Final[tuple[str, ...]] = (
    "developer.apple.com",
    "docs.microsoft.com",
    "angular.io",
    "reactjs.org",
    "vuejs.org",
    "nextjs.org",
    "nuxtjs.org",
    "svelte.dev",
    "flutter.dev",
    "firebase.google.com",
    "cloud.google.com",
    "aws.amazon.com",
    "docs.aws.amazon.com",
)

_JS_INDICATORS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"requires\s+javascript", re.IGNORECASE),
    re.compile(r"enable\s+javascript", re.IGNORECASE),
    re.compile(r"javascript\s+is\s+disabled", re.IGNORECASE),
    re.compile(r"javascript\s+must\s+be\s+enabled", re.IGNORECASE),
    re.compile(r"<\s*noscript\b", re.IGNORECASE),
)


def is_js_required_host(url: str) -> bool:
    host = host_of(url)
    return any(known in host for known in JS_REQUIRED_HOSTS)


def has_js_indicators(text: str) -> bool:
    sample = text[:200_000]
    return any(p.search(sample) for p in _JS_INDICATORS)


def needs_js_rendering(
    url: str,
    text: str,
    *,
    auto_detect: bool,
    policy: HeuristicPolicy | None = None,
) -> bool:
    """Decide whether a static response should go through the renderer.

    Without auto-detection only the known-host list applies. With it, an
    "enable JavaScript" notice or a suspiciously short page also qualifies.
    """

    if is_js_required_host(url):
        return True
    if not auto_detect:
        return False

    policy = policy or HeuristicPolicy()
    if has_js_indicators(text):
        return True
    return len(text) < policy.js_short_content_chars
