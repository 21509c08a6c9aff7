"""docshelf core library.

This package provides the ingestion-and-search pipeline for a local
documentation shelf: URL/content security gating, fetching with retry,
HTML-to-markdown extraction, duplicate/update detection, bounded link
following, and a ranked inverted index over the imported corpus.

Storage, rendering and link-relevance services are collaborators reached
through the protocols in ``docshelf.interfaces``.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
