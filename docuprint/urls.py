"""URL helpers shared by discovery and sanitization."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urldefrag, urljoin, urlparse

NAVIGABLE_SCHEMES = ("http", "https")


def to_absolute(link: Optional[str], base_url: str) -> Optional[str]:
    """Resolve ``link`` against ``base_url``; None when it cannot be resolved."""
    if not link:
        return None
    link = link.strip()
    if not link:
        return None
    try:
        return urljoin(base_url, link)
    except ValueError:
        return None


def strip_fragment(url: str) -> str:
    """Drop the ``#fragment`` part, which never identifies a different page."""
    return urldefrag(url)[0]


def is_navigable(url: str) -> bool:
    """True for absolute http(s) URLs a crawler can fetch."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme.lower() in NAVIGABLE_SCHEMES and bool(parsed.netloc)


def url_to_filename(url: str) -> str:
    """Convert URL to a safe filename stem."""
    parsed = urlparse(url)
    path = parsed.path.strip("/").replace("/", "_") or "index"
    host = parsed.netloc.replace(":", "_").replace(".", "_")
    return f"{host}_{path}"[:100]
