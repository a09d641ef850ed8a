"""Per-site crawl configuration and the site lookup table."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse

import tldextract

LOGGER = logging.getLogger(__name__)

SITE_CONFIG_ENV = "DOCUPRINT_SITE_CONFIG"

# Anchors inside the documentation sidebar
SIDEBAR_SELECTORS: Tuple[str, ...] = (
    "aside a",
    ".sidebar a",
    "[role='navigation'] .menu a",
)

# Main content areas, first match wins
CONTENT_SELECTORS: Tuple[str, ...] = (
    "main",
    "article",
    ".content",
    "[role='main']",
    ".main-content",
    ".markdown-body",
    ".docs-content",
    ".doc-content",
    ".md-content",
    "#content-area",
)

# Removed from the extracted content
EXCLUDED_SELECTORS: Tuple[str, ...] = (
    ".ad",
    ".ads",
    ".advertisement",
    ".comments",
    ".comment",
    ".breadcrumb",
    ".breadcrumbs",
    "nav",
    ".toc",
    ".table-of-contents",
    "[data-testid='breadcrumbs']",
    "#onetrust-banner-sdk",
    ".cky-consent-container",
)


@dataclass(frozen=True)
class CrawlConfig:
    """Immutable settings for one crawl."""

    sidebar_selectors: Tuple[str, ...] = SIDEBAR_SELECTORS
    content_selectors: Tuple[str, ...] = CONTENT_SELECTORS
    exclude_selectors: Tuple[str, ...] = EXCLUDED_SELECTORS
    concurrency: int = 5
    delay: float = 0.5
    max_pages: int = 200
    retry_attempts: int = 3
    retry_backoff: float = 0.4
    discovery_timeout: float = 5.0
    request_timeout: float = 30.0

    @property
    def sidebar_selector(self) -> str:
        return ", ".join(self.sidebar_selectors)


@dataclass(frozen=True)
class SiteOverride:
    """Entry of the site table. Unset fields keep the default."""

    sidebar_selectors: Optional[Tuple[str, ...]] = None
    content_selectors: Optional[Tuple[str, ...]] = None
    exclude_selectors: Optional[Tuple[str, ...]] = None
    concurrency: Optional[int] = None
    delay: Optional[float] = None
    max_pages: Optional[int] = None

    def apply(self, base: CrawlConfig) -> CrawlConfig:
        changes = {
            item.name: getattr(self, item.name)
            for item in fields(self)
            if getattr(self, item.name) is not None
        }
        return replace(base, **changes)


DEFAULT_CONFIG = CrawlConfig()

SITE_CONFIGS: Dict[str, SiteOverride] = {
    "docs.python.org": SiteOverride(
        sidebar_selectors=(".sphinxsidebar a",),
        content_selectors=("div.body", "[role='main']"),
        exclude_selectors=(".headerlink",),
    ),
    "readthedocs.io": SiteOverride(
        sidebar_selectors=(".wy-menu-vertical a",),
        content_selectors=("[itemprop='articleBody']", "div.document", "[role='main']"),
        exclude_selectors=(".headerlink", ".rst-versions"),
    ),
    "developer.mozilla.org": SiteOverride(
        sidebar_selectors=("#sidebar-quicklinks a", "nav.sidebar-inner a"),
        content_selectors=("main article", "main"),
        exclude_selectors=(".metadata", ".bc-github-link", "aside"),
        concurrency=3,
        delay=1.0,
    ),
    "vuejs.org": SiteOverride(
        sidebar_selectors=(".VPSidebar a",),
        content_selectors=(".vp-doc", "main"),
        exclude_selectors=(".header-anchor", ".edit-link", ".prev-next"),
    ),
    "docusaurus.io": SiteOverride(
        sidebar_selectors=("nav.menu a.menu__link",),
        content_selectors=("article .markdown", "article"),
        exclude_selectors=(".pagination-nav", ".theme-doc-footer", ".hash-link"),
    ),
    "fastapi.tiangolo.com": SiteOverride(
        sidebar_selectors=(".md-sidebar--primary .md-nav a",),
        content_selectors=("article.md-content__inner", ".md-content"),
        exclude_selectors=(".headerlink", ".md-source-file"),
    ),
}


def _normalize_host(host: Optional[str]) -> str:
    """Normalize hostname by removing port and lowercasing."""
    if not host:
        return ""
    return host.split(":")[0].lower()


@lru_cache(maxsize=256)
def _registrable_domain(host: str) -> Optional[str]:
    """Extract the registrable domain from a hostname."""
    if not host:
        return None
    extracted = tldextract.extract(host)
    if not extracted.domain or not extracted.suffix:
        return host
    domain = ".".join(part for part in (extracted.domain, extracted.suffix) if part)
    return domain or host


def config_for_url(
    url: str,
    *,
    table: Optional[Mapping[str, SiteOverride]] = None,
    base: CrawlConfig = DEFAULT_CONFIG,
) -> CrawlConfig:
    """Pick the crawl configuration for the site hosting ``url``.

    The exact host is tried first, then its registrable domain, so one
    entry can cover every project on a shared documentation host.
    """
    sites = SITE_CONFIGS if table is None else table
    parsed = urlparse(url)
    host = _normalize_host(parsed.netloc)

    override = sites.get(host)
    if override is None:
        registrable = _registrable_domain(host)
        if registrable:
            override = sites.get(registrable)

    if override is None:
        LOGGER.debug("No site entry for %s; using default config", host or url)
        return base

    LOGGER.debug("Using site config for %s", host)
    return override.apply(base)


def _as_selectors(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        return (value,)
    return tuple(str(item) for item in value)


def site_override_from_dict(data: Mapping[str, Any]) -> SiteOverride:
    """Build a SiteOverride from a JSON object."""
    concurrency = data.get("concurrency")
    delay = data.get("delay")
    max_pages = data.get("max_pages")
    return SiteOverride(
        sidebar_selectors=_as_selectors(data.get("sidebar_selectors")),
        content_selectors=_as_selectors(data.get("content_selectors")),
        exclude_selectors=_as_selectors(data.get("exclude_selectors")),
        concurrency=int(concurrency) if concurrency is not None else None,
        delay=float(delay) if delay is not None else None,
        max_pages=int(max_pages) if max_pages is not None else None,
    )


def load_site_configs(path: str) -> Dict[str, SiteOverride]:
    """Load site table entries from a JSON file keyed by host.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not contain a JSON object.
    """
    config_path = Path(path).expanduser()
    if not config_path.is_file():
        raise FileNotFoundError(f"Site config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as fh:
        data = json.load(fh)

    if not isinstance(data, dict):
        raise ValueError(f"Site config must be a JSON object: {config_path}")

    entries = {
        _normalize_host(host): site_override_from_dict(entry or {})
        for host, entry in data.items()
    }
    LOGGER.info("Loaded %d site config(s) from %s", len(entries), config_path)
    return entries


def build_site_table(path: Optional[str] = None) -> Dict[str, SiteOverride]:
    """Merge the built-in table with entries from ``path`` or the env var."""
    table = dict(SITE_CONFIGS)
    source = path or os.environ.get(SITE_CONFIG_ENV)
    if source:
        table.update(load_site_configs(source))
    return table
