"""Sidebar link discovery.

The starting page is rendered in a headless browser through crawl4ai so
that navigation trees built by JavaScript exist in the DOM. A script
injected into the page scrolls virtualized sidebars, expands collapsed
sections and waits for the sidebar anchors to appear. The rendered HTML is
then parsed with BeautifulSoup to build the ordered, leveled link list.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag
from crawl4ai import AsyncWebCrawler, CrawlerRunConfig
from crawl4ai.async_configs import CacheMode

from .auth import AuthConfig, build_browser_config
from .config import CrawlConfig
from .document import LinkEntry
from .urls import is_navigable, strip_fragment, to_absolute

LOGGER = logging.getLogger(__name__)

DEPTH_TAGS = frozenset({"ul", "ol", "nav"})
FALLBACK_PAGE_TITLE = "Current page"
DONE_FLAG = "__docuprintDiscoveryDone"

_DISCOVERY_SCRIPT = """
(async () => {
  const sidebarSelector = __SIDEBAR__;
  const timeoutMs = __TIMEOUT__;
  const sleep = (ms) => new Promise((resolve) => setTimeout(resolve, ms));
  const containerSelector = [
    "nav", "aside", "[role='navigation']",
    "[class*='sidebar']", "[class*='Sidebar']", "[class*='menu']", "[class*='toc']",
  ].join(", ");

  try {
    const containers = Array.from(document.querySelectorAll(containerSelector));
    for (const el of containers) {
      if (el.scrollHeight <= el.clientHeight + 4) continue;
      const step = Math.max(el.clientHeight / 2, 100);
      for (let top = 0; top <= el.scrollHeight; top += step) {
        el.scrollTop = top;
        await sleep(80);
      }
      el.scrollTop = 0;
    }

    const toggles = new Set();
    for (const el of containers) {
      el.querySelectorAll(
        "button[aria-expanded='false'], [role='button'][aria-expanded='false'], " +
        "details:not([open]) > summary"
      ).forEach((toggle) => toggles.add(toggle));
    }
    for (const toggle of toggles) {
      try { toggle.click(); } catch (e) { /* keep going */ }
    }

    const found = () => {
      try { return document.querySelector(sidebarSelector) !== null; }
      catch (e) { return false; }
    };
    if (!found()) {
      await new Promise((resolve) => {
        const observer = new MutationObserver(() => {
          if (found()) { observer.disconnect(); resolve(); }
        });
        observer.observe(document.body, { childList: true, subtree: true });
        setTimeout(() => { observer.disconnect(); resolve(); }, timeoutMs);
      });
    }
  } finally {
    window.__FLAG__ = true;
  }
})();
"""


@dataclass
class DiscoveryResult:
    """Links found on the starting page."""

    page_url: str
    site_title: str = ""
    entries: List[LinkEntry] = field(default_factory=list)


def build_discovery_script(config: CrawlConfig) -> str:
    """JavaScript that prepares the navigation tree before the DOM snapshot."""
    return (
        _DISCOVERY_SCRIPT.replace("__SIDEBAR__", json.dumps(config.sidebar_selector))
        .replace("__TIMEOUT__", str(int(config.discovery_timeout * 1000)))
        .replace("__FLAG__", DONE_FLAG)
    )


def build_discovery_run_config(config: CrawlConfig) -> CrawlerRunConfig:
    """RunConfig that renders the page and waits for the discovery script."""
    return CrawlerRunConfig(
        verbose=False,
        cache_mode=CacheMode.BYPASS,
        wait_until="domcontentloaded",
        js_code=build_discovery_script(config),
        wait_for=f"js:() => window.{DONE_FLAG} === true",
        delay_before_return_html=0.5,
    )


def _element_depth(node: Tag) -> int:
    depth = 0
    for parent in node.parents:
        if parent.name in (None, "body", "[document]"):
            break
        if parent.name in DEPTH_TAGS:
            depth += 1
    return depth


def _document_base(soup: BeautifulSoup, page_url: str) -> str:
    base = soup.find("base", href=True)
    if base is not None:
        return to_absolute(base["href"], page_url) or page_url
    return page_url


def _document_title(soup: BeautifulSoup) -> str:
    if soup.title is None:
        return ""
    return soup.title.get_text(" ", strip=True)


def extract_links(html: str, page_url: str, config: CrawlConfig) -> List[LinkEntry]:
    """Build the leveled link list from the rendered starting page.

    Anchors matching the sidebar selectors are taken in document order,
    resolved against the document base and deduplicated by URL without
    fragment. The starting page is prepended when the sidebar does not
    link to it. Depths are rebased so the shallowest entry lands on level 1,
    and the list is capped at ``config.max_pages``.
    """
    soup = BeautifulSoup(html or "", "lxml")
    base_url = _document_base(soup, page_url)

    seen = set()
    raw: List[LinkEntry] = []
    for anchor in soup.select(config.sidebar_selector):
        absolute = to_absolute(anchor.get("href"), base_url)
        if not absolute or not is_navigable(absolute):
            continue
        url = strip_fragment(absolute)
        if url in seen:
            continue
        seen.add(url)
        title = anchor.get_text(" ", strip=True) or url
        raw.append(LinkEntry(url=url, title=title, level=_element_depth(anchor)))

    self_url = strip_fragment(page_url)
    if self_url not in seen:
        title = _document_title(soup) or FALLBACK_PAGE_TITLE
        raw.insert(0, LinkEntry(url=self_url, title=title, level=0))

    min_depth = min([entry.level for entry in raw] + [0])
    entries = [
        LinkEntry(
            url=entry.url,
            title=entry.title,
            level=max(1, entry.level - min_depth + 1),
        )
        for entry in raw
    ]

    if len(entries) > config.max_pages:
        LOGGER.info(
            "Found %d links; keeping the first %d", len(entries), config.max_pages
        )
    return entries[: config.max_pages]


async def discover_links_async(
    url: str,
    config: CrawlConfig,
    *,
    auth: Optional[AuthConfig] = None,
) -> DiscoveryResult:
    """Render ``url`` and return its sidebar links.

    A page that fails to render yields an empty result; the caller reports
    that as "no links".
    """
    run_config = build_discovery_run_config(config)
    browser_cfg = build_browser_config(auth)

    try:
        async with AsyncWebCrawler(config=browser_cfg) as crawler:
            container = await crawler.arun(url=url, config=run_config)
    except Exception as exc:
        LOGGER.warning("Could not render %s: %s", url, exc)
        return DiscoveryResult(page_url=url)

    try:
        result = container[0]
    except (IndexError, TypeError):
        result = None

    if result is None or not result.success:
        reason = getattr(result, "error_message", None) or "no result"
        LOGGER.warning("Could not render %s: %s", url, reason)
        return DiscoveryResult(page_url=url)

    page_url = str(getattr(result, "redirected_url", None) or result.url or url)
    html = result.html or ""
    metadata = result.metadata or {}

    entries = extract_links(html, page_url, config)
    site_title = str(metadata.get("title") or "").strip()
    if not site_title:
        site_title = _document_title(BeautifulSoup(html, "lxml"))

    LOGGER.info("Discovered %d link(s) on %s", len(entries), page_url)
    return DiscoveryResult(page_url=page_url, site_title=site_title, entries=entries)
