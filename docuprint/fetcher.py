"""Page retrieval and content sanitization."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup
from bs4.element import Tag

from .auth import AuthConfig, http_client_kwargs
from .config import CrawlConfig
from .document import PageResult
from .urls import to_absolute

LOGGER = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; DocuPrint/0.1; +https://github.com/docuprint)"

STRIPPED_TAGS = ("script", "style", "noscript")
LAZY_IMAGE_ATTRS = ("data-src", "data-original", "data-lazy-src")


class PageError(Exception):
    """Raised when a single page cannot be turned into a chapter."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


class FetchError(PageError):
    """The page could not be retrieved, even after retrying."""


class SanitizeError(PageError):
    """The page was retrieved but none of the content selectors matched."""


def build_http_client(
    config: CrawlConfig, auth: Optional[AuthConfig] = None
) -> httpx.AsyncClient:
    """Create the client shared by every worker of one crawl."""
    kwargs: Dict[str, Any] = http_client_kwargs(auth)
    headers = {"User-Agent": USER_AGENT, "Accept": "text/html,*/*;q=0.8"}
    headers.update(kwargs.pop("headers", {}))
    return httpx.AsyncClient(
        headers=headers,
        follow_redirects=True,
        timeout=config.request_timeout,
        **kwargs,
    )


def _clean_text(node: Tag) -> str:
    return " ".join(node.get_text().split())


def extract_title(soup: BeautifulSoup, url: str) -> str:
    """First ``h1`` text, else the document title, else the URL."""
    heading = soup.find("h1")
    if heading is not None:
        text = _clean_text(heading)
        if text:
            return text
    if soup.title is not None:
        text = _clean_text(soup.title)
        if text:
            return text
    return url


def select_content(soup: BeautifulSoup, selectors) -> Optional[Tag]:
    """Copy of the first node matched by ``selectors``, tried in order."""
    for selector in selectors:
        node = soup.select_one(selector)
        if node is not None:
            return copy.copy(node)
    return None


def _fix_images(root: Tag, page_url: str) -> None:
    for img in root.find_all("img"):
        source = next(
            (img.get(attr) for attr in LAZY_IMAGE_ATTRS if img.get(attr)),
            img.get("src"),
        )
        absolute = to_absolute(source, page_url)
        if absolute:
            img["src"] = absolute
        if "loading" in img.attrs:
            del img["loading"]


def _fix_links(root: Tag, page_url: str) -> None:
    for anchor in root.find_all("a", href=True):
        absolute = to_absolute(anchor["href"], page_url)
        if absolute:
            anchor["href"] = absolute


def sanitize_content(
    soup: BeautifulSoup, page_url: str, config: CrawlConfig
) -> Optional[Tag]:
    """Isolate and clean the main content of a parsed page.

    Returns None when no content selector matches. The parsed document
    itself is left untouched.
    """
    target = select_content(soup, config.content_selectors)
    if target is None:
        return None

    doomed = target.find_all(list(STRIPPED_TAGS))
    for selector in config.exclude_selectors:
        doomed.extend(target.select(selector))
    for node in doomed:
        # nested matches go away with their ancestor
        if not node.decomposed:
            node.decompose()

    _fix_images(target, page_url)
    _fix_links(target, page_url)
    return target


def collect_stylesheets(soup: BeautifulSoup, page_url: str) -> List[str]:
    """Absolute URLs of the page's stylesheets, in document order."""
    styles: Dict[str, None] = {}
    for link in soup.select("link[rel~=stylesheet][href]"):
        href = to_absolute(link.get("href"), page_url)
        if href:
            styles.setdefault(href, None)
    return list(styles)


def parse_page(html: str, url: str, config: CrawlConfig) -> PageResult:
    """Turn a page's HTML into a PageResult.

    Raises:
        SanitizeError: If none of the content selectors match.
    """
    soup = BeautifulSoup(html, "lxml")
    title = extract_title(soup, url)
    content = sanitize_content(soup, url, config)
    if content is None:
        raise SanitizeError(f"No main content found on {url}", url=url)
    return PageResult(
        title=title,
        url=url,
        html=str(content),
        stylesheets=collect_stylesheets(soup, url),
    )


class PageFetcher:
    """Fetches pages with retry and converts them to PageResults."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: CrawlConfig,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.config = config
        self._sleep = sleep

    async def fetch_html(self, url: str) -> str:
        """GET ``url``, retrying HTTP and network errors with linear backoff.

        Raises:
            FetchError: After the last attempt failed.
        """
        attempts = max(1, self.config.retry_attempts)
        last_error: Optional[httpx.HTTPError] = None

        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.get(url)
                response.raise_for_status()
                return response.text
            except httpx.HTTPError as exc:
                last_error = exc
                LOGGER.debug(
                    "Attempt %d/%d for %s failed: %s", attempt, attempts, url, exc
                )
                if attempt < attempts:
                    await self._sleep(self.config.retry_backoff * attempt)

        raise FetchError(f"Failed to fetch {url}: {last_error}", url=url) from last_error

    async def fetch(self, url: str) -> PageResult:
        html = await self.fetch_html(url)
        return parse_page(html, url, self.config)
