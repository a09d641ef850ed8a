"""Turn a documentation website into a single printable HTML document.

DocuPrint reads the sidebar of a documentation page, fetches every page it
links to, keeps the main content of each and stitches them together behind
a cover page and a nested table of contents. The result opens in a browser
tab that starts the print dialog once its images have loaded.

Example usage:

    from docuprint import print_site, print_site_async

    # Crawl, save and open in the browser
    response = print_site("https://docs.example.com/guide/intro")
    print(response.ok, response.output)

    # Async, with progress reporting and no browser
    response = await print_site_async(
        "https://docs.example.com/guide/intro",
        output="guide.html",
        open_browser=False,
        observer=lambda event: print(event.to_dict()),
    )

    # Authenticated documentation portal
    from docuprint.auth import AuthConfig
    auth = AuthConfig(storage_state="./auth_state.json")
    response = await print_site_async("https://internal.example.com/docs", auth=auth)
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Union

from .assembler import DeliveryError, build_print_document, prepare_pages, slugify
from .auth import AuthConfig, AuthInput, resolve_auth
from .config import CrawlConfig, SiteOverride, build_site_table, config_for_url
from .discover import DiscoveryResult, discover_links_async, extract_links
from .document import LinkEntry, PageResult, PreparedPage
from .fetcher import FetchError, PageError, PageFetcher, SanitizeError
from .messages import FailureReason, StartResponse, decode_message
from .pipeline import Observer, PrintSession
from .scheduler import CrawlOutcome, CrawlScheduler

__all__ = [
    # Data types
    "LinkEntry",
    "PageResult",
    "PreparedPage",
    "DiscoveryResult",
    "CrawlOutcome",
    # Config
    "CrawlConfig",
    "SiteOverride",
    "config_for_url",
    "build_site_table",
    # Auth
    "AuthConfig",
    "resolve_auth",
    # Stages
    "discover_links_async",
    "extract_links",
    "PageFetcher",
    "CrawlScheduler",
    "prepare_pages",
    "build_print_document",
    "slugify",
    # Errors
    "PageError",
    "FetchError",
    "SanitizeError",
    "DeliveryError",
    # Session
    "PrintSession",
    "StartResponse",
    "FailureReason",
    "decode_message",
    "print_site",
    "print_site_async",
    # MCP Server
    "mcp",
]


def get_mcp_server():
    """Get the MCP server instance (lazy import to avoid dependency if not needed)."""
    from .mcp_server import mcp

    return mcp


# Lazy import for mcp to avoid requiring fastmcp if not used
def __getattr__(name):
    if name == "mcp":
        from .mcp_server import mcp

        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


async def print_site_async(
    url: str,
    *,
    output: Optional[Union[str, Path]] = None,
    config: Optional[CrawlConfig] = None,
    auth: Optional[AuthInput] = None,
    site_config: Optional[str] = None,
    open_browser: bool = True,
    observer: Optional[Observer] = None,
) -> StartResponse:
    """
    Crawl the documentation site around ``url`` into one printable file.

    Args:
        url: A page of the documentation site; its sidebar drives the crawl.
        output: Where to save the HTML document. Defaults to a file named
            after the URL in ``DOCUPRINT_OUTPUT_DIR`` or the working directory.
        config: Base CrawlConfig; site table entries are applied on top.
        auth: Optional AuthConfig (or dict) with ambient credentials.
        site_config: Optional JSON file with extra site table entries.
        open_browser: Open the saved document in a new browser tab.
        observer: Callback receiving progress, ready and error events.

    Returns:
        StartResponse with ``ok`` and, on failure, a ``reason``.

    Raises:
        AuthConfigError: If the credentials cannot be used.
    """
    session = PrintSession(
        observer=observer,
        auth=resolve_auth(auth),
        site_table=build_site_table(site_config),
        base_config=config,
        open_browser=open_browser,
    )
    return await session.start(url, output=Path(output) if output else None)


def print_site(
    url: str,
    *,
    output: Optional[Union[str, Path]] = None,
    config: Optional[CrawlConfig] = None,
    auth: Optional[AuthInput] = None,
    site_config: Optional[str] = None,
    open_browser: bool = True,
    observer: Optional[Observer] = None,
) -> StartResponse:
    """Synchronous wrapper for print_site_async."""
    return asyncio.run(
        print_site_async(
            url,
            output=output,
            config=config,
            auth=auth,
            site_config=site_config,
            open_browser=open_browser,
            observer=observer,
        )
    )
