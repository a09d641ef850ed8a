"""MCP Server for DocuPrint.

Provides tools for:
- Printing a documentation site into one HTML document
- Cancelling the crawl in progress

Supports both STDIO and HTTP transports.

Usage:
    # STDIO (for desktop MCP clients)
    python -m docuprint.mcp_server

    # HTTP (for remote access)
    python -m docuprint.mcp_server --transport http --port 8000

    # Or via FastMCP CLI
    fastmcp run docuprint/mcp_server.py:mcp --transport http --port 8000

Environment Variables:
    DOCUPRINT_OUTPUT_DIR: Directory for generated documents (default: cwd)
    DOCUPRINT_SITE_CONFIG: JSON file with extra site entries
    CRAWL_AUTH_STORAGE_STATE: Playwright storage_state for logged-in sites
"""

from __future__ import annotations

import argparse
import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP

from .auth import AuthConfigError, load_auth_from_env, resolve_auth
from .config import SiteOverride, build_site_table
from .messages import ErrorEvent, HostEvent, ProgressEvent, ReadyEvent
from .pipeline import PrintSession

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
LOGGER = logging.getLogger(__name__)

# Load .env before reading environment variables
load_dotenv()

# Create the MCP server
mcp = FastMCP(
    name="DocuPrint",
    instructions="""
    Turns a documentation website into one printable HTML document.

    - print_docs: read the sidebar of a docs page, fetch every linked page,
      and save a single document with a cover and a table of contents
    - cancel_print: stop the crawl in progress

    Only one crawl runs at a time; a second print_docs call while one is
    running returns reason "busy".
    """,
)

# The session currently running a crawl, if any
_active: Optional[PrintSession] = None


class _EventLog:
    """Collects host events for the tool's JSON summary."""

    def __init__(self) -> None:
        self.counts: Counter = Counter()
        self.errors: List[str] = []
        self.skipped: List[str] = []
        self.last_progress: Optional[Dict[str, Any]] = None

    def __call__(self, event: HostEvent) -> None:
        self.counts[type(event).__name__] += 1
        if isinstance(event, ProgressEvent):
            self.last_progress = {"current": event.current, "total": event.total}
            if event.note.startswith("Skipped failed page"):
                self.skipped.append(event.note)
        elif isinstance(event, ErrorEvent):
            self.errors.append(event.error)
        elif isinstance(event, ReadyEvent):
            LOGGER.info("Document ready: %s", event.output)

    def summary(self) -> Dict[str, Any]:
        return {
            "progress": self.counts.get("ProgressEvent", 0),
            "last_progress": self.last_progress,
            "skipped_pages": self.skipped,
            "errors": self.errors,
        }


@mcp.tool
async def print_docs(
    url: str,
    output: Optional[str] = None,
    concurrency: Optional[int] = None,
    delay: Optional[float] = None,
    storage_state: Optional[str] = None,
    open_browser: bool = False,
):
    """
    Print a documentation site into one HTML document.

    Args:
        url: A page of the documentation site; its sidebar drives the crawl
        output: Path of the HTML file to write (default: derived from the URL)
        concurrency: Parallel page fetches (default: 5, or the site's setting)
        delay: Seconds each worker waits between pages (default: 0.5)
        storage_state: Path to Playwright storage_state JSON for logged-in sites
        open_browser: Also open the document in a browser tab (default: false)

    Returns:
        JSON with "ok", "reason" on failure, "output" and an "events" summary.

    Examples:
        print_docs(url="https://docs.example.com/guide/intro")
        print_docs(url="https://docs.example.com", output="/tmp/guide.html", delay=1.0)
    """
    global _active

    if _active is not None and _active.running:
        return json.dumps({"ok": False, "reason": "busy"}, ensure_ascii=False)

    try:
        auth = (
            resolve_auth({"storage_state": storage_state})
            if storage_state
            else load_auth_from_env()
        )
        site_table = build_site_table()
    except (AuthConfigError, FileNotFoundError, ValueError) as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return json.dumps({"ok": False, "error": str(exc)}, ensure_ascii=False)

    overrides = None
    if concurrency is not None or delay is not None:
        overrides = SiteOverride(concurrency=concurrency, delay=delay)

    events = _EventLog()
    session = PrintSession(
        observer=events,
        auth=auth,
        site_table=site_table,
        open_browser=open_browser,
        overrides=overrides,
    )
    _active = session

    LOGGER.info("Printing documentation from %s", url)
    response = await session.start(url, output=Path(output) if output else None)

    result = response.to_dict()
    result["events"] = events.summary()
    return json.dumps(result, indent=2, ensure_ascii=False)


@mcp.tool
async def cancel_print():
    """
    Cancel the documentation crawl in progress.

    Pages already fetched are discarded and no document is written.

    Returns:
        JSON with "ok" and whether a crawl was running.
    """
    if _active is None or not _active.running:
        return json.dumps({"ok": True, "running": False}, ensure_ascii=False)
    response = _active.cancel()
    result = response.to_dict()
    result["running"] = True
    return json.dumps(result, ensure_ascii=False)


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for running the MCP server."""
    parser = argparse.ArgumentParser(
        description="Run the DocuPrint MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
    DOCUPRINT_OUTPUT_DIR      Directory for generated documents
    DOCUPRINT_SITE_CONFIG     JSON file with extra site entries
    CRAWL_AUTH_STORAGE_STATE  Playwright storage_state for logged-in sites

Examples:
    # STDIO transport (default)
    python -m docuprint.mcp_server

    # HTTP transport (for remote access)
    python -m docuprint.mcp_server --transport http --port 8000

    # Custom host/port
    python -m docuprint.mcp_server --transport http --host 0.0.0.0 --port 9000
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )

    args = parser.parse_args()

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
