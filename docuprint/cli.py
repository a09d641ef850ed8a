"""Command-line interface for printing a documentation site."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shutil
import signal
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .auth import AuthConfigError
from .cli_auth import add_auth_args, build_cli_auth
from .cli_config import load_config
from .config import SiteOverride, build_site_table
from .messages import ErrorEvent, FailureReason, HostEvent, ProgressEvent, ReadyEvent
from .pipeline import PrintSession

# Configuration directory for global CLI usage
CONFIG_DIR = Path.home() / ".config" / "docuprint"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_POPUP_BLOCKED = 2
EXIT_CANCELLED = 130

_EXIT_CODES = {
    FailureReason.busy: EXIT_ERROR,
    FailureReason.no_links: EXIT_ERROR,
    FailureReason.popup_blocked: EXIT_POPUP_BLOCKED,
    FailureReason.cancelled: EXIT_CANCELLED,
}


def _load_config() -> None:
    load_config(
        config_dir=CONFIG_DIR,
        config_env_file=CONFIG_ENV_FILE,
        cwd=Path.cwd(),
        load_env=load_dotenv,
        copy_file=shutil.copy,
    )


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="docuprint",
        description="Turn a documentation site into one printable HTML document.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Crawl the sidebar of a docs page, save the document and open it
  docuprint https://docs.example.com/guide/intro

  # Save only, to a chosen file
  docuprint https://docs.example.com/guide/intro -o guide.html --no-open

  # Gentler crawl
  docuprint https://docs.example.com --concurrency 2 --delay 1.5

  # Logged-in documentation portal
  docuprint https://internal.example.com/docs --storage-state auth_state.json

  # Machine-readable progress
  docuprint https://docs.example.com --events --no-open

Exit codes:
  0    document written (and opened)
  1    error, or no sidebar links found
  2    document written but no browser window could be opened
  130  cancelled (Ctrl+C)
""",
    )
    parser.add_argument("url", help="A page of the documentation site")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Output HTML file (default: <DOCUPRINT_OUTPUT_DIR>/<host>_<path>.html)",
    )
    parser.add_argument(
        "--no-open",
        action="store_true",
        help="Only save the document, do not open it in a browser",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Parallel page fetches (default: 5, or the site's setting)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds each worker waits between pages (default: 0.5)",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Maximum number of pages to include (default: 200)",
    )
    parser.add_argument(
        "--site-config",
        type=str,
        default=None,
        help="JSON file with extra site entries (default: $DOCUPRINT_SITE_CONFIG)",
    )
    add_auth_args(parser)
    parser.add_argument(
        "--events",
        action="store_true",
        help="Print progress, ready and error events as JSON lines on stdout",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def _build_overrides(args: argparse.Namespace) -> Optional[SiteOverride]:
    if args.concurrency is None and args.delay is None and args.max_pages is None:
        return None
    return SiteOverride(
        concurrency=args.concurrency,
        delay=args.delay,
        max_pages=args.max_pages,
    )


def _make_observer(json_events: bool):
    def observe(event: HostEvent) -> None:
        if json_events:
            print(json.dumps(event.to_dict(), ensure_ascii=False), flush=True)
            return
        if isinstance(event, ProgressEvent):
            logging.info("[%d/%d] %s", event.current, event.total, event.note)
        elif isinstance(event, ReadyEvent):
            logging.info("Document ready: %s", event.output)
        elif isinstance(event, ErrorEvent):
            logging.debug("Error event: %s", event.error)

    return observe


def _install_sigint(session: PrintSession) -> bool:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.cancel)
    except (NotImplementedError, RuntimeError):
        # Windows event loops: Ctrl+C falls through to KeyboardInterrupt
        return False
    return True


async def _run_async(args: argparse.Namespace) -> int:
    """Main async entry point."""
    auth = build_cli_auth(args)
    session = PrintSession(
        observer=_make_observer(args.events),
        auth=auth,
        site_table=build_site_table(args.site_config),
        open_browser=not args.no_open,
        overrides=_build_overrides(args),
    )

    logging.info("Printing documentation from %s", args.url)
    installed = _install_sigint(session)
    try:
        response = await session.start(
            args.url, output=Path(args.output) if args.output else None
        )
    finally:
        if installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

    if response.ok:
        return EXIT_OK
    if response.reason is FailureReason.popup_blocked:
        logging.warning("Saved to %s; open it in a browser to print", response.output)
    return _EXIT_CODES.get(response.reason, EXIT_ERROR)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the docuprint command."""
    _load_config()
    args = _parse_args(argv)
    _setup_logging(args.verbose)

    try:
        return asyncio.run(_run_async(args))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return EXIT_CANCELLED
    except (AuthConfigError, FileNotFoundError, ValueError) as exc:
        logging.error("Configuration error: %s", exc)
        return EXIT_ERROR
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
