"""Crawl session: discovery, crawl and assembly behind the host contract."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, Mapping, Optional, Union

from .assembler import DeliveryError, build_print_document, deliver_document, prepare_pages
from .auth import AuthConfig
from .config import CrawlConfig, SiteOverride, config_for_url
from .discover import DiscoveryResult, discover_links_async
from .fetcher import PageFetcher, build_http_client
from .messages import (
    CancelRequest,
    ErrorEvent,
    FailureReason,
    HostEvent,
    Message,
    MessageError,
    ProgressEvent,
    ReadyEvent,
    StartRequest,
    StartResponse,
    decode_message,
)
from .scheduler import CrawlScheduler, CrawlStatus
from .urls import url_to_filename

LOGGER = logging.getLogger(__name__)

OUTPUT_DIR_ENV = "DOCUPRINT_OUTPUT_DIR"

Observer = Callable[[HostEvent], None]
Discoverer = Callable[..., Awaitable[DiscoveryResult]]


def default_output_path(url: str) -> Path:
    """``<DOCUPRINT_OUTPUT_DIR or cwd>/<host>_<path>.html``."""
    out_dir = Path(os.environ.get(OUTPUT_DIR_ENV) or ".")
    return out_dir / f"{url_to_filename(url)}.html"


class PrintSession:
    """Owns one crawl at a time and reports to an observer.

    ``start`` runs discovery, the crawl and assembly and returns the final
    status. ``cancel`` only flips the scheduler state; the running crawl
    notices it at its next claim.
    """

    def __init__(
        self,
        *,
        observer: Optional[Observer] = None,
        auth: Optional[AuthConfig] = None,
        site_table: Optional[Mapping[str, SiteOverride]] = None,
        base_config: Optional[CrawlConfig] = None,
        open_browser: bool = True,
        overrides: Optional[SiteOverride] = None,
        discoverer: Discoverer = discover_links_async,
    ) -> None:
        self.observer = observer
        self.auth = auth
        self.site_table = site_table
        self.base_config = base_config or CrawlConfig()
        self.open_browser = open_browser
        self.overrides = overrides
        self._discover = discoverer
        self.scheduler = CrawlScheduler(self.base_config, on_progress=self._notify)

    @property
    def running(self) -> bool:
        return self.scheduler.state.status is not CrawlStatus.idle

    def _notify(self, event: HostEvent) -> None:
        if self.observer is None:
            return
        try:
            self.observer(event)
        except Exception as exc:  # host may be gone
            LOGGER.debug("Observer failed for %s: %s", type(event).__name__, exc)

    def _fail(self, reason: FailureReason, error: str, output: Optional[str] = None) -> StartResponse:
        LOGGER.error(error)
        self._notify(ErrorEvent(error=error))
        return StartResponse(ok=False, reason=reason, output=output)

    def cancel(self) -> StartResponse:
        if self.scheduler.cancel():
            LOGGER.info("Cancellation requested")
        return StartResponse(ok=True)

    async def handle(self, message: Union[Message, Mapping]) -> StartResponse:
        """Dispatch a host request (decoded or raw)."""
        if not isinstance(message, (StartRequest, CancelRequest)):
            message = decode_message(message)
        if isinstance(message, StartRequest):
            output = Path(message.output) if message.output else None
            return await self.start(message.url, output=output)
        if isinstance(message, CancelRequest):
            return self.cancel()
        raise MessageError(f"{type(message).__name__} is not a host request")

    async def start(self, url: str, *, output: Optional[Path] = None) -> StartResponse:
        """Crawl the documentation site around ``url`` into one document."""
        if not self.scheduler.begin():
            LOGGER.warning("Crawl already running; rejecting %s", url)
            return StartResponse(ok=False, reason=FailureReason.busy)

        try:
            return await self._run(url, output)
        finally:
            self.scheduler.finish()

    async def _run(self, url: str, output: Optional[Path]) -> StartResponse:
        config = config_for_url(url, table=self.site_table, base=self.base_config)
        if self.overrides is not None:
            config = self.overrides.apply(config)
        self.scheduler.config = config

        self._notify(ProgressEvent(current=0, total=1, note="Collecting sidebar links..."))
        discovery = await self._discover(url, config, auth=self.auth)
        entries = discovery.entries
        if not entries:
            return self._fail(FailureReason.no_links, "No links to crawl were found")
        if self.scheduler.state.cancel_requested:
            return self._fail(FailureReason.cancelled, "Crawl cancelled")

        LOGGER.info(
            "Crawling %d page(s) from %s (concurrency=%d, delay=%.2fs)",
            len(entries),
            discovery.page_url,
            config.concurrency,
            config.delay,
        )
        async with build_http_client(config, self.auth) as client:
            fetcher = PageFetcher(client, config)
            outcome = await self.scheduler.run(entries, fetcher)

        if outcome.cancelled:
            return self._fail(FailureReason.cancelled, "Crawl cancelled")

        failed = sum(1 for page in outcome.pages if page is None or page.failed)
        LOGGER.info(
            "Crawl complete: %d page(s) (%d failed)", len(outcome.pages), failed
        )

        pages = prepare_pages(outcome.pages, entries)
        document = build_print_document(
            pages, outcome.stylesheets, discovery.site_title or None
        )
        target = output or default_output_path(discovery.page_url)
        try:
            path = deliver_document(document, target, open_browser=self.open_browser)
        except DeliveryError as exc:
            return self._fail(
                FailureReason.popup_blocked,
                f"{exc}. Allow pop-ups or open {exc.path} manually to print.",
                output=str(exc.path),
            )

        self._notify(ReadyEvent(output=str(path)))
        return StartResponse(ok=True, output=str(path))
