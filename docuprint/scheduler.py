"""Bounded-concurrency crawl over the discovered links."""

from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from .config import CrawlConfig
from .document import LinkEntry, PageResult
from .messages import ProgressEvent

LOGGER = logging.getLogger(__name__)

FAILED_TITLE = "Fetch failed"

ProgressCallback = Callable[[ProgressEvent], None]


class Fetcher(Protocol):
    async def fetch(self, url: str) -> PageResult: ...


class CrawlStatus(str, Enum):
    idle = "idle"
    running = "running"
    cancelling = "cancelling"


class CrawlState:
    """Lifecycle of the scheduler: idle, running, or cancelling."""

    def __init__(self) -> None:
        self.status = CrawlStatus.idle

    @property
    def cancel_requested(self) -> bool:
        return self.status is CrawlStatus.cancelling

    def begin(self) -> bool:
        """Enter RUNNING; False when a crawl is already in progress."""
        if self.status is not CrawlStatus.idle:
            return False
        self.status = CrawlStatus.running
        return True

    def cancel(self) -> bool:
        """Request cancellation; False when nothing is running."""
        if self.status is CrawlStatus.idle:
            return False
        self.status = CrawlStatus.cancelling
        return True

    def finish(self) -> None:
        self.status = CrawlStatus.idle


@dataclass
class CrawlOutcome:
    """Pages in link order plus the union of their stylesheets."""

    pages: List[Optional[PageResult]] = field(default_factory=list)
    stylesheets: List[str] = field(default_factory=list)
    cancelled: bool = False


def failed_page(url: str, error: str) -> PageResult:
    """Placeholder chapter for a page that could not be fetched."""
    marker = html.escape(url)
    return PageResult(
        title=FAILED_TITLE,
        url=url,
        html=f'<div class="docuprint-error">[Error: failed to fetch this page - {marker}]</div>',
        stylesheets=[],
        error=error,
    )


class CrawlScheduler:
    """Runs a fixed pool of workers over a shared cursor.

    Each worker claims the next unclaimed link, fetches it, stores the
    result at the link's index and then pauses ``config.delay`` seconds
    before claiming again. A failed page becomes a placeholder; it never
    stops the crawl. Cancellation is checked before every claim.
    """

    def __init__(
        self,
        config: CrawlConfig,
        *,
        on_progress: Optional[ProgressCallback] = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.state = CrawlState()
        self._on_progress = on_progress
        self._sleep = sleep

    def begin(self) -> bool:
        return self.state.begin()

    def cancel(self) -> bool:
        return self.state.cancel()

    def finish(self) -> None:
        self.state.finish()

    def _emit(self, current: int, total: int, note: str) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(ProgressEvent(current=current, total=total, note=note))
        except Exception as exc:  # listener may be gone
            LOGGER.debug("Progress callback failed at %d/%d: %s", current, total, exc)

    async def run(self, entries: Sequence[LinkEntry], fetcher: Fetcher) -> CrawlOutcome:
        """Fetch every entry and return the results aligned with ``entries``."""
        total = len(entries)
        pages: List[Optional[PageResult]] = [None] * total
        styles: Dict[str, None] = {}
        cursor = 0

        def claim() -> Optional[int]:
            nonlocal cursor
            if self.state.cancel_requested or cursor >= total:
                return None
            index = cursor
            cursor += 1
            return index

        async def worker(worker_id: int) -> None:
            while True:
                index = claim()
                if index is None:
                    return
                url = entries[index].url
                try:
                    page = await fetcher.fetch(url)
                except Exception as exc:
                    LOGGER.warning("Skipping %s: %s", url, exc)
                    pages[index] = failed_page(url, str(exc))
                    self._emit(index + 1, total, f"Skipped failed page: {url}")
                else:
                    pages[index] = page
                    for href in page.stylesheets:
                        styles.setdefault(href, None)
                    LOGGER.debug("Worker %d fetched %s (%d/%d)", worker_id, url, index + 1, total)
                    self._emit(index + 1, total, f'Processing "{page.title}"...')
                await self._sleep(self.config.delay)

        pool_size = min(max(1, self.config.concurrency), total)
        if pool_size:
            await asyncio.gather(*(worker(i) for i in range(pool_size)))

        cancelled = self.state.cancel_requested
        if cancelled:
            LOGGER.info("Crawl cancelled after %d of %d claim(s)", cursor, total)

        return CrawlOutcome(
            pages=pages,
            stylesheets=_ordered_union(pages, styles),
            cancelled=cancelled,
        )


def _ordered_union(
    pages: Sequence[Optional[PageResult]], styles: Dict[str, None]
) -> List[str]:
    """Stylesheets from ``styles`` ordered by the first page that links them."""
    ordered: Dict[str, None] = {}
    for page in pages:
        if page is None:
            continue
        for href in page.stylesheets:
            if href in styles:
                ordered.setdefault(href, None)
    return list(ordered)
