"""Data structures passed between the crawl stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True, slots=True)
class LinkEntry:
    """A navigation link discovered in the sidebar."""

    url: str
    title: str
    level: int = 1


@dataclass(slots=True)
class PageResult:
    """Fetched and sanitized content of one page (or its failure placeholder)."""

    title: str
    url: str
    html: str
    stylesheets: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(slots=True)
class PreparedPage:
    """A PageResult with its chapter anchor and TOC level assigned."""

    title: str
    url: str
    html: str
    anchor_id: str
    level: int = 1
    stylesheets: List[str] = field(default_factory=list)
    error: Optional[str] = None
