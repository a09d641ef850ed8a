"""Assemble crawled pages into one printable HTML document."""

from __future__ import annotations

import html
import logging
import re
import webbrowser
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .document import LinkEntry, PageResult, PreparedPage

LOGGER = logging.getLogger(__name__)

_SLUG_SEPARATORS = re.compile("[^a-z0-9\u4e00-\u9fa5]+")

DEFAULT_SITE_TITLE = "Documentation"

PRINT_STYLES = """
    body {
      margin: 0 auto;
      padding: 24px;
      max-width: 1080px;
      background: #f9fafb;
      color: #0f172a;
      font-family: "Noto Serif", "Segoe UI", system-ui, -apple-system, sans-serif;
      line-height: 1.6;
    }
    a { color: #0f172a; }
    h1, h2, h3 { color: #0f172a; }
    .cover { padding: 80px 0 40px; text-align: center; }
    .cover h1 { font-size: 36px; margin: 0 0 12px; }
    .cover p { margin: 0; color: #475569; }
    .toc-container { margin: 40px 0; }
    .toc-container ul { list-style: none; padding-left: 0; margin: 0; }
    .toc-container li { margin: 6px 0; }
    .toc-container ul ul { margin-left: 12px; border-left: 1px solid #e2e8f0; padding-left: 12px; }
    .toc-container a { text-decoration: none; }
    .chapter-wrapper { margin: 60px 0; }
    .chapter-wrapper > h1 { border-bottom: 1px solid #e2e8f0; padding-bottom: 8px; }
    pre, code { font-family: "JetBrains Mono", Monaco, Consolas, monospace; }
    img { max-width: 100%; height: auto; }
    .docuprint-error { padding: 12px; border: 1px solid #fecdd3; background: #fff4f2; color: #9f1239; }
    @media print {
      @page { size: A4; margin: 20mm; }
      body { background: white; color: #000; max-width: none; width: auto; margin: 0 auto; }
      a { text-decoration: none; color: #000; }
      .toc-container { page-break-after: always; }
      .chapter-wrapper { page-break-after: always; }
      h1, h2, h3, h4 { page-break-after: avoid; }
      pre, img, blockquote { page-break-inside: avoid; }
    }
"""

# Print once every image has loaded or failed, then let layout settle
PRINT_SCRIPT = """
    (function () {
      function waitImages() {
        var pending = Array.prototype.map.call(document.images, function (img) {
          if (img.complete && img.naturalWidth) return Promise.resolve();
          return new Promise(function (resolve) {
            img.addEventListener("load", resolve, { once: true });
            img.addEventListener("error", resolve, { once: true });
          });
        });
        return Promise.all(pending);
      }
      window.addEventListener("load", function () {
        waitImages().then(function () {
          setTimeout(function () { window.print(); }, 1000);
        });
      });
    })();
"""


class DeliveryError(RuntimeError):
    """The document was saved but no browser window could be opened for it."""

    def __init__(self, message: str, path: Path):
        self.path = path
        super().__init__(message)


def slugify(text: Optional[str], fallback: str) -> str:
    """Lowercase ``text`` and join its alphanumeric/CJK runs with hyphens."""
    if not text:
        return fallback
    slug = _SLUG_SEPARATORS.sub("-", str(text).strip().lower()).strip("-")
    return slug or fallback


def prepare_pages(
    pages: Sequence[PageResult], entries: Sequence[LinkEntry]
) -> List[PreparedPage]:
    """Attach unique anchors and TOC levels to crawled pages.

    The first page with a given slug keeps it; later ones get ``-2``,
    ``-3`` and so on, in crawl order.
    """
    counts: Dict[str, int] = {}
    used: Set[str] = set()
    prepared: List[PreparedPage] = []

    for index, page in enumerate(pages):
        base = slugify(page.title, f"chapter-{index + 1}")
        count = counts.get(base, 0) + 1
        anchor = base if count == 1 else f"{base}-{count}"
        while anchor in used:
            count += 1
            anchor = f"{base}-{count}"
        counts[base] = count
        used.add(anchor)

        level = entries[index].level if index < len(entries) else 1
        prepared.append(
            PreparedPage(
                title=page.title,
                url=page.url,
                html=page.html,
                anchor_id=anchor,
                level=level or 1,
                stylesheets=list(page.stylesheets),
                error=page.error,
            )
        )
    return prepared


def _page_label(page: PreparedPage) -> str:
    return html.escape(page.title or page.url)


def build_stylesheet_links(stylesheets: Iterable[str]) -> str:
    return "\n".join(
        f'<link rel="stylesheet" href="{html.escape(href, quote=True)}">'
        for href in stylesheets
    )


def build_toc(pages: Sequence[PreparedPage]) -> str:
    """Nested ``<ul>`` lists following the page levels."""
    current = 1
    parts = ['<ul class="toc-list level-1">']

    for page in pages:
        level = max(1, page.level or 1)
        while current < level:
            current += 1
            parts.append(f'<ul class="level-{current}">')
        while current > level:
            parts.append("</ul>")
            current -= 1
        parts.append(f'<li><a href="#{page.anchor_id}">{_page_label(page)}</a></li>')

    while current > 1:
        parts.append("</ul>")
        current -= 1
    parts.append("</ul>")
    return "".join(parts)


def build_chapters(pages: Sequence[PreparedPage]) -> str:
    return "\n".join(
        f'<section id="{page.anchor_id}" class="chapter-wrapper">\n'
        f"  <h1>{_page_label(page)}</h1>\n"
        f"  {page.html}\n"
        f"</section>"
        for page in pages
    )


def build_print_document(
    pages: Sequence[PreparedPage],
    stylesheets: Iterable[str],
    site_title: Optional[str] = None,
    *,
    generated_on: Optional[date] = None,
) -> str:
    """Render the complete printable document."""
    title = html.escape(site_title or DEFAULT_SITE_TITLE)
    today = (generated_on or date.today()).isoformat()

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title} - DocuPrint</title>
  {build_stylesheet_links(stylesheets)}
  <style>{PRINT_STYLES}  </style>
</head>
<body>
  <section class="cover">
    <h1>{title}</h1>
    <p>Generated on {today}</p>
  </section>
  <section class="toc-container">
    <h1>Table of Contents</h1>
    {build_toc(pages)}
  </section>
  <main class="chapters">
{build_chapters(pages)}
  </main>
  <script>{PRINT_SCRIPT}  </script>
</body>
</html>
"""


def deliver_document(
    document: str, output: Path, *, open_browser: bool = True
) -> Path:
    """Save the document and open it in a new browser tab.

    The file is written before the browser is asked to open it, so a
    blocked or missing browser never loses the output.

    Raises:
        DeliveryError: If no browser window could be opened.
    """
    path = Path(output).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document, encoding="utf-8")
    LOGGER.info("Wrote %s", path)

    if not open_browser:
        return path

    try:
        opened = webbrowser.open(path.as_uri(), new=2)
    except webbrowser.Error as exc:
        raise DeliveryError(f"Could not open a browser window: {exc}", path) from exc
    if not opened:
        raise DeliveryError("Could not open a browser window", path)
    return path
