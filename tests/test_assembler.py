"""Tests for docuprint.assembler module."""

from __future__ import annotations

import re
import webbrowser
from datetime import date
from unittest.mock import patch

import pytest
from bs4 import BeautifulSoup

from docuprint.assembler import (
    DeliveryError,
    build_print_document,
    build_toc,
    deliver_document,
    prepare_pages,
    slugify,
)
from docuprint.document import LinkEntry, PageResult, PreparedPage


def _page(title: str, index: int = 0, stylesheets=None) -> PageResult:
    return PageResult(
        title=title,
        url=f"https://docs.example.com/p{index}",
        html=f"<main><p>{title} body</p></main>",
        stylesheets=list(stylesheets or []),
    )


def _prepared(levels) -> list:
    return [
        PreparedPage(
            title=f"Page {i}",
            url=f"https://docs.example.com/p{i}",
            html="<main></main>",
            anchor_id=f"page-{i}",
            level=level,
        )
        for i, level in enumerate(levels)
    ]


class TestSlugify:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Intro", "intro"),
            ("Getting Started!", "getting-started"),
            ("  API / Reference (v2)  ", "api-reference-v2"),
            ("快速开始 Guide", "快速开始-guide"),
            ("--Already--slugged--", "already-slugged"),
        ],
    )
    def test_slugs(self, text, expected):
        assert slugify(text, "chapter-1") == expected

    @pytest.mark.parametrize("text", [None, "", "   ", "!!!"])
    def test_fallback(self, text):
        assert slugify(text, "chapter-4") == "chapter-4"


class TestPreparePages:
    def test_duplicate_titles_get_suffixes(self):
        pages = [_page("Intro", 0), _page("Intro", 1), _page("Intro", 2)]
        entries = [LinkEntry(url=p.url, title=p.title) for p in pages]

        prepared = prepare_pages(pages, entries)

        assert [p.anchor_id for p in prepared] == ["intro", "intro-2", "intro-3"]

    def test_titles_with_same_slug_get_suffixes(self):
        pages = [_page("Intro", 0), _page("Intro!", 1), _page("intro", 2)]
        prepared = prepare_pages(pages, [])

        assert [p.anchor_id for p in prepared] == ["intro", "intro-2", "intro-3"]

    def test_suffix_does_not_collide_with_real_title(self):
        pages = [_page("Intro-2", 0), _page("Intro", 1), _page("Intro", 2)]
        prepared = prepare_pages(pages, [])

        anchors = [p.anchor_id for p in prepared]
        assert anchors[0] == "intro-2"
        assert anchors[1] == "intro"
        assert len(set(anchors)) == 3

    def test_untitled_pages_use_position(self):
        pages = [_page("Intro", 0), _page("???", 1)]
        prepared = prepare_pages(pages, [])
        assert prepared[1].anchor_id == "chapter-2"

    def test_levels_copied_from_entries(self):
        pages = [_page("A", 0), _page("B", 1)]
        entries = [LinkEntry(url=pages[0].url, title="A", level=1), LinkEntry(url=pages[1].url, title="B", level=3)]

        prepared = prepare_pages(pages, entries)

        assert [p.level for p in prepared] == [1, 3]
        assert prepared[1].html == pages[1].html


class TestBuildToc:
    def test_nesting_follows_levels(self):
        toc = build_toc(_prepared([1, 2, 2, 3, 1]))

        assert toc.count("<ul") == toc.count("</ul>")
        assert toc.count('<ul class="level-2">') == 1
        assert toc.count('<ul class="level-3">') == 1
        assert toc.count("<li>") == 5

        # depth at each list item: 1, 2, 2, 3, 1
        depths = []
        depth = 0
        for token in re.findall(r"<ul|</ul>|<li>", toc):
            if token == "<ul":
                depth += 1
            elif token == "</ul>":
                depth -= 1
            else:
                depths.append(depth)
        assert depths == [1, 2, 2, 3, 1]

    def test_levels_clamped_to_one(self):
        toc = build_toc(_prepared([0, -1]))
        assert toc.count("<ul") == 1

    def test_jump_opens_every_level(self):
        toc = build_toc(_prepared([1, 4]))
        assert '<ul class="level-2"><ul class="level-3"><ul class="level-4">' in toc
        assert toc.endswith("</ul></ul></ul></ul>")

    def test_titles_escaped(self):
        pages = _prepared([1])
        pages[0].title = "<b>Bold</b> & more"
        toc = build_toc(pages)
        assert "&lt;b&gt;Bold&lt;/b&gt; &amp; more" in toc
        assert 'href="#page-0"' in toc


class TestBuildPrintDocument:
    def test_zero_pages_renders_shell(self):
        document = build_print_document([], [], None, generated_on=date(2024, 5, 1))
        soup = BeautifulSoup(document, "lxml")

        assert soup.select(".chapter-wrapper") == []
        assert soup.select_one(".cover h1").get_text() == "Documentation"
        assert "Generated on 2024-05-01" in document
        assert soup.select_one(".toc-container h1").get_text() == "Table of Contents"
        assert soup.find("script") is not None

    def test_end_to_end_three_pages(self):
        results = [
            _page("Intro", 0, ["https://docs.example.com/a.css"]),
            _page("Install", 1, ["https://docs.example.com/a.css", "https://docs.example.com/b.css"]),
            _page("Usage", 2, ["https://cdn.example.com/c.css"]),
        ]
        entries = [
            LinkEntry(url=r.url, title=r.title, level=level)
            for r, level in zip(results, [1, 2, 1])
        ]
        stylesheets = [
            "https://docs.example.com/a.css",
            "https://docs.example.com/b.css",
            "https://cdn.example.com/c.css",
        ]

        document = build_print_document(
            prepare_pages(results, entries), stylesheets, "Example Docs"
        )
        soup = BeautifulSoup(document, "lxml")

        sections = soup.select("section.chapter-wrapper")
        assert [s["id"] for s in sections] == ["intro", "install", "usage"]
        assert [s.h1.get_text() for s in sections] == ["Intro", "Install", "Usage"]
        assert soup.select(".toc-container ul.level-2 li a")[0]["href"] == "#install"
        assert len(soup.select(".toc-container ul ul ul")) == 0

        links = [link["href"] for link in soup.select("head link[rel=stylesheet]")]
        assert links == stylesheets
        assert soup.title.get_text() == "Example Docs - DocuPrint"

    def test_print_styles_present(self):
        document = build_print_document([], [], "Docs")
        assert "@media print" in document
        assert "page-break-after: always" in document
        assert "window.print()" in document


class TestDeliverDocument:
    def test_writes_then_opens(self, tmp_path):
        target = tmp_path / "out" / "docs.html"
        with patch("docuprint.assembler.webbrowser.open", return_value=True) as mock_open:
            path = deliver_document("<html></html>", target)

        assert path.read_text(encoding="utf-8") == "<html></html>"
        mock_open.assert_called_once_with(path.as_uri(), new=2)

    def test_no_open(self, tmp_path):
        with patch("docuprint.assembler.webbrowser.open") as mock_open:
            deliver_document("<html></html>", tmp_path / "docs.html", open_browser=False)
        mock_open.assert_not_called()

    def test_blocked_browser_keeps_file(self, tmp_path):
        target = tmp_path / "docs.html"
        with patch("docuprint.assembler.webbrowser.open", return_value=False):
            with pytest.raises(DeliveryError) as info:
                deliver_document("<html>kept</html>", target)

        assert info.value.path == target.resolve()
        assert target.read_text(encoding="utf-8") == "<html>kept</html>"

    def test_browser_error_wrapped(self, tmp_path):
        with patch(
            "docuprint.assembler.webbrowser.open",
            side_effect=webbrowser.Error("could not locate runnable browser"),
        ):
            with pytest.raises(DeliveryError, match="runnable browser"):
                deliver_document("<html></html>", tmp_path / "docs.html")
