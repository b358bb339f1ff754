"""Boilerplate removal for newsletter HTML using trafilatura."""

from __future__ import annotations

import logging
from collections.abc import Callable

import trafilatura
from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

# (base_url, raw_html) -> extracted html, or None when nothing article-like was found
Extractor = Callable[[str, str], str | None]

# Never part of the readable body.
NON_CONTENT_TAGS = ("head", "script", "style", "title", "noscript")

TABLE_PARTS = ("caption", "thead", "tbody", "tfoot", "tr")
TABLE_CELLS = ("td", "th")

# A cell holding any of these is page layout rather than tabular data.
BLOCK_TAGS = (
    "article", "blockquote", "div", "dl", "h1", "h2", "h3", "h4", "h5", "h6",
    "ol", "p", "pre", "section", "table", "ul",
)


def extract_article(base_url: str, raw_html: str) -> str | None:
    """Extract the main content of an email body as a single ``<div>`` fragment.

    trafilatura returns a full ``<html><body>...</body></html>`` document; the
    body contents are re-wrapped in one ``<div>``, the container shape
    readability-style extractors produce. Layout tables around the article
    are unwrapped on the way.

    When trafilatura finds nothing (short bodies, bare fragments) the raw
    body is used instead, minus scripts and styles.
    """
    if not raw_html or not raw_html.strip():
        return None

    try:
        result = trafilatura.extract(
            raw_html,
            url=base_url,
            output_format="html",
            favor_recall=True,
            include_links=True,
            include_tables=True,
            include_comments=False,
        )
    except Exception as e:
        logger.warning("Trafilatura extraction failed: %s", e)
        result = None

    if not result:
        logger.debug("trafilatura found no content, falling back to the raw body")
        result = raw_html

    return _as_container(result)


def _as_container(document_html: str) -> str | None:
    soup = BeautifulSoup(document_html, "html.parser")
    for tag in soup.find_all(list(NON_CONTENT_TAGS)):
        if not tag.decomposed:
            tag.decompose()
    for table in soup.find_all("table"):
        if _is_layout_table(table):
            _unwrap_table(table)

    source = soup.body or soup
    container = soup.new_tag("div")
    for child in list(source.children):
        container.append(child.extract())

    if not container.get_text(strip=True) and container.find(True) is None:
        return None
    return str(container)


def _owned_by(tag: Tag, table: Tag) -> bool:
    return tag.find_parent("table") is table


def _is_layout_table(table: Tag) -> bool:
    """Single-cell tables and tables with block content in a cell hold layout."""
    cells = [c for c in table.find_all(list(TABLE_CELLS)) if _owned_by(c, table)]
    if len(cells) <= 1:
        return True
    return any(_owned_by(block, table) for block in table.find_all(list(BLOCK_TAGS)))


def _unwrap_table(table: Tag) -> None:
    """Replace the table with its cells, each promoted to a plain ``<div>``."""
    for part in table.find_all([*TABLE_PARTS, *TABLE_CELLS]):
        if not _owned_by(part, table):
            continue
        if part.name in TABLE_CELLS:
            part.name = "div"
            part.attrs = {}
        else:
            part.unwrap()
    table.unwrap()
