"""HTML sanitizer: extract the article, drop unwanted nodes, prepend a title heading."""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PageElement, PreformattedString

from newsletter_archiver.core.extractor import Extractor, extract_article

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://localhost"

MINIMAL_FRAGMENT = "<div></div>"

# Dropped together with everything below them.
DISALLOWED_TAGS = frozenset({"img", "table", "custom"})

# Standard HTML elements. Anything else (custom elements, Office namespaced
# tags like <o:p>, stray XML) counts as unrecognized and is dropped.
KNOWN_HTML_TAGS = frozenset({
    "a", "abbr", "address", "area", "article", "aside", "audio", "b", "base",
    "bdi", "bdo", "blockquote", "body", "br", "button", "canvas", "caption",
    "center", "cite", "code", "col", "colgroup", "data", "datalist", "dd", "del",
    "details", "dfn", "dialog", "div", "dl", "dt", "em", "embed", "fieldset",
    "figcaption", "figure", "font", "footer", "form", "h1", "h2", "h3", "h4",
    "h5", "h6", "head", "header", "hgroup", "hr", "html", "i", "iframe", "img",
    "input", "ins", "kbd", "label", "legend", "li", "link", "main", "map", "mark",
    "menu", "meta", "meter", "nav", "noscript", "object", "ol", "optgroup",
    "option", "output", "p", "param", "picture", "pre", "progress", "q", "rp",
    "rt", "ruby", "s", "samp", "script", "section", "select", "small", "source",
    "span", "strike", "strong", "style", "sub", "summary", "sup", "table",
    "tbody", "td", "template", "textarea", "tfoot", "th", "thead", "time",
    "title", "tr", "track", "tt", "u", "ul", "var", "video", "wbr",
})


def is_disallowed(tag_name: str) -> bool:
    """Case-insensitive check against the disallowed and known-element sets."""
    name = tag_name.lower()
    return name in DISALLOWED_TAGS or name not in KNOWN_HTML_TAGS


class HtmlSanitizer:
    """Turn a raw newsletter HTML body into a clean, titled content fragment.

    The output is a pure function of ``(html, title)`` for a given extractor.
    Bad input never raises: when nothing usable can be extracted the result
    is a minimal ``<div>`` that still carries the title heading.
    """

    def __init__(
        self,
        extractor: Extractor = extract_article,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._extractor = extractor
        self._base_url = base_url

    def sanitize(self, html: str, title: str | None = None) -> str:
        """Sanitize one message body.

        Steps:
        1. Extract the article body (boilerplate removal).
        2. Parse the extracted fragment.
        3. Rebuild the tree without comments, images, tables and unknown elements.
        4. Insert an ``<h1>`` title into a top-level ``<div>`` container.
        5. Serialize.

        Args:
            html: Raw HTML body, possibly empty or malformed.
            title: Section title to inject, or None.

        Returns:
            Sanitized HTML fragment.
        """
        extracted = self._extract(html)
        source = BeautifulSoup(extracted or MINIMAL_FRAGMENT, "html.parser")

        output = BeautifulSoup("", "html.parser")
        try:
            for child in source.contents:
                copied = _filtered_copy(child, output)
                if copied is not None:
                    output.append(copied)
        except RecursionError:
            logger.warning("Markup nested too deeply to sanitize, using an empty fragment")
            output = BeautifulSoup(MINIMAL_FRAGMENT, "html.parser")

        if _first_significant(output) is None:
            output = BeautifulSoup(MINIMAL_FRAGMENT, "html.parser")

        if title and title.strip():
            _inject_heading(output, title.strip())

        return str(output)

    def __call__(self, html: str, title: str | None = None) -> str:
        return self.sanitize(html, title)

    def _extract(self, html: str) -> str | None:
        if not html or not html.strip():
            return None
        try:
            return self._extractor(self._base_url, html)
        except Exception as e:
            logger.warning("Article extraction failed: %s", e)
            return None


def _filtered_copy(node: PageElement, output: BeautifulSoup) -> PageElement | None:
    """Copy ``node`` into ``output``'s tree, leaving out disallowed subtrees."""
    if isinstance(node, PreformattedString):
        # comments, doctypes, CDATA and processing instructions
        return None
    if isinstance(node, NavigableString):
        return type(node)(str(node))
    if not isinstance(node, Tag):
        return None
    if is_disallowed(node.name):
        return None

    copy = output.new_tag(node.name, attrs=dict(node.attrs))
    for child in node.contents:
        copied = _filtered_copy(child, output)
        if copied is not None:
            copy.append(copied)
    return copy


def _first_significant(soup: BeautifulSoup) -> PageElement | None:
    for child in soup.contents:
        if isinstance(child, NavigableString) and not child.strip():
            continue
        return child
    return None


def _inject_heading(soup: BeautifulSoup, title: str) -> None:
    top = _first_significant(soup)
    if not isinstance(top, Tag) or top.name != "div":
        logger.debug("Top-level node is not a <div>, skipping title heading")
        return

    heading = soup.new_tag("h1")
    heading.string = title
    top.insert(0, heading)


_default = HtmlSanitizer()


def sanitize(html: str, title: str | None = None) -> str:
    """Sanitize with the default trafilatura extractor."""
    return _default.sanitize(html, title)
