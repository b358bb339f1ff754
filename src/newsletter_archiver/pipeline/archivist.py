"""Archive assembly: section titles, running date range, final document metadata."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import datetime, tzinfo

from newsletter_archiver.core.exceptions import ArchiverError
from newsletter_archiver.core.models import (
    ArchiveDocument,
    DateRange,
    DocumentSection,
    RetrievedMessage,
    StyleResource,
)

logger = logging.getLogger(__name__)

EMPTY_RANGE_LABEL = "no messages"

Sanitize = Callable[[str, str | None], str]


def clean_subject(subject: str, pattern: re.Pattern[str] | None = None) -> str:
    """Remove every match of ``pattern`` from the subject and trim it."""
    if pattern is not None:
        subject = pattern.sub("", subject)
    return subject.strip()


def format_date(value: datetime, tz: tzinfo | None = None, date_format: str = "") -> str:
    """Format a date for display in ``tz`` (the system zone when None).

    Without ``date_format`` the short ``M/D/YYYY`` form is used.
    """
    local = value.astimezone(tz)
    if date_format:
        return local.strftime(date_format)
    return f"{local.month}/{local.day}/{local.year}"


class Archivist:
    """Accumulates sections for one archive and finalizes its metadata.

    Lifecycle: created with a provisional title (the book title), fed one
    message at a time via :meth:`add`, then finalized exactly once.
    """

    def __init__(
        self,
        book_title: str,
        *,
        sanitizer: Sanitize,
        stylesheet: StyleResource,
        subject_pattern: re.Pattern[str] | None = None,
        tz: tzinfo | None = None,
        date_format: str = "",
        author: str = "",
        language: str = "en",
    ) -> None:
        self._book_title = book_title
        self._sanitizer = sanitizer
        self._stylesheet = stylesheet
        self._subject_pattern = subject_pattern
        self._tz = tz
        self._date_format = date_format
        self._author = author
        self._language = language

        self._sections: list[DocumentSection] = []
        self._date_range = DateRange()
        self._finalized = False

    @property
    def title(self) -> str:
        """The provisional title until finalization."""
        return self._book_title

    @property
    def date_range(self) -> DateRange:
        return self._date_range

    @property
    def section_count(self) -> int:
        return len(self._sections)

    def section_title(self, message: RetrievedMessage) -> str:
        subject = clean_subject(message.subject, self._subject_pattern)
        return f"{self._fmt(message.date)} - {subject}"

    def add(self, message: RetrievedMessage) -> DocumentSection:
        """Sanitize a message into a section and fold its date into the range."""
        if self._finalized:
            raise ArchiverError("Archive already finalized")

        title = self.section_title(message)
        section = DocumentSection(
            title=title,
            content_html=self._sanitizer(message.html_body, title),
            style_ref=self._stylesheet.name,
        )
        self._sections.append(section)
        self._date_range = self._date_range.extend(message.date)
        logger.debug("Added section %d: %s", len(self._sections), title)
        return section

    def add_all(self, messages: Iterable[RetrievedMessage]) -> int:
        """Consume a message stream; returns the number of sections added."""
        count = 0
        for message in messages:
            self.add(message)
            count += 1
        return count

    def final_title(self) -> str:
        """``"<BookTitle> (<earliest> - <latest>)"`` or the empty-range form."""
        dates = self._date_range
        if dates.earliest is None or dates.latest is None:
            return f"{self._book_title} ({EMPTY_RANGE_LABEL})"
        return f"{self._book_title} ({self._fmt(dates.earliest)} - {self._fmt(dates.latest)})"

    def finalize(self) -> ArchiveDocument:
        """Attach the stylesheet, set the final title and freeze the document."""
        if self._finalized:
            raise ArchiverError("Archive already finalized")
        self._finalized = True

        if self._date_range.is_empty:
            logger.warning("No messages archived, the document has no sections")

        return ArchiveDocument(
            title=self.final_title(),
            sections=tuple(self._sections),
            resources=(self._stylesheet,),
            date_range=self._date_range,
            author=self._author,
            language=self._language,
        )

    def _fmt(self, value: datetime) -> str:
        return format_date(value, self._tz, self._date_format)
