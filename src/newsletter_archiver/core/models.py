"""Frozen dataclasses for the Newsletter Archiver domain model."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from functools import reduce


@dataclass(frozen=True)
class SearchCriteria:
    """Mailbox filter: sender substring and unseen flag go to the server,
    the subject pattern is applied client-side when titling sections."""

    sender_substring: str
    unseen_only: bool = True
    subject_pattern: re.Pattern[str] | None = None

    def __post_init__(self) -> None:
        if not self.sender_substring or not self.sender_substring.strip():
            raise ValueError("sender_substring must be a non-empty string")

    @classmethod
    def from_config(cls, sender: str, subject_regex: str | None = None) -> SearchCriteria:
        """Build criteria from raw setting values; a blank regex means no pattern."""
        pattern = re.compile(subject_regex) if subject_regex and subject_regex.strip() else None
        return cls(sender_substring=sender, subject_pattern=pattern)


@dataclass(frozen=True)
class RetrievedMessage:
    """A fetched mailbox entry. ``date`` is always timezone-aware."""

    message_id: str
    date: datetime
    subject: str
    html_body: str = ""


@dataclass(frozen=True)
class DocumentSection:
    """One titled section of the archive, one per retrieved message."""

    title: str
    content_html: str
    style_ref: str


@dataclass(frozen=True)
class DateRange:
    """Running earliest/latest dates. Both are None until a date is folded in."""

    earliest: datetime | None = None
    latest: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return self.earliest is None or self.latest is None

    def extend(self, date: datetime) -> DateRange:
        """Return a new range that also covers ``date``."""
        if self.earliest is None or self.latest is None:
            return DateRange(earliest=date, latest=date)
        return DateRange(
            earliest=date if date < self.earliest else self.earliest,
            latest=date if date > self.latest else self.latest,
        )


def fold_date_range(dates: Iterable[datetime], start: DateRange | None = None) -> DateRange:
    """Left fold of ``dates`` into a DateRange."""
    return reduce(DateRange.extend, dates, start or DateRange())


@dataclass(frozen=True)
class StyleResource:
    """A named binary resource bundled into the archive."""

    name: str
    content: bytes
    media_type: str = "text/css"


@dataclass(frozen=True)
class ArchiveDocument:
    """A finalized archive, ready to be handed to a writer."""

    title: str
    sections: tuple[DocumentSection, ...] = field(default_factory=tuple)
    resources: tuple[StyleResource, ...] = field(default_factory=tuple)
    date_range: DateRange = field(default_factory=DateRange)
    author: str = ""
    language: str = "en"


@dataclass
class ArchiveProgress:
    """Mutable progress tracker for pipeline status reporting."""

    ids_found: int = 0
    messages_archived: int = 0
    messages_skipped: int = 0
    current_stage: str = "idle"
    output_path: str = ""
