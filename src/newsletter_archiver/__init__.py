"""Newsletter Archiver - Bundle unseen newsletter emails into a single EPUB."""

from newsletter_archiver.core.models import (
    ArchiveDocument,
    ArchiveProgress,
    DateRange,
    DocumentSection,
    RetrievedMessage,
    SearchCriteria,
    StyleResource,
)
from newsletter_archiver.core.sanitizer import HtmlSanitizer, sanitize
from newsletter_archiver.pipeline.archiver import NewsletterArchiver
from newsletter_archiver.pipeline.archivist import Archivist

__all__ = [
    "ArchiveDocument",
    "ArchiveProgress",
    "Archivist",
    "DateRange",
    "DocumentSection",
    "HtmlSanitizer",
    "NewsletterArchiver",
    "RetrievedMessage",
    "SearchCriteria",
    "StyleResource",
    "sanitize",
]
