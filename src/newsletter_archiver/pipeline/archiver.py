"""Pipeline orchestrator: retrieve → sanitize → assemble → export."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from newsletter_archiver.config.settings import ArchiverSettings
from newsletter_archiver.core.auth import build_gmail_service, load_credentials
from newsletter_archiver.core.gmail_session import GmailMailSession
from newsletter_archiver.core.mail_session import ImapMailSession, MailSession
from newsletter_archiver.core.models import ArchiveDocument, ArchiveProgress, SearchCriteria
from newsletter_archiver.core.retriever import MessageRetriever
from newsletter_archiver.core.sanitizer import HtmlSanitizer
from newsletter_archiver.pipeline.archivist import Archivist
from newsletter_archiver.storage.epub_writer import (
    ArchiveWriter,
    EpubArchiveWriter,
    export_to_path,
)

logger = logging.getLogger(__name__)


class NewsletterArchiver:
    """Runs one archive from mailbox to EPUB file.

    Stage 1 - Search:   resolve matching identifiers (sender contains X, unseen)
    Stage 2 - Assemble: fetch each message lazily → sanitize → append section
    Stage 3 - Export:   finalize title and write the container in one go

    A run either exports exactly one file or raises before touching the
    output path.
    """

    def __init__(
        self,
        settings: ArchiverSettings | None = None,
        *,
        session: MailSession | None = None,
        sanitizer: HtmlSanitizer | None = None,
        writer: ArchiveWriter | None = None,
        on_progress: Callable[[ArchiveProgress], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._settings = settings or ArchiverSettings()
        self._session = session
        self._owns_session = session is None
        self._sanitizer = sanitizer or HtmlSanitizer()
        self._writer = writer or EpubArchiveWriter()
        self._on_progress = on_progress
        self._cancel_event = cancel_event
        self._progress = ArchiveProgress()

    @property
    def progress(self) -> ArchiveProgress:
        return self._progress

    def _ensure_session(self) -> MailSession:
        """Open the configured mailbox session if none was injected."""
        if self._session is None:
            self._session = self._open_session()
        return self._session

    def _open_session(self) -> MailSession:
        settings = self._settings
        if settings.mail_backend == "gmail":
            creds = load_credentials(settings.credentials_path, settings.token_path)
            return GmailMailSession(build_gmail_service(creds), label_id=settings.mail_folder)

        session = ImapMailSession(
            settings.mail_server,
            settings.mail_user,
            settings.mail_password.get_secret_value(),
            port=settings.mail_port,
            folder=settings.mail_folder,
            use_ssl=settings.mail_use_ssl,
            timeout=settings.mail_timeout_seconds,
        )
        session.connect()
        return session

    def count(self, criteria: SearchCriteria | None = None) -> int:
        """Only run the identifier search and return the number of matches."""
        criteria = criteria or self._settings.build_criteria()
        retriever = MessageRetriever(self._ensure_session(), cancel_event=self._cancel_event)
        return len(retriever.search(criteria))

    def build_document(self, criteria: SearchCriteria | None = None) -> ArchiveDocument:
        """Stages 1 and 2: retrieve and assemble the finalized document in memory."""
        criteria = criteria or self._settings.build_criteria()
        stylesheet = self._settings.load_stylesheet()
        retriever = MessageRetriever(self._ensure_session(), cancel_event=self._cancel_event)

        self._progress = ArchiveProgress(current_stage="search")
        self._notify()
        ids = retriever.search(criteria)
        self._progress.ids_found = len(ids)

        archivist = Archivist(
            self._settings.book_title,
            sanitizer=self._sanitizer,
            stylesheet=stylesheet,
            subject_pattern=criteria.subject_pattern,
            tz=self._settings.display_tz(),
            date_format=self._settings.date_format,
            author=criteria.sender_substring,
            language=self._settings.book_language,
        )

        self._progress.current_stage = "assemble"
        self._notify()
        for message in retriever.iter_messages(ids):
            archivist.add(message)
            self._progress.messages_archived = archivist.section_count
            self._progress.messages_skipped = len(retriever.skipped_ids)
            self._notify()
        self._progress.messages_skipped = len(retriever.skipped_ids)

        document = archivist.finalize()
        logger.info(
            "Archived %d of %d messages (%d skipped) into %r",
            self._progress.messages_archived,
            self._progress.ids_found,
            self._progress.messages_skipped,
            document.title,
        )
        return document

    def run(
        self,
        output_path: Path | None = None,
        criteria: SearchCriteria | None = None,
    ) -> ArchiveProgress:
        """Run the full pipeline and export the archive.

        Args:
            output_path: Destination file (defaults to settings.output_path).
                An existing file is replaced.
            criteria: Override the criteria built from settings.

        Returns:
            ArchiveProgress with final counts.
        """
        path = output_path or self._settings.output_path
        try:
            document = self.build_document(criteria)

            self._progress.current_stage = "export"
            self._notify()
            export_to_path(self._writer, document, path)

            self._progress.output_path = str(path)
            self._progress.current_stage = "complete"
            self._notify()
        except Exception as e:
            self._progress.current_stage = f"error: {e}"
            self._notify()
            raise

        return self._progress

    def close(self) -> None:
        """Close the mailbox session if this archiver opened it."""
        if not self._owns_session or self._session is None:
            return
        # Gmail sessions hold no connection of their own.
        close = getattr(self._session, "close", None)
        if close is not None:
            close()
        self._session = None

    def __enter__(self) -> NewsletterArchiver:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _notify(self) -> None:
        """Send progress update to callback if registered."""
        if self._on_progress:
            self._on_progress(self._progress)
