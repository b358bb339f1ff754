"""Message retrieval: one identifier search, then lazy per-message fetches."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator

from newsletter_archiver.core.exceptions import (
    ArchiveCancelled,
    MessageUnavailableError,
    ParseError,
)
from newsletter_archiver.core.mail_session import MailSession
from newsletter_archiver.core.models import RetrievedMessage, SearchCriteria

logger = logging.getLogger(__name__)


class MessageRetriever:
    """Streams messages matching a SearchCriteria from a read-only mail session.

    Only the sender substring and the unseen flag are sent to the server. The
    subject pattern is left to the caller, so subjects come back untouched.
    Messages are yielded in the order the server returned the identifiers,
    one fetch at a time.
    """

    def __init__(
        self,
        session: MailSession,
        *,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._session = session
        self._cancel_event = cancel_event
        self.skipped_ids: list[str] = []

    def search(self, criteria: SearchCriteria) -> list[str]:
        """Resolve matching identifiers in a single round trip.

        Raises:
            MailConnectionError: If the search itself fails.
            ArchiveCancelled: If cancellation was requested.
        """
        self._check_cancelled()
        ids = list(self._session.search(criteria))
        logger.info(
            "Found %d messages from %r%s",
            len(ids), criteria.sender_substring,
            " (unseen only)" if criteria.unseen_only else "",
        )
        return ids

    def iter_messages(self, ids: Iterable[str]) -> Iterator[RetrievedMessage]:
        """Fetch each identifier lazily, skipping messages that are no longer available.

        This is a generator: the next fetch only happens when the consumer asks
        for the next message.
        """
        for message_id in ids:
            self._check_cancelled()
            try:
                message = self._session.fetch(message_id)
            except (MessageUnavailableError, ParseError) as e:
                logger.warning("Skipping message %s: %s", message_id, e)
                self.skipped_ids.append(message_id)
                continue

            logger.debug("Fetched message %s (%s)", message_id, message.subject)
            yield message

    def retrieve(self, criteria: SearchCriteria) -> Iterator[RetrievedMessage]:
        """Search, then stream the matching messages."""
        return self.iter_messages(self.search(criteria))

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise ArchiveCancelled("Cancelled before the next mailbox request")
