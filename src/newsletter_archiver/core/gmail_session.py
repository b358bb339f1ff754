"""Gmail API mailbox session, an alternative to IMAP for Google accounts."""

from __future__ import annotations

import base64
import logging
from typing import Any

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from newsletter_archiver.core.exceptions import (
    AuthenticationError,
    MailConnectionError,
    MessageUnavailableError,
)
from newsletter_archiver.core.models import RetrievedMessage, SearchCriteria
from newsletter_archiver.core.parser import MimeParser

logger = logging.getLogger(__name__)


def build_query(criteria: SearchCriteria) -> str:
    """Translate search criteria into a Gmail search expression."""
    sender = criteria.sender_substring.replace('"', "")
    query = f'from:"{sender}"'
    if criteria.unseen_only:
        query += " is:unread"
    return query


class GmailMailSession:
    """Read-only session over one Gmail label using the v1 REST API."""

    def __init__(
        self,
        service: Resource,
        user_id: str = "me",
        *,
        label_id: str = "INBOX",
        page_size: int = 100,
        parser: MimeParser | None = None,
    ) -> None:
        self._service = service
        self._user_id = user_id
        self._label_id = label_id
        self._page_size = page_size
        self._parser = parser or MimeParser()

    def search(self, criteria: SearchCriteria) -> list[str]:
        """Collect all matching message IDs, following ``nextPageToken``."""
        query = build_query(criteria)
        ids: list[str] = []
        page_token: str | None = None

        while True:
            kwargs: dict[str, Any] = {
                "userId": self._user_id,
                "labelIds": [self._label_id],
                "q": query,
                "maxResults": self._page_size,
            }
            if page_token:
                kwargs["pageToken"] = page_token

            try:
                response = self._service.users().messages().list(**kwargs).execute()
            except HttpError as e:
                if e.status_code in (401, 403):
                    raise AuthenticationError(f"Gmail rejected credentials: {e}") from e
                raise MailConnectionError(f"Gmail search failed: {e}") from e

            ids.extend(msg["id"] for msg in response.get("messages", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.debug("Query %r matched %d messages", query, len(ids))
        return ids

    def fetch(self, message_id: str) -> RetrievedMessage:
        """Fetch one message in raw RFC 822 form and parse it."""
        request = self._service.users().messages().get(
            userId=self._user_id, id=message_id, format="raw"
        )
        try:
            response = request.execute()
        except HttpError as e:
            if e.status_code in (404, 410):
                raise MessageUnavailableError(f"Message {message_id} no longer exists") from e
            raise MailConnectionError(f"Failed to fetch {message_id}: {e}") from e

        data = response.get("raw")
        if not data:
            raise MessageUnavailableError(f"Message {message_id} has no raw content")

        return self._parser.parse(message_id, _decode_raw(data))


def _decode_raw(data: str) -> bytes:
    # Gmail uses base64url without padding
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded)
