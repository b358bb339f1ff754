"""Read-only mailbox sessions: the protocol the retriever depends on and its IMAP implementation."""

from __future__ import annotations

import imaplib
import logging
from typing import Protocol

from newsletter_archiver.core.exceptions import (
    AuthenticationError,
    MailConnectionError,
    MessageUnavailableError,
)
from newsletter_archiver.core.models import RetrievedMessage, SearchCriteria
from newsletter_archiver.core.parser import MimeParser

logger = logging.getLogger(__name__)


class MailSession(Protocol):
    """An authenticated, read-only handle to a single mailbox folder."""

    def search(self, criteria: SearchCriteria) -> list[str]:
        """Resolve identifiers of messages matching sender substring and unseen flag."""
        ...

    def fetch(self, message_id: str) -> RetrievedMessage:
        """Fetch a full message, raising MessageUnavailableError if it is gone."""
        ...


def _quote(value: str) -> str:
    """Quote a string for use as an IMAP search argument."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ImapMailSession:
    """IMAP session bound to one folder, opened with EXAMINE semantics.

    Message bodies are fetched with ``BODY.PEEK[]`` so the ``\\Seen`` flag is
    never set, and the folder is selected read-only so no flag can change.
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        *,
        port: int = 993,
        folder: str = "INBOX",
        use_ssl: bool = True,
        timeout: float | None = None,
        parser: MimeParser | None = None,
    ) -> None:
        self._host = host
        self._user = user
        self._password = password
        self._port = port
        self._folder = folder
        self._use_ssl = use_ssl
        self._timeout = timeout
        self._parser = parser or MimeParser()
        self._conn: imaplib.IMAP4 | None = None

    def connect(self) -> None:
        """Connect, authenticate and select the folder read-only.

        Raises:
            MailConnectionError: If the server cannot be reached or the folder selected.
            AuthenticationError: If login is rejected.
        """
        logger.info("Connecting to %s:%d as %s", self._host, self._port, self._user)
        try:
            if self._use_ssl:
                conn = imaplib.IMAP4_SSL(self._host, self._port, timeout=self._timeout)
            else:
                conn = imaplib.IMAP4(self._host, self._port, timeout=self._timeout)
        except (OSError, imaplib.IMAP4.error) as e:
            raise MailConnectionError(f"Could not connect to {self._host}:{self._port}: {e}") from e

        try:
            conn.login(self._user, self._password)
        except imaplib.IMAP4.error as e:
            _safe_logout(conn)
            raise AuthenticationError(f"Login rejected for {self._user}: {e}") from e
        except OSError as e:
            _safe_logout(conn)
            raise MailConnectionError(f"Connection lost during login: {e}") from e

        try:
            typ, data = conn.select(_quote(self._folder), readonly=True)
        except (OSError, imaplib.IMAP4.error) as e:
            _safe_logout(conn)
            raise MailConnectionError(f"Failed to select folder {self._folder}: {e}") from e
        if typ != "OK":
            _safe_logout(conn)
            raise MailConnectionError(f"Failed to select folder {self._folder}: {data!r}")

        self._conn = conn
        logger.info("Opened folder %s read-only", self._folder)

    def close(self) -> None:
        """Log out and drop the connection."""
        if self._conn is not None:
            _safe_logout(self._conn)
            self._conn = None

    def __enter__(self) -> ImapMailSession:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise MailConnectionError("Not connected. Call connect() first.")
        return self._conn

    def search(self, criteria: SearchCriteria) -> list[str]:
        """Run ``UID SEARCH FROM <sender> [UNSEEN]`` and return the UIDs in server order."""
        args = ["FROM", _quote(criteria.sender_substring)]
        if criteria.unseen_only:
            args.append("UNSEEN")

        try:
            typ, data = self.conn.uid("SEARCH", None, *args)
        except (OSError, imaplib.IMAP4.error) as e:
            raise MailConnectionError(f"Search failed: {e}") from e
        if typ != "OK":
            raise MailConnectionError(f"Search failed: {data!r}")

        if not data or not data[0]:
            return []
        uids = [uid.decode("ascii") for uid in data[0].split()]
        logger.debug("Search %s matched %d UIDs", " ".join(args), len(uids))
        return uids

    def fetch(self, message_id: str) -> RetrievedMessage:
        """Fetch one message by UID without marking it seen.

        Raises:
            MessageUnavailableError: If the server returns no message for the UID.
            MailConnectionError: If the transport fails.
        """
        try:
            typ, data = self.conn.uid("FETCH", message_id, "(BODY.PEEK[])")
        except imaplib.IMAP4.abort as e:
            raise MailConnectionError(f"Connection aborted fetching UID {message_id}: {e}") from e
        except OSError as e:
            raise MailConnectionError(f"Fetch failed for UID {message_id}: {e}") from e
        except imaplib.IMAP4.error as e:
            raise MessageUnavailableError(f"Server refused UID {message_id}: {e}") from e

        if typ != "OK":
            raise MessageUnavailableError(f"Server refused UID {message_id}: {data!r}")

        raw = next(
            (part[1] for part in data or [] if isinstance(part, tuple) and len(part) > 1),
            None,
        )
        if not raw:
            raise MessageUnavailableError(f"No message returned for UID {message_id}")

        return self._parser.parse(message_id, raw)


def _safe_logout(conn: imaplib.IMAP4) -> None:
    try:
        conn.logout()
    except (OSError, imaplib.IMAP4.error) as e:
        logger.debug("Ignoring error during logout: %s", e)
