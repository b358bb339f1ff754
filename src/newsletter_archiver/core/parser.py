"""RFC 822 message parser: header decoding, date parsing, HTML body selection."""

from __future__ import annotations

import html
import logging
from datetime import UTC, datetime
from email import message_from_bytes, policy
from email.message import EmailMessage
from email.utils import parsedate_to_datetime

from newsletter_archiver.core.exceptions import ParseError
from newsletter_archiver.core.models import RetrievedMessage

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class MimeParser:
    """Parses raw message bytes into RetrievedMessage objects."""

    def parse(self, message_id: str, raw: bytes) -> RetrievedMessage:
        """Parse raw RFC 822 bytes.

        Args:
            message_id: Identifier the message was fetched under.
            raw: Full message source.

        Returns:
            Parsed RetrievedMessage.

        Raises:
            ParseError: If the bytes cannot be parsed as a message.
        """
        try:
            msg = message_from_bytes(raw, policy=policy.default)
            if not isinstance(msg, EmailMessage):
                raise ParseError(f"Unexpected message type for {message_id}")

            return RetrievedMessage(
                message_id=message_id,
                date=self._parse_date(self._raw_date(msg)),
                subject=self._header_str(msg, "Subject"),
                html_body=self._extract_html(msg),
            )
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(f"Failed to parse message {message_id}: {e}") from e

    @staticmethod
    def _header_str(msg: EmailMessage, name: str) -> str:
        value = msg.get(name)
        if value is None:
            return ""
        # Folded headers keep their CRLF in str(); collapse them.
        return " ".join(str(value).split())

    @staticmethod
    def _raw_date(msg: EmailMessage) -> str:
        # Some Python versions raise from the Date header factory on garbage values.
        try:
            value = msg.get("Date")
        except (TypeError, ValueError):
            for name, raw in msg.raw_items():
                if name.lower() == "date":
                    return str(raw)
            return ""
        return str(value) if value is not None else ""

    @staticmethod
    def _extract_html(msg: EmailMessage) -> str:
        """Pick the text/html body, wrapping a text/plain body when no HTML exists."""
        part = msg.get_body(preferencelist=("html",))
        if part is not None:
            return MimeParser._decode_part(part)

        part = msg.get_body(preferencelist=("plain",))
        if part is not None:
            text = MimeParser._decode_part(part)
            return f"<div><pre>{html.escape(text)}</pre></div>"

        return ""

    @staticmethod
    def _decode_part(part: EmailMessage) -> str:
        try:
            return part.get_content()
        except (LookupError, UnicodeError):
            # Unknown or lying charset declaration
            payload = part.get_payload(decode=True) or b""
            return payload.decode("utf-8", errors="replace")

    @staticmethod
    def _parse_date(date_str: str) -> datetime:
        """Parse an RFC 2822 date string into an aware datetime.

        Args:
            date_str: Email date header value.

        Returns:
            Parsed datetime (UTC when the header carries no zone), or the
            epoch if parsing fails.
        """
        if not date_str:
            return EPOCH
        try:
            parsed = parsedate_to_datetime(str(date_str))
        except (TypeError, ValueError, IndexError):
            logger.warning("Failed to parse date: %s", date_str)
            return EPOCH
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed
