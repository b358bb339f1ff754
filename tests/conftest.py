"""Shared fixtures for Newsletter Archiver tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from email.message import EmailMessage
from pathlib import Path

import pytest

from newsletter_archiver.config.settings import ArchiverSettings
from newsletter_archiver.core.exceptions import MessageUnavailableError
from newsletter_archiver.core.models import RetrievedMessage, SearchCriteria, StyleResource
from newsletter_archiver.core.sanitizer import HtmlSanitizer


class FakeMailSession:
    """In-memory MailSession. A ``None`` entry is reported as unavailable on fetch."""

    def __init__(
        self,
        messages: dict[str, RetrievedMessage | None],
        search_error: Exception | None = None,
    ) -> None:
        self._messages = messages
        self._search_error = search_error
        self.searches: list[SearchCriteria] = []
        self.fetched: list[str] = []

    def search(self, criteria: SearchCriteria) -> list[str]:
        self.searches.append(criteria)
        if self._search_error is not None:
            raise self._search_error
        return list(self._messages)

    def fetch(self, message_id: str) -> RetrievedMessage:
        self.fetched.append(message_id)
        message = self._messages[message_id]
        if message is None:
            raise MessageUnavailableError(f"Message {message_id} not found")
        return message


def passthrough_extractor(base_url: str, raw_html: str) -> str:
    """Extractor stand-in that returns the HTML unchanged."""
    return raw_html


@pytest.fixture
def make_session() -> Callable[..., FakeMailSession]:
    """Factory for FakeMailSession instances."""
    return FakeMailSession


@pytest.fixture
def sanitizer() -> HtmlSanitizer:
    """Sanitizer that skips boilerplate extraction."""
    return HtmlSanitizer(extractor=passthrough_extractor)


@pytest.fixture
def stylesheet() -> StyleResource:
    """A small stylesheet resource."""
    return StyleResource(name="style.css", content=b"body { margin: 0; }")


@pytest.fixture
def criteria() -> SearchCriteria:
    """Criteria matching the sample newsletter sender."""
    return SearchCriteria(sender_substring="digest@news.example")


@pytest.fixture
def digest_messages() -> list[RetrievedMessage]:
    """Two weekly digests two weeks apart."""
    return [
        RetrievedMessage(
            message_id="101",
            date=datetime(2024, 1, 5, 12, 0, tzinfo=UTC),
            subject="Weekly Digest #45",
            html_body="<div><p>Issue 45 body</p></div>",
        ),
        RetrievedMessage(
            message_id="102",
            date=datetime(2024, 1, 19, 12, 0, tzinfo=UTC),
            subject="Weekly Digest #46",
            html_body="<div><p>Issue 46 body</p></div>",
        ),
    ]


@pytest.fixture
def tmp_settings(tmp_path: Path) -> ArchiverSettings:
    """Settings isolated from the environment, writing into tmp_path."""
    return ArchiverSettings(
        _env_file=None,
        search_from="digest@news.example",
        book_title="Weekly Digest",
        display_timezone="UTC",
        output_path=tmp_path / "out" / "archive.epub",
    )


def build_raw_email(
    subject: str = "Weekly Digest #45",
    date: str | None = "Fri, 05 Jan 2024 12:00:00 +0000",
    html: str | None = "<div><p>Hello <b>readers</b></p></div>",
    text: str | None = None,
) -> bytes:
    """Build RFC 822 bytes for parser and session tests."""
    msg = EmailMessage()
    msg["From"] = "Digest <digest@news.example>"
    msg["To"] = "reader@example.com"
    msg["Subject"] = subject

    if text is not None:
        msg.set_content(text)
        if html is not None:
            msg.add_alternative(html, subtype="html")
    elif html is not None:
        msg.set_content(html, subtype="html")

    # Written verbatim so malformed dates survive message construction.
    date_line = f"Date: {date}\n".encode() if date is not None else b""
    return date_line + msg.as_bytes()


@pytest.fixture
def raw_email() -> bytes:
    """A simple HTML newsletter as raw bytes."""
    return build_raw_email()
