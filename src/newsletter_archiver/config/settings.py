"""Configuration via pydantic-settings with .env support."""

from __future__ import annotations

import re
from datetime import tzinfo
from importlib.resources import files
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from newsletter_archiver.core.exceptions import ConfigurationError
from newsletter_archiver.core.models import SearchCriteria, StyleResource

STYLESHEET_NAME = "style.css"


class ArchiverSettings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ARCHIVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Mailbox
    mail_backend: Literal["imap", "gmail"] = "imap"
    mail_server: str = ""
    mail_port: int = 993
    mail_use_ssl: bool = True
    mail_user: str = ""
    mail_password: SecretStr = SecretStr("")
    mail_folder: str = "INBOX"
    mail_timeout_seconds: float = 30.0

    # Gmail OAuth (mail_backend="gmail")
    credentials_path: Path = Path("credentials/client_secret.json")
    token_path: Path = Path("credentials/token.json")

    # Archive
    search_from: str = ""
    subject_regex: str = ""
    book_title: str = "Newsletter Archive"
    book_language: str = "en"
    output_path: Path = Path("output.epub")
    stylesheet_path: Path | None = None
    display_timezone: str = ""
    date_format: str = ""

    # Logging
    log_level: str = "INFO"

    @field_validator("subject_regex")
    @classmethod
    def _check_regex(cls, value: str) -> str:
        if value.strip():
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid subject_regex: {e}") from e
        return value

    @field_validator("display_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        if value.strip():
            try:
                ZoneInfo(value.strip())
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"unknown time zone: {value}") from e
        return value.strip()

    def build_criteria(self) -> SearchCriteria:
        """Search criteria for this run; unseen-only is always on."""
        if not self.search_from.strip():
            raise ConfigurationError("search_from must be set (ARCHIVER_SEARCH_FROM)")
        return SearchCriteria.from_config(self.search_from, self.subject_regex)

    def display_tz(self) -> tzinfo | None:
        """Zone used for dates in titles; None means the system local zone."""
        return ZoneInfo(self.display_timezone) if self.display_timezone else None

    def load_stylesheet(self) -> StyleResource:
        """The shared stylesheet: ``stylesheet_path`` if set, else the bundled one."""
        if self.stylesheet_path is not None:
            try:
                content = self.stylesheet_path.read_bytes()
            except OSError as e:
                raise ConfigurationError(
                    f"Could not load stylesheet {self.stylesheet_path}: {e}"
                ) from e
        else:
            bundled = files("newsletter_archiver").joinpath("resources").joinpath(STYLESHEET_NAME)
            content = bundled.read_bytes()
        return StyleResource(name=STYLESHEET_NAME, content=content, media_type="text/css")

    def ensure_directories(self) -> None:
        """Create the output directory (and the token directory for Gmail)."""
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        if self.mail_backend == "gmail":
            self.token_path.parent.mkdir(parents=True, exist_ok=True)
