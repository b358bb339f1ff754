"""Read-only OAuth credentials for the Gmail mailbox backend."""

from __future__ import annotations

import logging
from pathlib import Path

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import Resource, build

from newsletter_archiver.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

# Read-only: the archiver never changes labels or the UNREAD flag.
SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]


def load_credentials(
    credentials_path: Path, token_path: Path, *, interactive: bool = True
) -> Credentials:
    """Return valid Gmail credentials, refreshing or re-consenting as needed.

    A cached token is tried first. An expired token with a refresh token is
    refreshed in place. Otherwise, when ``interactive`` is set, the installed
    app consent flow runs in a local browser.

    Raises:
        AuthenticationError: If no valid credentials can be obtained.
    """
    creds = _load_cached_token(token_path)

    if creds is not None and creds.valid:
        return creds

    if creds is not None and creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
        except GoogleAuthError as e:
            logger.warning("Cached token could not be refreshed: %s", e)
        else:
            _store_token(creds, token_path)
            return creds

    if not interactive:
        raise AuthenticationError(
            f"No usable token at {token_path} and interactive consent is disabled"
        )
    if not credentials_path.exists():
        raise AuthenticationError(f"OAuth client secrets not found: {credentials_path}")

    try:
        flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), SCOPES)
        creds = flow.run_local_server(port=0)
    except Exception as e:
        raise AuthenticationError(f"OAuth consent flow failed: {e}") from e

    _store_token(creds, token_path)
    logger.info("Gmail token stored at %s", token_path)
    return creds


def build_gmail_service(creds: Credentials) -> Resource:
    """Build a Gmail v1 API resource from credentials."""
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def _load_cached_token(token_path: Path) -> Credentials | None:
    if not token_path.exists():
        return None
    try:
        return Credentials.from_authorized_user_file(str(token_path), SCOPES)
    except (ValueError, OSError) as e:
        logger.warning("Ignoring unreadable token file %s: %s", token_path, e)
        return None


def _store_token(creds: Credentials, token_path: Path) -> None:
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json(), encoding="utf-8")
