"""Custom exceptions for the Newsletter Archiver."""


class ArchiverError(Exception):
    """Base exception for all Newsletter Archiver errors."""


class ConfigurationError(ArchiverError):
    """Settings are missing or invalid."""


class MailConnectionError(ArchiverError):
    """Failed to connect to the mailbox or to run the identifier search."""


class AuthenticationError(MailConnectionError):
    """Failed to authenticate with the mail server."""


class MessageUnavailableError(ArchiverError):
    """A resolved message could not be fetched (e.g. deleted in the meantime)."""


class ParseError(ArchiverError):
    """Failed to parse email MIME content."""


class ExportError(ArchiverError):
    """Failed to write the archive container."""


class ArchiveCancelled(ArchiverError):
    """The run was cancelled before the archive was exported."""
