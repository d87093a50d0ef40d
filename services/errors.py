from __future__ import annotations

from typing import Optional


class AutoReplyError(Exception):
    """Base class for failures raised while auto-replying."""


class AuthError(AutoReplyError):
    """Credentials are missing, invalid or cannot be refreshed."""


class MissingHeaderError(AutoReplyError):
    def __init__(self, message_id: str, header: str):
        super().__init__(f"Message {message_id} has no {header} header")
        self.message_id = message_id
        self.header = header


class GmailApiError(AutoReplyError):
    """A Gmail API call failed; ``status`` holds the HTTP status when known."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class FetchError(GmailApiError):
    pass


class SendError(GmailApiError):
    pass


class TagError(GmailApiError):
    pass
