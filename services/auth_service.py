from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from services.errors import AuthError
from utils.config import AccountConfig

LOGGER = logging.getLogger(__name__)
SCOPES: Iterable[str] = ("https://www.googleapis.com/auth/gmail.modify",)


class AuthService:
    """Handle OAuth2 credential lifecycle for a specific Gmail account.

    ``interactive=False`` is meant for unattended runs: when no usable token
    is cached the service raises :class:`AuthError` instead of opening a
    browser for consent.
    """

    def __init__(self, account: AccountConfig, interactive: bool = True):
        self._account = account
        self._interactive = interactive

    def _save_credentials(self, creds: Credentials) -> None:
        LOGGER.debug("Persisting OAuth tokens to %s", self._account.token_file)
        self._account.token_file.parent.mkdir(parents=True, exist_ok=True)
        self._account.token_file.write_text(creds.to_json(), encoding="utf-8")

    def _load_existing_credentials(self) -> Credentials | None:
        token_path: Path = self._account.token_file
        if not token_path.exists():
            return None
        LOGGER.debug("Loading cached credential from %s", token_path)
        try:
            data = json.loads(token_path.read_text(encoding="utf-8"))
            return Credentials.from_authorized_user_info(data, SCOPES)
        except ValueError as exc:
            LOGGER.warning("Ignoring unreadable token file %s: %s", token_path, exc)
            return None

    def authenticate(self) -> Credentials:
        creds = self._load_existing_credentials()
        if creds and creds.expired and creds.refresh_token:
            LOGGER.info("Refreshing expired Gmail token")
            try:
                creds.refresh(Request())
            except RefreshError as exc:
                if not self._interactive:
                    raise AuthError(f"Could not refresh token for account {self._account.name}: {exc}") from exc
                LOGGER.warning("Token refresh failed, falling back to consent flow: %s", exc)
            else:
                self._save_credentials(creds)
                return creds

        if creds and creds.valid:
            return creds

        if not self._interactive:
            raise AuthError(
                f"No valid token for account {self._account.name} at {self._account.token_file}; "
                "run the 'auth' command first"
            )
        if not self._account.credentials_file.exists():
            raise AuthError(
                f"OAuth client secrets not found at {self._account.credentials_file}. "
                "Download them from the Google Cloud Console."
            )

        LOGGER.info("Initiating OAuth flow using %s", self._account.credentials_file)
        flow = InstalledAppFlow.from_client_secrets_file(str(self._account.credentials_file), scopes=list(SCOPES))
        creds = flow.run_local_server(port=0)
        self._save_credentials(creds)
        return creds
