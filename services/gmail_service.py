from __future__ import annotations

import base64
import logging
from email.mime.text import MIMEText
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, TypeVar

import httplib2
from google.auth.exceptions import RefreshError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from models.email_message import EmailMessage, SendResult
from models.label import Label
from services.auth_service import AuthService
from services.errors import AuthError, FetchError, GmailApiError, SendError, TagError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class GmailService:
    """Wrapper around the Gmail API for the operations the worker needs."""

    def __init__(self, client: Any, user_id: str = "me"):
        self._client = client
        self._user_id = user_id

    @classmethod
    def from_auth(cls, auth_service: AuthService, user_id: str = "me") -> "GmailService":
        creds = auth_service.authenticate()
        return cls(build("gmail", "v1", credentials=creds, cache_discovery=False), user_id=user_id)

    @property
    def user_id(self) -> str:
        return self._user_id

    def list_labels(self) -> List[Label]:
        response = _call(
            lambda: self._client.users().labels().list(userId=self.user_id).execute(),
            FetchError,
            "list labels",
        )
        return [Label.from_api(item) for item in response.get("labels", []) or []]

    def create_label(
        self,
        name: str,
        label_list_visibility: str = "labelShow",
        message_list_visibility: str = "show",
    ) -> Label:
        body = {
            "name": name,
            "labelListVisibility": label_list_visibility,
            "messageListVisibility": message_list_visibility,
        }
        response = _call(
            lambda: self._client.users().labels().create(userId=self.user_id, body=body).execute(),
            TagError,
            f"create label {name}",
        )
        LOGGER.info("Created label %s with id %s", name, response["id"])
        return Label.from_api(response)

    def list_message_ids(
        self,
        query: str,
        label_ids: Sequence[str] = ("INBOX",),
        max_results: Optional[int] = None,
    ) -> List[str]:
        ids: List[str] = []
        page_token: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"userId": self.user_id, "q": query, "labelIds": list(label_ids)}
            if max_results:
                params["maxResults"] = min(max_results - len(ids), 500)
            if page_token:
                params["pageToken"] = page_token
            response = _call(
                lambda: self._client.users().messages().list(**params).execute(),
                FetchError,
                "list messages",
            )
            ids.extend(item["id"] for item in response.get("messages", []) or [])
            page_token = response.get("nextPageToken")
            if not page_token or (max_results and len(ids) >= max_results):
                break
        LOGGER.info("Listed %s message(s) matching %r", len(ids), query)
        return ids

    def get_message(self, message_id: str) -> EmailMessage:
        response = _call(
            lambda: self._client.users()
            .messages()
            .get(userId=self.user_id, id=message_id, format="metadata")
            .execute(),
            FetchError,
            f"fetch message {message_id}",
        )
        return EmailMessage.from_api(response)

    def send_message(
        self,
        thread_id: Optional[str],
        to: str,
        subject: str,
        body_text: str,
        in_reply_to: Optional[str] = None,
    ) -> SendResult:
        msg = MIMEText(body_text, "plain", "utf-8")
        msg["To"] = to
        msg["Subject"] = subject
        if in_reply_to:
            msg["In-Reply-To"] = in_reply_to
            msg["References"] = in_reply_to

        body: Dict[str, Any] = {"raw": base64.urlsafe_b64encode(msg.as_bytes()).decode("utf-8")}
        if thread_id:
            body["threadId"] = thread_id
        response = _call(
            lambda: self._client.users().messages().send(userId=self.user_id, body=body).execute(),
            SendError,
            f"send message to {to}",
        )
        LOGGER.info("Sent message %s to %s on thread %s", response["id"], to, thread_id)
        return SendResult(id=response["id"], thread_id=response.get("threadId", thread_id))

    def modify_message_labels(self, message_id: str, add_label_ids: Sequence[str]) -> None:
        if not add_label_ids:
            LOGGER.debug("No labels supplied for message %s", message_id)
            return
        body = {"addLabelIds": list(add_label_ids)}
        _call(
            lambda: self._client.users()
            .messages()
            .modify(userId=self.user_id, id=message_id, body=body)
            .execute(),
            TagError,
            f"label message {message_id}",
        )
        LOGGER.info("Applied labels %s to message %s", list(add_label_ids), message_id)


def _call(request: Callable[[], T], error_cls: Type[GmailApiError], action: str) -> T:
    try:
        return request()
    except HttpError as exc:
        status = _status_of(exc)
        LOGGER.error("Failed to %s (HTTP %s): %s", action, status, exc)
        raise error_cls(f"Failed to {action}: {exc}", status=status) from exc
    except RefreshError as exc:
        raise AuthError(f"Credentials rejected while trying to {action}: {exc}") from exc
    except (OSError, httplib2.HttpLib2Error) as exc:
        # timeouts, resets and TLS failures; status stays None
        LOGGER.error("Failed to %s (transport): %r", action, exc)
        raise error_cls(f"Failed to {action}: {exc!r}") from exc


def _status_of(exc: HttpError) -> Optional[int]:
    try:
        return int(exc.resp.status)
    except (AttributeError, TypeError, ValueError):
        return None
