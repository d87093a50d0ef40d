from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Set

import pytest

from models.email_message import EmailMessage, SendResult
from models.label import Label
from services.errors import FetchError, SendError, TagError


class FakeMailService:
    """In-memory stand-in for GmailService."""

    def __init__(self) -> None:
        self.labels: Dict[str, Label] = {}
        self.messages: Dict[str, EmailMessage] = {}
        self.applied: Dict[str, Set[str]] = {}
        self.sent: List[dict] = []
        self.created: List[str] = []
        self.list_label_calls = 0
        self.deleted_label_ids: Set[str] = set()
        self.fail_list = False
        self.fail_get: Set[str] = set()
        self.fail_send_to: Set[str] = set()
        self.timeout_send_to: Set[str] = set()
        self.fail_modify: Set[str] = set()

    def add_message(self, message: EmailMessage) -> EmailMessage:
        self.messages[message.id] = message
        return message

    def delete_label(self, label_id: str) -> None:
        del self.labels[label_id]
        self.deleted_label_ids.add(label_id)

    def list_labels(self) -> List[Label]:
        self.list_label_calls += 1
        return list(self.labels.values())

    def create_label(self, name: str, label_list_visibility: str = "labelShow", message_list_visibility: str = "show") -> Label:
        self.created.append(name)
        label = Label(id=f"Label_{len(self.created)}", name=name)
        self.labels[label.id] = label
        return label

    def list_message_ids(self, query: str, label_ids: Sequence[str] = ("INBOX",), max_results: Optional[int] = None) -> List[str]:
        if self.fail_list:
            raise FetchError("Failed to list messages", status=500)
        ids = list(self.messages)
        return ids[:max_results] if max_results else ids

    def get_message(self, message_id: str) -> EmailMessage:
        if message_id in self.fail_get:
            raise FetchError(f"Failed to fetch message {message_id}", status=500)
        message = self.messages[message_id]
        extra = self.applied.get(message_id, set())
        return EmailMessage(
            id=message.id,
            thread_id=message.thread_id,
            label_ids=frozenset(message.label_ids) | frozenset(extra),
            headers=message.headers,
        )

    def send_message(self, thread_id, to, subject, body_text, in_reply_to=None) -> SendResult:
        if to in self.fail_send_to:
            raise SendError(f"Failed to send message to {to}", status=500)
        if to in self.timeout_send_to:
            raise SendError(f"Failed to send message to {to}: TimeoutError('timed out')")
        reply_id = f"reply-{len(self.sent) + 1}"
        self.sent.append(
            {"id": reply_id, "thread_id": thread_id, "to": to, "subject": subject, "body": body_text, "in_reply_to": in_reply_to}
        )
        return SendResult(id=reply_id, thread_id=thread_id)

    def modify_message_labels(self, message_id: str, add_label_ids: Sequence[str]) -> None:
        if message_id in self.fail_modify:
            raise TagError(f"Failed to label message {message_id}", status=500)
        if self.deleted_label_ids.intersection(add_label_ids):
            raise TagError(f"Invalid label for message {message_id}", status=404)
        self.applied.setdefault(message_id, set()).update(add_label_ids)


@pytest.fixture
def mail() -> FakeMailService:
    return FakeMailService()


@pytest.fixture
def make_message():
    def _make(message_id: str = "m1", labels=(), headers=None, thread_id: str = "t1") -> EmailMessage:
        if headers is None:
            headers = [("From", "a@x.com"), ("Subject", "Hi")]
        return EmailMessage(id=message_id, thread_id=thread_id, label_ids=frozenset(labels), headers=tuple(headers))

    return _make
