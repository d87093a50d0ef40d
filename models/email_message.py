from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Mapping, Optional, Tuple

Header = Tuple[str, str]


@dataclass(frozen=True, slots=True)
class EmailMessage:
    """Simplified representation of a Gmail message."""

    id: str
    thread_id: str | None
    label_ids: FrozenSet[str] = field(default_factory=frozenset)
    headers: Tuple[Header, ...] = ()
    snippet: str = ""

    def header(self, name: str) -> Optional[str]:
        """Return the first value of the header named exactly ``name``."""
        for header_name, value in self.headers or ():
            if header_name == name:
                return value
        return None

    def has_header(self, name: str) -> bool:
        return any(header_name == name for header_name, _ in self.headers or ())

    @property
    def subject(self) -> str:
        return self.header("Subject") or "(no subject)"

    @property
    def sender(self) -> Optional[str]:
        return self.header("From")

    @property
    def message_id_header(self) -> Optional[str]:
        return self.header("Message-ID") or self.header("Message-Id")

    @classmethod
    def from_api(cls, resource: Mapping[str, Any]) -> "EmailMessage":
        payload = resource.get("payload") or {}
        headers = tuple(
            (item.get("name", ""), item.get("value", ""))
            for item in payload.get("headers") or []
        )
        return cls(
            id=resource["id"],
            thread_id=resource.get("threadId"),
            label_ids=frozenset(resource.get("labelIds") or ()),
            headers=headers,
            snippet=resource.get("snippet", ""),
        )


@dataclass(frozen=True, slots=True)
class SendResult:
    id: str
    thread_id: str | None = None
