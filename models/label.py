from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class Label:
    """Gmail label as returned by ``users.labels``."""

    id: str
    name: str
    type: str = "user"

    @classmethod
    def from_api(cls, resource: Mapping[str, Any]) -> "Label":
        return cls(id=resource["id"], name=resource.get("name", ""), type=resource.get("type", "user"))
