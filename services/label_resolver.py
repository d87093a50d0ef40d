from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from services.errors import TagError

LOGGER = logging.getLogger(__name__)

CONFLICT = 409


class LabelResolver:
    """Map label names to ids, creating missing labels at most once per name.

    Creation for a given name runs under a per-name lock, so concurrent
    callers in this process share a single lookup-or-create. A ``409`` from
    the API (another process created the label first) is resolved by
    listing again.
    """

    def __init__(self, mail_service):
        self._mail = mail_service
        self._cache: Dict[str, str] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def resolve(self, name: str) -> str:
        cached = self._cache.get(name)
        if cached:
            return cached
        with self._lock_for(name):
            cached = self._cache.get(name)
            if cached:
                return cached
            label_id = self._find(name) or self._create(name)
            self._cache[name] = label_id
            return label_id

    def cached(self, name: str) -> Optional[str]:
        return self._cache.get(name)

    def find(self, name: str) -> Optional[str]:
        """Return the id of an existing label without creating it."""
        cached = self._cache.get(name)
        if cached:
            return cached
        label_id = self._find(name)
        if label_id:
            self._cache[name] = label_id
        return label_id

    def invalidate(self, name: Optional[str] = None) -> None:
        if name is None:
            self._cache.clear()
        else:
            self._cache.pop(name, None)

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(name, threading.Lock())

    def _find(self, name: str) -> Optional[str]:
        for label in self._mail.list_labels():
            if label.name == name:
                LOGGER.debug("Label %s already exists as %s", name, label.id)
                return label.id
        return None

    def _create(self, name: str) -> str:
        try:
            return self._mail.create_label(name).id
        except TagError as exc:
            if exc.status != CONFLICT:
                raise
            LOGGER.info("Label %s was created concurrently, looking it up again", name)
            label_id = self._find(name)
            if label_id is None:
                raise
            return label_id
