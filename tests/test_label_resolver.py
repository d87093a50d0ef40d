from __future__ import annotations

import threading
from typing import List

import pytest

from models.label import Label
from services.errors import TagError
from services.label_resolver import LabelResolver


class CountingMail:
    def __init__(self, labels: List[Label] | None = None):
        self.labels = list(labels or [])
        self.list_calls = 0
        self.create_calls = 0

    def list_labels(self) -> List[Label]:
        self.list_calls += 1
        return list(self.labels)

    def create_label(self, name: str) -> Label:
        self.create_calls += 1
        label = Label(id=f"Label_{len(self.labels) + 1}", name=name)
        self.labels.append(label)
        return label


class ConflictingMail(CountingMail):
    """Simulates another process creating the label between list and create."""

    def create_label(self, name: str) -> Label:
        self.create_calls += 1
        self.labels.append(Label(id="Label_remote", name=name))
        raise TagError("Label name exists or conflicts", status=409)


def test_resolve_finds_existing_label_by_exact_name():
    mail = CountingMail([Label("Label_1", "autoreplied"), Label("Label_2", "AutoReplied")])
    assert LabelResolver(mail).resolve("AutoReplied") == "Label_2"
    assert mail.create_calls == 0


def test_resolve_creates_missing_label_and_caches_it():
    mail = CountingMail()
    resolver = LabelResolver(mail)

    first = resolver.resolve("AutoReplied")
    second = resolver.resolve("AutoReplied")

    assert first == second == "Label_1"
    assert mail.create_calls == 1
    assert mail.list_calls == 1


def test_find_does_not_create():
    mail = CountingMail()
    resolver = LabelResolver(mail)
    assert resolver.find("AutoReplied") is None
    assert mail.create_calls == 0


def test_conflict_on_create_converges_on_existing_label():
    mail = ConflictingMail()
    assert LabelResolver(mail).resolve("AutoReplied") == "Label_remote"


def test_other_create_errors_propagate():
    class BrokenMail(CountingMail):
        def create_label(self, name: str) -> Label:
            raise TagError("quota", status=429)

    with pytest.raises(TagError):
        LabelResolver(BrokenMail()).resolve("AutoReplied")


def test_invalidate_forces_lookup():
    mail = CountingMail([Label("Label_1", "AutoReplied")])
    resolver = LabelResolver(mail)
    resolver.resolve("AutoReplied")

    mail.labels = [Label("Label_9", "AutoReplied")]
    resolver.invalidate("AutoReplied")

    assert resolver.resolve("AutoReplied") == "Label_9"


def test_concurrent_resolve_creates_single_label():
    mail = CountingMail()
    resolver = LabelResolver(mail)
    barrier = threading.Barrier(8)
    results: List[str] = []

    def worker() -> None:
        barrier.wait()
        results.append(resolver.resolve("AutoReplied"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert mail.create_calls == 1
    assert set(results) == {"Label_1"}
