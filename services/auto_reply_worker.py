from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from models.email_message import EmailMessage, SendResult
from services.errors import AuthError, AutoReplyError, MissingHeaderError, SendError, TagError
from services.label_resolver import LabelResolver
from services.persistence_service import ReplyLedger

LOGGER = logging.getLogger(__name__)

SENTINEL_LABEL = "AutoReplied"
REPLY_SUBJECT_PREFIX = "Auto-Reply: "
STALE_LABEL_STATUSES = {400, 404}


class MessageOutcome(str, Enum):
    REPLIED = "replied"
    SKIPPED = "skipped"
    WOULD_REPLY = "would_reply"
    RECOVERED = "recovered"
    FAILED = "failed"


@dataclass(slots=True)
class ReplyTemplate:
    subject: str = "Out of Office"
    body: str = (
        "Thank you for your email. I am currently out of the office "
        "and will respond to your message as soon as possible."
    )

    @property
    def full_subject(self) -> str:
        return f"{REPLY_SUBJECT_PREFIX}{self.subject}"


@dataclass(slots=True)
class CycleReport:
    outcomes: Counter = field(default_factory=Counter)
    failed_ids: List[str] = field(default_factory=list)

    def add(self, message_id: str, outcome: MessageOutcome) -> None:
        self.outcomes[outcome] += 1
        if outcome is MessageOutcome.FAILED:
            self.failed_ids.append(message_id)

    @property
    def seen(self) -> int:
        return sum(self.outcomes.values())

    @property
    def replied(self) -> int:
        return self.outcomes[MessageOutcome.REPLIED]

    @property
    def skipped(self) -> int:
        return self.outcomes[MessageOutcome.SKIPPED]

    @property
    def recovered(self) -> int:
        return self.outcomes[MessageOutcome.RECOVERED]

    @property
    def failed(self) -> int:
        return self.outcomes[MessageOutcome.FAILED]


def should_auto_reply(
    message: EmailMessage,
    sentinel_label: str = SENTINEL_LABEL,
    sentinel_label_id: Optional[str] = None,
) -> bool:
    """Decide whether ``message`` gets an auto-reply.

    Messages already carrying the sentinel label, and messages that are
    themselves replies (an ``In-Reply-To`` header is present), are skipped.
    Gmail reports user labels by id, so ``sentinel_label_id`` is checked
    alongside the name when it is known.
    """
    label_ids = message.label_ids or ()
    if sentinel_label in label_ids:
        return False
    if sentinel_label_id and sentinel_label_id in label_ids:
        return False
    if message.has_header("In-Reply-To"):
        return False
    return True


class AutoReplyWorker:
    """Reply once to every unread inbox message that is not itself a reply."""

    def __init__(
        self,
        mail_service,
        labels: Optional[LabelResolver] = None,
        template: Optional[ReplyTemplate] = None,
        sentinel_label: str = SENTINEL_LABEL,
        account: str = "default",
        ledger: Optional[ReplyLedger] = None,
        query: str = "is:unread",
        max_results: Optional[int] = None,
        dry_run: bool = False,
    ):
        self._mail = mail_service
        self._labels = labels or LabelResolver(mail_service)
        self._template = template or ReplyTemplate()
        self._sentinel = sentinel_label
        self._account = account
        self._ledger = ledger
        self._query = query
        self._max_results = max_results
        self._dry_run = dry_run
        self._in_cycle = False

    def poll_inbox(self) -> CycleReport:
        message_ids = self._mail.list_message_ids(self._query, label_ids=("INBOX",), max_results=self._max_results)
        report = CycleReport()
        if not message_ids:
            LOGGER.info("No unread messages for %s", self._account)
            return report

        # one label listing per cycle; ids created mid-cycle land in the resolver cache
        self._labels.find(self._sentinel)
        self._in_cycle = True
        try:
            for message_id in message_ids:
                try:
                    outcome = self.process_message(message_id)
                except AuthError:
                    raise
                except MissingHeaderError as exc:
                    LOGGER.warning("Skipping malformed message: %s", exc)
                    outcome = MessageOutcome.FAILED
                except AutoReplyError as exc:
                    LOGGER.error("Failed to process message %s: %s", message_id, exc)
                    outcome = MessageOutcome.FAILED
                report.add(message_id, outcome)
        finally:
            self._in_cycle = False

        LOGGER.info(
            "Cycle for %s done: %s seen, %s replied, %s recovered, %s skipped, %s failed",
            self._account,
            report.seen,
            report.replied,
            report.recovered,
            report.skipped,
            report.failed,
        )
        return report

    def process_message(self, message_id: str) -> MessageOutcome:
        message = self._mail.get_message(message_id)
        if self._in_cycle:
            sentinel_id = self._labels.cached(self._sentinel)
        else:
            sentinel_id = self._labels.find(self._sentinel)
        if not should_auto_reply(message, self._sentinel, sentinel_id):
            LOGGER.debug("No auto-reply needed for %s", message_id)
            return MessageOutcome.SKIPPED

        if self._dry_run:
            LOGGER.info("[dry-run] Would reply to %s (%s)", message.sender, message.subject)
            return MessageOutcome.WOULD_REPLY

        if self._ledger is not None:
            entry = self._ledger.state(self._account, message_id)
            if entry is not None:
                return self._recover(message, entry.reply_id, entry.state.value)
            self._ledger.mark_pending(self._account, message_id)

        try:
            reply = self.send_auto_reply(message)
        except AutoReplyError as exc:
            if self._ledger is not None and not _delivery_unknown(exc):
                self._ledger.clear(self._account, message_id)
            raise

        if self._ledger is not None:
            self._ledger.mark_sent(self._account, message_id, reply.id)
        self._tag_replied(message.id, reply.id)
        return MessageOutcome.REPLIED

    def send_auto_reply(self, message: EmailMessage) -> SendResult:
        recipient = message.header("From")
        if not recipient:
            raise MissingHeaderError(message.id, "From")
        LOGGER.info("Sending auto-reply to %s for message %s", recipient, message.id)
        return self._mail.send_message(
            message.thread_id,
            recipient,
            self._template.full_subject,
            self._template.body,
            in_reply_to=message.message_id_header,
        )

    def tag_message(self, message_id: str, label_name: str) -> None:
        label_id = self._labels.resolve(label_name)
        try:
            self._mail.modify_message_labels(message_id, [label_id])
        except TagError as exc:
            if exc.status not in STALE_LABEL_STATUSES:
                raise
            # label may have been deleted since it was cached
            self._labels.invalidate(label_name)
            self._mail.modify_message_labels(message_id, [self._labels.resolve(label_name)])

    def _tag_replied(self, message_id: str, reply_id: Optional[str]) -> None:
        self.tag_message(message_id, self._sentinel)
        if reply_id:
            try:
                self.tag_message(reply_id, self._sentinel)
            except TagError as exc:
                LOGGER.warning("Could not label auto-reply %s: %s", reply_id, exc)
        if self._ledger is not None:
            self._ledger.mark_tagged(self._account, message_id)

    def _recover(self, message: EmailMessage, reply_id: Optional[str], state: str) -> MessageOutcome:
        if reply_id is None:
            LOGGER.warning(
                "Message %s was left %s by an earlier run; not replying again, only labelling it",
                message.id,
                state,
            )
        else:
            LOGGER.info("Reply %s to message %s already sent, retrying label", reply_id, message.id)
        self._tag_replied(message.id, reply_id)
        return MessageOutcome.RECOVERED


def _delivery_unknown(exc: AutoReplyError) -> bool:
    """A send that died in transit may still have been delivered."""
    return isinstance(exc, SendError) and exc.status is None
