from __future__ import annotations

from services.persistence_service import ReplyLedger, ReplyState


def test_ledger_lifecycle(tmp_path):
    ledger = ReplyLedger(tmp_path / "auto_reply.db")

    assert ledger.state("acct", "abc") is None

    ledger.mark_pending("acct", "abc")
    assert ledger.state("acct", "abc").state is ReplyState.PENDING

    ledger.mark_sent("acct", "abc", "reply-1")
    entry = ledger.state("acct", "abc")
    assert entry.state is ReplyState.SENT
    assert entry.reply_id == "reply-1"

    ledger.mark_tagged("acct", "abc")
    entry = ledger.state("acct", "abc")
    assert entry.state is ReplyState.TAGGED
    assert entry.reply_id == "reply-1"

    # Other accounts should not collide
    assert ledger.state("other", "abc") is None


def test_clear_removes_entry(tmp_path):
    ledger = ReplyLedger(tmp_path / "auto_reply.db")
    ledger.mark_pending("acct", "abc")
    ledger.clear("acct", "abc")
    assert ledger.state("acct", "abc") is None


def test_ledger_survives_reopen(tmp_path):
    db_path = tmp_path / "auto_reply.db"
    ReplyLedger(db_path).mark_sent("acct", "abc", "reply-1")
    assert ReplyLedger(db_path).state("acct", "abc").state is ReplyState.SENT


def test_recent_entries_filters_by_account(tmp_path):
    ledger = ReplyLedger(tmp_path / "auto_reply.db")
    ledger.mark_pending("acct", "one")
    ledger.mark_pending("acct", "two")
    ledger.mark_pending("other", "three")

    entries = ledger.recent_entries(limit=10, account="acct")

    assert {entry.message_id for entry in entries} == {"one", "two"}
    assert len(ledger.recent_entries(limit=1)) == 1
