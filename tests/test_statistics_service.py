from __future__ import annotations

from services.auto_reply_worker import CycleReport, MessageOutcome
from services.statistics_service import StatisticsService


def _report(replied: int = 0, skipped: int = 0, failed: int = 0) -> CycleReport:
    report = CycleReport()
    for index in range(replied):
        report.add(f"r{index}", MessageOutcome.REPLIED)
    for index in range(skipped):
        report.add(f"s{index}", MessageOutcome.SKIPPED)
    for index in range(failed):
        report.add(f"f{index}", MessageOutcome.FAILED)
    return report


def test_record_cycle_accumulates(tmp_path):
    stats = StatisticsService(tmp_path / "stats.json")

    stats.record_cycle("work", _report(replied=2, skipped=1))
    stats.record_cycle("home", _report(failed=1))

    snapshot = stats.snapshot()
    assert snapshot["cycles"] == 2
    assert snapshot["messages_seen"] == 4
    assert snapshot["replies_sent"] == 2
    assert snapshot["skipped"] == 1
    assert snapshot["failures"] == 1
    assert snapshot["accounts"]["work"]["replies_sent"] == 2
    assert snapshot["accounts"]["home"]["failures"] == 1


def test_corrupt_file_is_reset(tmp_path):
    path = tmp_path / "stats.json"
    path.write_text("{not json", encoding="utf-8")

    stats = StatisticsService(path)

    assert stats.snapshot() == {}


def test_recovered_outcomes_are_counted(tmp_path):
    stats = StatisticsService(tmp_path / "stats.json")
    report = _report(replied=1, skipped=2, failed=1)
    report.add("again", MessageOutcome.RECOVERED)

    stats.record_cycle("work", report)

    snapshot = stats.snapshot()
    assert snapshot["recovered"] == 1
    assert snapshot["accounts"]["work"]["recovered"] == 1
    assert snapshot["messages_seen"] == sum(
        snapshot[key] for key in ("replies_sent", "recovered", "skipped", "failures")
    )
