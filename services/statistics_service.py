from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict

from services.auto_reply_worker import CycleReport

LOGGER = logging.getLogger(__name__)

COUNTERS = ("messages_seen", "replies_sent", "recovered", "skipped", "failures")


class StatisticsService:
    """Very small JSON-backed stats store."""

    def __init__(self, stats_file: Path):
        self._stats_file = stats_file
        self._stats_file.parent.mkdir(parents=True, exist_ok=True)
        self._stats_file.touch(exist_ok=True)
        if not self._stats_file.read_text(encoding="utf-8").strip():
            self._stats_file.write_text(json.dumps({}), encoding="utf-8")

    def _read(self) -> Dict:
        try:
            return json.loads(self._stats_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            LOGGER.warning("Stats file was corrupt, resetting %s", self._stats_file)
            self._stats_file.write_text(json.dumps({}), encoding="utf-8")
            return {}

    def _write(self, payload: Dict) -> None:
        self._stats_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def record_cycle(self, account: str, report: CycleReport) -> None:
        stats = self._read()
        values = {
            "messages_seen": report.seen,
            "replies_sent": report.replied,
            "recovered": report.recovered,
            "skipped": report.skipped,
            "failures": report.failed,
        }
        bucket = self._account_bucket(stats, account)
        for target in (stats, bucket):
            target["cycles"] = target.get("cycles", 0) + 1
            for key in COUNTERS:
                target[key] = target.get(key, 0) + values[key]
        self._write(stats)

    def snapshot(self) -> Dict:
        return self._read()

    def _account_bucket(self, stats: Dict, account: str) -> Dict:
        accounts = stats.setdefault("accounts", {})
        return accounts.setdefault(account, {})
