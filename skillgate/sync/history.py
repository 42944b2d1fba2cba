"""Sync history — an auditable record of sync runs against a target.

Every non-dry-run sync can append one JSON line to
``.skillgate/history.jsonl`` inside the target tree. The directory is skipped
by every tree walk, so the history never shows up as drift.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

from skillgate.sync.synchronizer import SyncReport
from skillgate.utils.filesystem import FileSystem, join


@dataclass
class SyncRecord:
    """One sync run."""

    reference: str
    policy: str
    synced_at: str = ""  # ISO 8601 timestamp
    scope: list[str] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
    failed_paths: list[str] = field(default_factory=list)

    @classmethod
    def from_report(cls, report: SyncReport, reference: str, policy: str, scope=None) -> SyncRecord:
        return cls(
            reference=reference,
            policy=policy,
            scope=list(scope or []),
            counts={o.value: n for o, n in report.counts.items()},
            failed_paths=[e.relative_path for e in report.failed],
        )


class SyncHistoryStore:
    """Stores and retrieves sync records for a target tree."""

    HISTORY_DIR = ".skillgate"
    HISTORY_FILE = "history.jsonl"

    def __init__(self, target: FileSystem):
        self.target = target
        self.history_path = join(self.HISTORY_DIR, self.HISTORY_FILE)

    def record(self, record: SyncRecord) -> None:
        """Append a sync record."""
        if not self.target.exists(self.HISTORY_DIR):
            self.target.mkdir(self.HISTORY_DIR)

        if not record.synced_at:
            record.synced_at = datetime.now(timezone.utc).isoformat()

        existing = self.target.read(self.history_path) if self.target.exists(self.history_path) else b""
        line = json.dumps(asdict(record), sort_keys=True) + "\n"
        self.target.write(self.history_path, existing + line.encode("utf-8"))

    def get_history(self) -> list[SyncRecord]:
        if not self.target.exists(self.history_path):
            return []

        records = []
        for line in self.target.read_text(self.history_path).splitlines():
            line = line.strip()
            if not line:
                continue
            data = json.loads(line)
            records.append(
                SyncRecord(
                    reference=data["reference"],
                    policy=data["policy"],
                    synced_at=data.get("synced_at", ""),
                    scope=data.get("scope", []),
                    counts=data.get("counts", {}),
                    failed_paths=data.get("failed_paths", []),
                )
            )
        return records

    def get_latest(self) -> SyncRecord | None:
        history = self.get_history()
        return history[-1] if history else None
