from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from qcforms.models.audit_record import AuditRecord

"""JSON Lines audit file for finalize attempts.

Records collect in memory and are appended on flush() to
``logs/audit-YYYYMMDD-HHMMSS.log``; the stamp (UTC) is fixed the first time the
path is asked for, so one buffer always writes one file. Nothing is created on
disk until there is at least one record to write.
"""

__all__ = [
    "AuditRecord",
    "AuditLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class AuditLogBuffer:
    def __init__(self, prefix: str = "audit") -> None:
        self.prefix = prefix
        self._pending: list[AuditRecord] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            LOGS_DIR.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = LOGS_DIR / f"{self.prefix}-{stamp}.log"
        return self._file_path

    def append(self, record: AuditRecord) -> None:
        self._pending.append(record)

    def extend(self, records: Iterable[AuditRecord]) -> None:
        self._pending.extend(records)

    @property
    def records(self) -> tuple[AuditRecord, ...]:
        """Records not yet flushed, oldest first."""
        return tuple(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def flush(self) -> Path:
        """Append pending records to the audit file and return its path."""
        target = self.file_path
        if self._pending:
            with target.open("a", encoding="utf-8") as fh:
                fh.writelines(f"{rec.to_json_line()}\n" for rec in self._pending)
            self._pending.clear()
        return target
