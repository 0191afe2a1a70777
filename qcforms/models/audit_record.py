from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""AuditRecord model for finalize audit logging.

One record per finalize lifecycle event (FINALIZE_RECEIVED, FINALIZE_START,
FINALIZE_DONE, FINALIZE_FAIL). The same record is written to the audit table when
a database cursor is available and to the JSON Lines buffer otherwise.
"""

__all__ = [
    "AuditRecord",
    "AUDIT_EVENTS",
]

AUDIT_EVENTS = (
    "FINALIZE_RECEIVED",
    "FINALIZE_START",
    "FINALIZE_DONE",
    "FINALIZE_FAIL",
)


@dataclass(frozen=True)
class AuditRecord:
    """Structured audit record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        request_id: Correlates all events of one finalize call
        submission_id: Submission being finalized
        template_id: Template of that submission
        event: One of AUDIT_EVENTS
        message: Free text detail (error text on FINALIZE_FAIL)
    """
    timestamp: str
    request_id: str
    submission_id: str
    template_id: str
    event: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(
        request_id: str,
        submission_id: str,
        template_id: str,
        event: str,
        message: str = "",
    ) -> AuditRecord:
        if event not in AUDIT_EVENTS:
            raise ValueError(f"unknown audit event: {event}")
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return AuditRecord(
            timestamp=ts,
            request_id=request_id,
            submission_id=submission_id,
            template_id=template_id,
            event=event,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
