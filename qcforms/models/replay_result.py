from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

"""Replay run results.

A replay loads every saved draft, runs the recalculation once and reports which
drafts came out different from what was stored.
"""

__all__ = [
    "DraftStat",
    "ReplayResult",
]


@dataclass(frozen=True)
class DraftStat:
    """Outcome for one draft file."""
    file_name: str
    status: str  # unchanged / changed / failed
    writes: int = 0  # paths rewritten by the recalculation
    message: str = ""


@dataclass(frozen=True)
class ReplayResult:
    unchanged_drafts: int
    changed_drafts: int
    failed_drafts: int
    total_writes: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    draft_stats: list[DraftStat] = field(default_factory=list)

    @property
    def total_drafts(self) -> int:
        return self.unchanged_drafts + self.changed_drafts + self.failed_drafts
