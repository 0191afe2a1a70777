from __future__ import annotations

from ..models.replay_result import ReplayResult
from ..models.submission import FinalizeResult

"""SUMMARY line rendering.

Replay:   SUMMARY drafts={total} unchanged={n} changed={n} failed={n} writes={n} elapsed_sec={s}
Finalize: SUMMARY submission={id} ok={true|false} health={OK|WARN|FAIL} counts={k:v,...}
"""

__all__ = [
    "render_summary_line",
    "render_finalize_line",
    "format_seconds",
]


def format_seconds(seconds: float) -> str:
    """Plain decimal notation; integers without a fraction, never scientific."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return str(round(seconds, 3))


def render_summary_line(result: ReplayResult) -> str:
    """Render the replay SUMMARY line.

    >>> from datetime import UTC, datetime
    >>> t = datetime(2025, 1, 1, tzinfo=UTC)
    >>> render_summary_line(ReplayResult(2, 1, 0, 3, t, t, 2.0))
    'SUMMARY drafts=3 unchanged=2 changed=1 failed=0 writes=3 elapsed_sec=2'
    """
    return (
        f"SUMMARY drafts={result.total_drafts} "
        f"unchanged={result.unchanged_drafts} "
        f"changed={result.changed_drafts} "
        f"failed={result.failed_drafts} "
        f"writes={result.total_writes} "
        f"elapsed_sec={format_seconds(result.elapsed_seconds)}"
    )


def render_finalize_line(result: FinalizeResult) -> str:
    counts = ",".join(f"{k}:{v}" for k, v in sorted(result.counts.items()))
    return (
        f"SUMMARY submission={result.submission_id} "
        f"ok={str(result.ok).lower()} "
        f"health={result.health_status.value} "
        f"counts={counts}"
    )
