from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from ..models.replay_result import DraftStat, ReplayResult
from ..models.submission import Submission
from .progress import ProgressTracker
from .recalculation import RecalculationDriver
from .rules.registry import default_registry
from .session import FormSession
from .templates import TemplateError, TemplateProvider

"""Draft replay.

Saved drafts are JSON files (one submission each, camelCase keys). Replaying a
draft loads it into a session, which runs one recalculation with the loaded
data as its own previous state. A draft whose stored derived values are current
comes out unchanged; anything the rules rewrite is reported.
"""

__all__ = [
    "ReplayError",
    "scan_drafts",
    "read_draft",
    "write_draft",
    "replay_draft",
    "replay_all",
]

logger = logging.getLogger(__name__)


class ReplayError(Exception):
    pass


def scan_drafts(directory: Path) -> list[Path]:
    """Draft files (``*.json``) of a directory, non-recursive, sorted by name.

    Raises:
        ReplayError: the directory does not exist or cannot be read
    """
    if not directory.exists():
        raise ReplayError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise ReplayError(f"Path is not a directory: {directory}")
    try:
        return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ".json")
    except OSError as e:
        raise ReplayError(f"Error reading directory {directory}: {e}") from e


def read_draft(path: Path) -> Submission:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ReplayError(f"{path.name}: unreadable draft: {e}") from e
    if not isinstance(raw, dict):
        raise ReplayError(f"{path.name}: draft must be a JSON object")
    try:
        return Submission.from_dict(raw)
    except (KeyError, ValueError) as e:
        raise ReplayError(f"{path.name}: invalid draft: {e}") from e


def write_draft(path: Path, submission: Submission) -> None:
    path.write_text(json.dumps(submission.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")


def replay_draft(
    path: Path,
    provider: TemplateProvider,
    driver: RecalculationDriver,
    *,
    write_back: bool = False,
) -> DraftStat:
    submission = read_draft(path)
    try:
        template = provider.get_template(submission.template_id)
    except TemplateError as e:
        raise ReplayError(f"{path.name}: {e}") from e
    session = FormSession.load(submission, template, driver=driver)
    result = session.last_result
    writes = len(result.writes) + len(result.schema_changes) if result else 0
    if not writes:
        return DraftStat(file_name=path.name, status="unchanged")
    logger.info(f"{path.name}: {writes} derived value(s) rewritten")
    for written in (result.writes if result else ())[:10]:
        logger.debug(f"{path.name}: rewrote {written}")
    if write_back:
        write_draft(path, session.to_submission())
    return DraftStat(file_name=path.name, status="changed", writes=writes)


def replay_all(
    directory: Path,
    provider: TemplateProvider,
    *,
    max_passes: int = 2,
    write_back: bool = False,
) -> ReplayResult:
    """Replay every draft of ``directory``; one failing draft never stops the run.

    Raises:
        ReplayError: the directory cannot be scanned
    """
    start = datetime.now(UTC)
    drafts = scan_drafts(directory)
    driver = RecalculationDriver(default_registry(), max_passes=max_passes)
    stats: list[DraftStat] = []
    counts: dict[str, int] = {"unchanged": 0, "changed": 0, "failed": 0}

    with ProgressTracker(len(drafts)) as progress:
        for path in drafts:
            progress.start_draft(path)
            try:
                stat = replay_draft(path, provider, driver, write_back=write_back)
            except ReplayError as e:
                logger.error(str(e))
                stat = DraftStat(file_name=path.name, status="failed", message=str(e))
            stats.append(stat)
            counts[stat.status] += 1
            progress.finish_draft()
            progress.set_postfix(changed=counts["changed"], failed=counts["failed"])

    end = datetime.now(UTC)
    return ReplayResult(
        unchanged_drafts=counts["unchanged"],
        changed_drafts=counts["changed"],
        failed_drafts=counts["failed"],
        total_writes=sum(s.writes for s in stats),
        start_time=start,
        end_time=end,
        elapsed_seconds=(end - start).total_seconds(),
        draft_stats=stats,
    )
