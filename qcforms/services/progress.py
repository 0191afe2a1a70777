from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Replay progress bar (tqdm, interactive terminals only).

The bar counts drafts, shows the file being recalculated next to the
description and carries changed/failed counters as its postfix. Without a
TTY every method is a no-op, keeping CI logs free of control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Context manager wrapping a single tqdm bar over draft files."""

    def __init__(self, total_drafts: int, *, description: str = "Replaying drafts") -> None:
        self.total_drafts = total_drafts
        self.description = description
        self.current_draft = 0
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_drafts,
                desc=description,
                unit="draft",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    @property
    def _bar(self) -> TqdmType[Any] | None:
        return self.pbar if self.enabled else None

    def start_draft(self, file_path: Path) -> None:
        self.current_draft += 1
        if bar := self._bar:
            bar.set_description(f"{self.description} ({file_path.name})")

    def finish_draft(self) -> None:
        if bar := self._bar:
            bar.update(1)
            bar.set_description(self.description)

    def set_postfix(self, **counters: Any) -> None:
        if bar := self._bar:
            bar.set_postfix(**counters)

    def close(self) -> None:
        if bar := self._bar:
            bar.close()
        self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
