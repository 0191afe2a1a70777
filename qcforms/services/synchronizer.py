from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any

from ..models.document import is_empty

"""Cross-table row synchronisation.

Labels found in a source table (e.g. calibres typed fruit by fruit) become rows
of a sibling table. Existing rows for a label are reused untouched, new labels
get a row from the factory, manual rows (empty label) are appended after the
synced ones, and rows whose label left the source are dropped.
"""

__all__ = [
    "distinct_labels",
    "sync_rows",
]

RowFactory = Callable[[str], dict[str, Any]]


def _label(value: Any) -> str:
    if is_empty(value):
        return ""
    return str(value).strip()


def distinct_labels(rows: Iterable[dict[str, Any]] | None, column_key: str) -> list[str]:
    """Trimmed, non-empty labels in first-occurrence order."""
    seen: set[str] = set()
    out: list[str] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        label = _label(row.get(column_key))
        if label and label not in seen:
            seen.add(label)
            out.append(label)
    return out


def sync_rows(
    source_labels: Sequence[str],
    target_rows: Sequence[dict[str, Any]] | None,
    label_column_key: str,
    row_factory: RowFactory,
) -> list[dict[str, Any]]:
    """Return the target table re-shaped to ``source_labels``.

    Idempotent: feeding the result back in with the same labels returns an equal
    list, since every label then already has its row.
    """
    by_label: dict[str, dict[str, Any]] = {}
    manual: list[dict[str, Any]] = []
    for row in target_rows or []:
        if not isinstance(row, dict):
            continue
        label = _label(row.get(label_column_key))
        if not label:
            manual.append(row)
        elif label not in by_label:
            by_label[label] = row
    synced = [by_label[label] if label in by_label else row_factory(label) for label in source_labels]
    return synced + manual
