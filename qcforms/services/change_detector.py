from __future__ import annotations

from typing import Any

from ..models.document import ROW_ID, get_path

"""Change detection between the previous snapshot and the live document.

A cell whose value differs from the previous snapshot was typed by the user in
this mutation; an unchanged cell is carried over. The previous snapshot must
already contain every value written by earlier rules of the same pass, otherwise
rule output would be taken for fresh user input.
"""

__all__ = [
    "find_row",
    "was_user_edited",
    "value_changed",
]

_MISSING = object()


def find_row(rows: Any, row_index_or_id: int | str) -> dict[str, Any] | None:
    """Locate a row by position (int) or by its ``_id`` (str)."""
    if not isinstance(rows, list):
        return None
    if isinstance(row_index_or_id, int):
        if 0 <= row_index_or_id < len(rows) and isinstance(rows[row_index_or_id], dict):
            return rows[row_index_or_id]
        return None
    for row in rows:
        if isinstance(row, dict) and row.get(ROW_ID) == row_index_or_id:
            return row
    return None


def was_user_edited(
    table_key: str,
    row_index_or_id: int | str,
    column_key: str,
    previous: dict[str, Any] | None,
    current: dict[str, Any],
) -> bool:
    """True when the cell differs between ``previous`` and ``current``.

    A row present on only one side has no prior value to compare against and is
    always reported as edited. With no previous snapshot at all every cell is new.
    """
    if previous is None:
        return True
    prev_row = find_row(get_path(previous, table_key), row_index_or_id)
    next_row = find_row(get_path(current, table_key), row_index_or_id)
    if prev_row is None or next_row is None:
        return True
    return prev_row.get(column_key, _MISSING) != next_row.get(column_key, _MISSING)


def value_changed(path: str, previous: dict[str, Any] | None, current: dict[str, Any]) -> bool:
    """Scalar counterpart of ``was_user_edited`` for plain document paths."""
    if previous is None:
        return True
    return get_path(previous, path, _MISSING) != get_path(current, path, _MISSING)
