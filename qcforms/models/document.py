from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Mapping
from typing import Any

"""Submission document store.

A submission's answers live in one nested mapping addressed by dot paths
(``"recepcion.variedad"``, ``"tabla_datos_canal.4.ch1"``). Integer segments index
into row collections. The empty string is the "no data" sentinel and is never
the same thing as ``0``.

Rows are plain mappings so the document stays JSON-shaped for drafts and for the
persistence payload; bookkeeping lives under underscore keys.
"""

__all__ = [
    "EMPTY",
    "ROW_ID",
    "ROW_FIXED",
    "ROW_READ_ONLY",
    "ROW_OPTIONS",
    "SubmissionDocument",
    "is_empty",
    "new_row",
    "ensure_row_id",
    "backfill_row_ids",
    "get_path",
    "set_path",
]

logger = logging.getLogger(__name__)

EMPTY = ""

ROW_ID = "_id"
ROW_FIXED = "_isFixed"
ROW_READ_ONLY = "_isReadOnlyRow"
ROW_OPTIONS = "_rowOptions"


def is_empty(value: Any) -> bool:
    """True for the empty sentinel and for missing values. ``0`` is data."""
    return value is None or value == EMPTY


def _segment_index(segment: str) -> int | None:
    if not segment.isdigit():
        return None
    return int(segment)


def get_path(data: dict[str, Any], path: str, default: Any = None) -> Any:
    node: Any = data
    for segment in path.split("."):
        if isinstance(node, dict):
            if segment not in node:
                return default
            node = node[segment]
        elif isinstance(node, list):
            idx = _segment_index(segment)
            if idx is None or idx >= len(node):
                return default
            node = node[idx]
        else:
            return default
    return node


def set_path(data: dict[str, Any], path: str, value: Any) -> None:
    """Write ``value`` at ``path``, creating intermediate mappings as needed.

    Raises:
        KeyError: a segment walks through a scalar, or a list index is not an integer
        IndexError: a list index is past the end (appending at ``len`` is allowed)
    """
    segments = path.split(".")
    node: Any = data
    for pos, segment in enumerate(segments):
        last = pos == len(segments) - 1
        if isinstance(node, dict):
            if last:
                node[segment] = value
                return
            child = node.get(segment)
            if not isinstance(child, (dict, list)):
                child = {}
                node[segment] = child
            node = child
        elif isinstance(node, list):
            idx = _segment_index(segment)
            if idx is None:
                raise KeyError(f"non-integer index {segment!r} in path {path!r}")
            if idx > len(node):
                raise IndexError(f"index {idx} out of range in path {path!r}")
            if idx == len(node):
                node.append({} if not last else value)
                if last:
                    return
            elif last:
                node[idx] = value
                return
            node = node[idx]
        else:
            raise KeyError(f"cannot descend into scalar at {segment!r} in path {path!r}")


def new_row(
    *,
    fixed: bool = False,
    read_only: bool = False,
    row_options: dict[str, list[str]] | None = None,
    **cells: Any,
) -> dict[str, Any]:
    """Create a row with a fresh, never regenerated identifier."""
    row: dict[str, Any] = {ROW_ID: str(uuid.uuid4())}
    row.update(cells)
    if fixed:
        row[ROW_FIXED] = True
    if read_only:
        row[ROW_READ_ONLY] = True
    if row_options:
        row[ROW_OPTIONS] = copy.deepcopy(row_options)
    return row


def ensure_row_id(row: dict[str, Any]) -> bool:
    """Give ``row`` an id if it has none. Returns True when one was created."""
    if row.get(ROW_ID):
        return False
    row[ROW_ID] = str(uuid.uuid4())
    return True


def _is_row_collection(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(r, dict) for r in value)


def backfill_row_ids(data: dict[str, Any]) -> int:
    """Assign ids to rows hydrated without one (legacy or partial drafts).

    Walks every row collection in the tree, including nested ones such as pressure
    matrix entries. ``detalles`` measurement pairs are not rows and are left alone.
    """
    created = 0
    stack: list[Any] = [data]
    while stack:
        node = stack.pop()
        if isinstance(node, dict):
            for key, value in node.items():
                if key == "detalles":
                    continue
                if _is_row_collection(value):
                    for row in value:
                        if ensure_row_id(row):
                            created += 1
                        stack.append(row)
                elif isinstance(value, dict):
                    stack.append(value)
    if created:
        logger.debug(f"backfilled {created} row id(s)")
    return created


class SubmissionDocument:
    """Mutable answer tree for one editing session."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = data if data is not None else {}

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self._data, path, default)

    def has(self, path: str) -> bool:
        sentinel = object()
        return get_path(self._data, path, sentinel) is not sentinel

    def set(self, path: str, value: Any) -> None:
        set_path(self._data, path, value)

    def update(self, values: Mapping[str, Any]) -> int:
        """Write every path or none of them.

        The writes go to a copy first; the live tree is only replaced (in place,
        so references to ``data`` stay valid) once all of them succeeded. Rows
        that arrive without an id get one. Returns the number of ids created.

        Raises:
            KeyError, IndexError: a path could not be written; nothing changed
        """
        staged = self.snapshot()
        for path, value in values.items():
            set_path(staged, path, copy.deepcopy(value))
        created = backfill_row_ids(staged)
        self._data.clear()
        self._data.update(staged)
        return created

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def to_dict(self) -> dict[str, Any]:
        return self.snapshot()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SubmissionDocument):
            return self._data == other._data
        return NotImplemented

    def __repr__(self) -> str:  # pragma: no cover (trivial)
        return f"SubmissionDocument(keys={sorted(self._data)})"
