from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ..models.document import EMPTY

"""Aggregate computations over row cells and matrix detail entries.

Every function ignores empty and non-numeric entries. When nothing contributes,
the result is ``EMPTY`` rather than ``0``: a blank column must never show a total
of zero, while an explicit ``0`` is a measured zero and does count.

Rounding is half away from zero at a per-field precision (2 for weights and
pressures, 1 for percentages).
"""

__all__ = [
    "to_number",
    "numeric_values",
    "round_half_away",
    "sum_values",
    "average",
    "maximum",
    "minimum",
    "count_non_empty",
    "flatten_details",
    "column_values",
]


def to_number(value: Any) -> int | float | None:
    """Parse a cell into a number, or None when it carries no numeric data."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return value
    if isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number
    return None


def numeric_values(values: Iterable[Any]) -> list[int | float]:
    out: list[int | float] = []
    for v in values:
        n = to_number(v)
        if n is not None:
            out.append(n)
    return out


def round_half_away(value: float | int, places: int = 0) -> int | float:
    """Round half away from zero. ``places=0`` yields an int."""
    try:
        d = Decimal(str(value))
    except InvalidOperation:  # pragma: no cover (callers pass parsed numbers)
        raise ValueError(f"not a number: {value!r}") from None
    quantum = Decimal(1).scaleb(-places)
    rounded = d.quantize(quantum, rounding=ROUND_HALF_UP)
    if places <= 0:
        return int(rounded)
    return float(rounded)


def sum_values(values: Iterable[Any], places: int | None = None) -> int | float | str:
    nums = numeric_values(values)
    if not nums:
        return EMPTY
    total = sum(nums)
    if places is not None:
        return round_half_away(total, places)
    if isinstance(total, float):
        # float accumulation noise (0.1 + 0.2) is not data
        return round_half_away(total, 10)
    return total


def average(values: Iterable[Any], places: int = 2) -> int | float | str:
    nums = numeric_values(values)
    if not nums:
        return EMPTY
    return round_half_away(sum(nums) / len(nums), places)


def maximum(values: Iterable[Any]) -> int | float | str:
    nums = numeric_values(values)
    return max(nums) if nums else EMPTY


def minimum(values: Iterable[Any]) -> int | float | str:
    nums = numeric_values(values)
    return min(nums) if nums else EMPTY


def count_non_empty(values: Iterable[Any]) -> int:
    """Count entries that carry a number (blank and text cells do not count)."""
    return len(numeric_values(values))


def column_values(rows: Sequence[dict[str, Any]], keys: Sequence[str]) -> list[Any]:
    """Collect the given cells of every row, row by row."""
    return [row.get(k) for row in rows for k in keys]


def flatten_details(
    entries: Sequence[dict[str, Any]] | None,
    sides: Sequence[str] = ("p1", "p2"),
) -> list[Any]:
    """Flatten the ``detalles`` of matrix entries across entry boundaries."""
    out: list[Any] = []
    for entry in entries or []:
        if not isinstance(entry, dict):
            continue
        for detail in entry.get("detalles") or []:
            if not isinstance(detail, dict):
                continue
            for side in sides:
                out.append(detail.get(side))
    return out
