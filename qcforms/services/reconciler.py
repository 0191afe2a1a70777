from __future__ import annotations

import logging
from typing import Any

from ..models.document import EMPTY, is_empty
from .aggregates import round_half_away, to_number

"""Unit <-> percentage reconciliation for percentage-displaying table cells.

Cells in these tables accept raw unit counts but store the percentage of a
denominator (sample size, per-column fruit count). Per cell, in this order:

1. value differs from the previous snapshot -> the user typed units; store
   ``round(units / denominator * 100, places)``. Without a usable denominator the
   number is stored unconverted.
2. value unchanged but the denominator changed (both valid) -> the stored value is
   a percentage of the old denominator; recover ``round(pct * old / 100)`` units
   and rebase them on the new denominator.
3. otherwise the stored value is kept.

Nothing here raises: unusable input degrades to keeping or blanking the cell.
"""

__all__ = [
    "valid_denominator",
    "implied_units",
    "to_percentage",
    "reconcile_cell",
]

logger = logging.getLogger(__name__)


def valid_denominator(value: Any) -> float | None:
    """Return the denominator as a number when it is a positive number, else None."""
    n = to_number(value)
    if n is None or n <= 0:
        return None
    return float(n)


def implied_units(percentage: Any, denominator: Any) -> int | None:
    """Units a stored percentage stands for (rounded half away from zero)."""
    pct = to_number(percentage)
    den = valid_denominator(denominator)
    if pct is None or den is None:
        return None
    return int(round_half_away(pct * den / 100, 0))


def to_percentage(units: Any, denominator: Any, places: int = 1) -> int | float | str:
    n = to_number(units)
    den = valid_denominator(denominator)
    if n is None or den is None:
        return EMPTY
    return round_half_away(n / den * 100, places)


def reconcile_cell(
    cell_key: str,
    current_value: Any,
    prev_value: Any,
    current_denominator: Any,
    prev_denominator: Any,
    places: int = 1,
) -> Any:
    """Decide the stored value of one percentage cell. See module docstring."""
    if current_value != prev_value:
        if is_empty(current_value):
            return EMPTY
        units = to_number(current_value)
        if units is None:
            # text in a numeric cell is left for the user to fix
            return current_value
        den = valid_denominator(current_denominator)
        if den is None:
            logger.debug(f"{cell_key}: no denominator, keeping raw units {units}")
            return units
        return round_half_away(units / den * 100, places)

    cur_den = valid_denominator(current_denominator)
    old_den = valid_denominator(prev_denominator)
    if cur_den is not None and old_den is not None and cur_den != old_den:
        if is_empty(current_value):
            return EMPTY
        units = implied_units(current_value, old_den)
        if units is None:
            return current_value
        stored = round_half_away(units / cur_den * 100, places)
        logger.debug(f"{cell_key}: rebased {current_value} ({old_den:g}) -> {stored} ({cur_den:g})")
        return stored

    return current_value
