from __future__ import annotations

import copy
import uuid
from collections.abc import Callable
from typing import Any

from ...models.document import ROW_ID
from ...models.template import FieldKind, FormField
from ..aggregates import average, flatten_details, maximum, minimum, sum_values
from ..recalculation import Patches, Rule, RuleContext, RuleRegistry
from .common import cell

"""Behaviour attached to field kinds rather than to a template.

- dynamic_table: a column declaring ``calc`` is filled per row from the row's
  numeric, editable, non-excluded cells.
- pressure_matrix: with summary columns enabled each entry carries x / max / min
  of its own detail pairs (p1 only in weight mode, x only when just the average
  is shown).

Row hydration for initial rows is also looked up by kind.
"""

__all__ = [
    "table_calc_rule",
    "matrix_summary_rule",
    "register_kind_rules",
    "hydrate_initial_rows",
]

_CALCS: dict[str, Callable[[list[Any]], Any]] = {
    "average": lambda values: average(values, 2),
    "sum": sum_values,
    "max": maximum,
    "min": minimum,
}


def table_calc_rule(f: FormField) -> Rule | None:
    calc_columns = [c for c in f.columns if c.calc in _CALCS]
    if not calc_columns:
        return None
    sources = [
        c.key
        for c in f.columns
        if c.kind.is_numeric and not c.read_only and not c.exclude_from_calc and c.calc is None
    ]

    def compute(ctx: RuleContext) -> Patches:
        patches: Patches = {}
        for idx, row in enumerate(ctx.rows(f.key)):
            values = [row.get(k) for k in sources]
            for col in calc_columns:
                patches[cell(f.key, idx, col.key)] = _CALCS[col.calc](values)  # type: ignore[index]
        return patches

    return Rule(name=f"{f.key} row calc", compute=compute)


def matrix_summary_rule(f: FormField) -> Rule | None:
    if not f.show_summary_columns:
        return None
    sides = ("p1",) if f.weight_mode else ("p1", "p2")

    def compute(ctx: RuleContext) -> Patches:
        patches: Patches = {}
        for idx, entry in enumerate(ctx.rows(f.key)):
            values = flatten_details([entry], sides)
            patches[cell(f.key, idx, "x")] = average(values, 2)
            if not f.show_only_average:
                patches[cell(f.key, idx, "max")] = maximum(values)
                patches[cell(f.key, idx, "min")] = minimum(values)
        return patches

    return Rule(name=f"{f.key} entry summary", compute=compute)


def register_kind_rules(registry: RuleRegistry) -> None:
    registry.register_kind(FieldKind.DYNAMIC_TABLE, table_calc_rule)
    registry.register_kind(FieldKind.PRESSURE_MATRIX, matrix_summary_rule)


def _hydrate_table_row(row: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(row)
    out[ROW_ID] = str(uuid.uuid4())
    return out


def _hydrate_matrix_entry(row: dict[str, Any]) -> dict[str, Any]:
    out = _hydrate_table_row(row)
    if not isinstance(out.get("detalles"), list):
        out["detalles"] = []
    return out


_HYDRATORS: dict[FieldKind, Callable[[dict[str, Any]], dict[str, Any]]] = {
    FieldKind.DYNAMIC_TABLE: _hydrate_table_row,
    FieldKind.PRESSURE_MATRIX: _hydrate_matrix_entry,
}


def hydrate_initial_rows(f: FormField) -> list[dict[str, Any]]:
    """Fresh copies of a field's initial rows, each with its own new id."""
    hydrate = _HYDRATORS.get(f.kind, _hydrate_table_row)
    return [hydrate(row) for row in f.initial_rows]
