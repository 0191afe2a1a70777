from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ...models.document import is_empty, new_row
from ..aggregates import (
    average,
    flatten_details,
    maximum,
    minimum,
    numeric_values,
    sum_values,
    to_number,
)
from ..reconciler import implied_units
from ..recalculation import Patches, Rule, RuleContext, SchemaRule

"""Rule builders shared by several templates.

Helpers return patches keyed by cell path (``table.row.column``) so the driver
writes, and folds into the snapshot, only the cells that actually moved.
"""

__all__ = [
    "cell",
    "series",
    "find_index",
    "stat_rows_patches",
    "pressure_globals_patches",
    "variety_reset_rule",
    "variety_schema_rule",
    "internal_market_rule",
    "units_of",
    "STAT_LABELS",
]

STAT_LABELS = ("X", "MAX", "MIN")


def cell(table_key: str, index: int, column: str) -> str:
    return f"{table_key}.{index}.{column}"


def series(prefix: str, count: int) -> list[str]:
    return [f"{prefix}{i}" for i in range(1, count + 1)]


def find_index(rows: Sequence[dict[str, Any]], column: str, label: str) -> int | None:
    for idx, row in enumerate(rows):
        if row.get(column) == label:
            return idx
    return None


def stat_rows_patches(
    ctx: RuleContext,
    table_key: str,
    column: str,
    values: Sequence[Any],
    places: int = 2,
    label_column: str = "estadistico",
) -> Patches:
    """Fill the X / MAX / MIN rows of a summary table column."""
    rows = ctx.rows(table_key)
    stats = {"X": average(values, places), "MAX": maximum(values), "MIN": minimum(values)}
    patches: Patches = {}
    for label in STAT_LABELS:
        idx = find_index(rows, label_column, label)
        if idx is not None:
            patches[cell(table_key, idx, column)] = stats[label]
    return patches


def pressure_globals_patches(
    entries: Sequence[dict[str, Any]],
    targets: tuple[str, str, str] = ("presion_promedio", "presion_max", "presion_min"),
    places: int = 2,
    require_samples: bool = False,
) -> Patches:
    """Average / max / min over every entry's p1 and p2, across entries.

    With ``require_samples`` the statistics stay blank until at least one entry
    declares a positive ``n_frutos``.
    """
    values = numeric_values(flatten_details(entries))
    if require_samples:
        declared = sum(n for n in numeric_values(e.get("n_frutos") for e in entries) if n > 0)
        if declared <= 0:
            values = []
    avg_key, max_key, min_key = targets
    return {
        avg_key: average(values, places),
        max_key: maximum(values),
        min_key: minimum(values),
    }


def variety_reset_rule(table_key: str, variety_path: str) -> Rule:
    """A new variety group invalidates the category table: back to one fixed row."""

    def compute(ctx: RuleContext) -> Patches:
        if not ctx.changed(variety_path):
            return {}
        return {table_key: [new_row(fixed=True)]}

    return Rule(name=f"reset {table_key} on variety change", compute=compute)


def variety_schema_rule() -> SchemaRule:
    """Category columns ``cat_0..cat_n`` labelled per variety group.

    Reads the template's ``variety_schemas`` block (``table``, ``variety_path``,
    ``labels``). Unknown varieties remove the table's dynamic schema. The schema
    is only rebuilt when its labels differ, so typed values keep their keys.
    """

    def compute(ctx: RuleContext) -> dict[str, Any]:
        conf = ctx.template.variety_schemas
        if not conf:
            return {}
        table_key = conf["table"]
        variety = ctx.get(conf["variety_path"])
        if is_empty(variety):
            return {}
        labels = conf.get("labels", {}).get(str(variety).strip())
        if not labels:
            return {table_key: None}
        current = ctx.dynamic_schemas.get(table_key) or []
        if [c.get("label") for c in current] == list(labels):
            return {}
        return {
            table_key: [
                {"key": f"cat_{i}", "label": label, "type": "integer", "required": False}
                for i, label in enumerate(labels)
            ]
        }

    return SchemaRule(name="variety columns", compute=compute)


def internal_market_rule(
    table_key: str = "tabla_mercado_interno",
    columns: Sequence[str] = tuple(series("f", 30)),
    count_label: str = "N° frutos",
    total_path: str = "total_frutos_mercado_interno",
) -> Rule:
    """Column sums into the fruit-count row, their total, and a mean per row."""

    def compute(ctx: RuleContext) -> Patches:
        rows = ctx.rows(table_key)
        if not rows:
            return {}
        patches: Patches = {}
        count_idx = find_index(rows, "defecto", count_label)
        sums: dict[str, Any] = {}
        if count_idx is not None:
            defect_rows = [r for i, r in enumerate(rows) if i != count_idx]
            for col in columns:
                sums[col] = sum_values(r.get(col) for r in defect_rows)
                patches[cell(table_key, count_idx, col)] = sums[col]
            patches[total_path] = sum_values(sums.values())
        for idx, row in enumerate(rows):
            source = sums if idx == count_idx else row
            patches[cell(table_key, idx, "promedio_x")] = average((source.get(c) for c in columns), 2)
        return patches

    return Rule(name=f"{table_key} totals", compute=compute)


def units_of(value: Any, denominator: float | None) -> int | float | None:
    """Fruit count behind a stored cell; raw units when there is no denominator."""
    if denominator is None:
        return to_number(value)
    return implied_units(value, denominator)
