from __future__ import annotations

from typing import Any

from ...models.document import EMPTY
from ..aggregates import (
    average,
    maximum,
    minimum,
    numeric_values,
    round_half_away,
    to_number,
)
from ..reconciler import valid_denominator
from ..recalculation import Patches, Rule, RuleContext
from .common import STAT_LABELS, cell, series, stat_rows_patches

"""REG.CKU.014 Recepción madurez.

Three calibre groups (grande / mediano / chico) each carry a table of partial
pressures; their X / MAX / MIN land in one summary table per group and in a
general summary. Starch readings follow the same pattern. The water-core matrix
is expressed against ``identificacion.tamano_muestra``.
"""

TEMPLATE_ID = "REG.CKU.014"

SAMPLE_SIZE_PATH = "identificacion.tamano_muestra"

PRESSURE_GROUPS = (
    ("tabla_parciales", "matriz_resumen_presiones_grande", "grande"),
    ("tabla_parciales_mediano", "matriz_resumen_presiones_mediano", "mediano"),
    ("tabla_parciales_chico", "matriz_resumen_presiones_chico", "chico"),
)
STARCH_COLUMNS = (
    ("almidon_grande", "grande"),
    ("almidon_mediano", "mediano"),
    ("almidon_chico", "chico"),
)
WATER_CORE_COLUMNS = tuple(series("g", 4))
WATER_CORE_GROUPS = 3


def _stat_cells(rows: list[dict[str, Any]], column: str) -> dict[str, Any]:
    """X / MAX / MIN of a three-row summary column, by position."""
    return {label: rows[i].get(column) if i < len(rows) else None for i, label in enumerate(STAT_LABELS)}


def _combine(columns: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "X": average((c["X"] for c in columns), 2),
        "MAX": maximum(c["MAX"] for c in columns),
        "MIN": minimum(c["MIN"] for c in columns),
    }


def _write_stats(table_key: str, column: str, stats: dict[str, Any]) -> Patches:
    return {cell(table_key, i, column): stats[label] for i, label in enumerate(STAT_LABELS)}


def pressure_summaries(ctx: RuleContext) -> Patches:
    patches: Patches = {}
    for source, summary, column in PRESSURE_GROUPS:
        if len(ctx.rows(summary)) != len(STAT_LABELS):
            continue
        values: list[Any] = []
        for row in ctx.rows(source):
            values.extend(numeric_values([row.get("presion_1"), row.get("presion_2")]))
        patches.update(stat_rows_patches(ctx, summary, column, values))
    return patches


def general_pressure_summary(ctx: RuleContext) -> Patches:
    if len(ctx.rows("matriz_resumen_presion_general")) != len(STAT_LABELS):
        return {}
    columns = [_stat_cells(ctx.rows(summary), column) for _, summary, column in PRESSURE_GROUPS]
    return _write_stats("matriz_resumen_presion_general", "general", _combine(columns))


def starch_summary(ctx: RuleContext) -> Patches:
    if len(ctx.rows("matriz_resumen_almidon")) != len(STAT_LABELS):
        return {}
    rows = ctx.rows("parciales")
    patches: Patches = {}
    for source, target in STARCH_COLUMNS:
        values = numeric_values(r.get(source) for r in rows)
        stats = {"X": average(values, 2), "MAX": maximum(values), "MIN": minimum(values)}
        patches.update(_write_stats("matriz_resumen_almidon", target, stats))
    return patches


def starch_global_summary(ctx: RuleContext) -> Patches:
    by_calibre = ctx.rows("matriz_resumen_almidon")
    if len(ctx.rows("matriz_resumen_almidon_global")) != len(STAT_LABELS) or len(by_calibre) != len(STAT_LABELS):
        return {}
    columns = [_stat_cells(by_calibre, target) for _, target in STARCH_COLUMNS]
    return _write_stats("matriz_resumen_almidon_global", "global", _combine(columns))


def _share(values: list[Any], sample_size: Any) -> Any:
    numbers = numeric_values(values)
    if not numbers or not valid_denominator(sample_size):
        return EMPTY
    return round_half_away(sum(numbers) / to_number(sample_size) * 100, 1)


def water_core_percentages(ctx: RuleContext) -> Patches:
    rows = ctx.rows("matriz_corazon_acuoso")
    if len(rows) != WATER_CORE_GROUPS + 1:
        return {}
    sample_size = ctx.get(SAMPLE_SIZE_PATH)
    return {
        cell("matriz_corazon_acuoso", WATER_CORE_GROUPS, c): _share(
            [rows[i].get(c) for i in range(WATER_CORE_GROUPS)], sample_size
        )
        for c in WATER_CORE_COLUMNS
    }


def water_core_averages(ctx: RuleContext) -> Patches:
    rows = ctx.rows("matriz_corazon_acuoso")
    targets = ctx.rows("matriz_promedios_cor_acuoso")
    if len(rows) < WATER_CORE_GROUPS or len(targets) != WATER_CORE_GROUPS:
        return {}
    sample_size = ctx.get(SAMPLE_SIZE_PATH)
    return {
        cell("matriz_promedios_cor_acuoso", i, "promedio"): _share(
            [rows[i].get(c) for c in WATER_CORE_COLUMNS], sample_size
        )
        for i in range(WATER_CORE_GROUPS)
    }


RULES = [
    Rule("pressure summaries per calibre", pressure_summaries),
    Rule("general pressure summary", general_pressure_summary),
    Rule("starch summary per calibre", starch_summary),
    Rule("global starch summary", starch_global_summary),
    Rule("water core percentage row", water_core_percentages),
    Rule("water core averages", water_core_averages),
]
