from __future__ import annotations

from typing import Any

from ...models.document import EMPTY, new_row
from ..aggregates import average, column_values, maximum, minimum, numeric_values, round_half_away, sum_values, to_number
from ..recalculation import Patches, Rule, RuleContext
from .common import (
    cell,
    pressure_globals_patches,
    series,
    variety_reset_rule,
)
from ..synchronizer import distinct_labels, sync_rows

"""REG.CKU.013 Pre-cosecha.

Calibres typed fruit by fruit in ``matriz_frutos_externo`` drive the rows of the
pressure and seed colour matrices; calibres present in the pressure matrix drive
the starch matrix. Summary fields follow.
"""

TEMPLATE_ID = "REG.CKU.013"

VARIETY_PATH = "variedad_rotulada_grupo"
SEED_COLUMNS = ("sem_0", "sem_1_8", "sem_1_4", "sem_1_2", "sem_3_4", "sem_1")
STARCH_COLUMNS = tuple(series("f", 10))
MALIC_ACID_FACTOR = 0.067


def _pressure_entry(label: str) -> dict[str, Any]:
    return new_row(calibre=label, n_frutos=0, brix=0, detalles=[])


def _seed_row(label: str) -> dict[str, Any]:
    return new_row(calibre=label, **{k: EMPTY for k in SEED_COLUMNS})


def _starch_row(label: str) -> dict[str, Any]:
    return new_row(calibre=label, **{k: EMPTY for k in STARCH_COLUMNS})


def sync_calibres(ctx: RuleContext) -> Patches:
    if ctx.get("matriz_frutos_externo") is None:
        return {}
    labels = distinct_labels(ctx.rows("matriz_frutos_externo"), "calibre")
    return {
        "matriz_presiones": sync_rows(labels, ctx.rows("matriz_presiones"), "calibre", _pressure_entry),
        "matriz_color_semilla": sync_rows(labels, ctx.rows("matriz_color_semilla"), "calibre", _seed_row),
    }


def pressure_globals(ctx: RuleContext) -> Patches:
    if ctx.get("matriz_presiones") is None:
        return {}
    entries = ctx.rows("matriz_presiones")
    patches = pressure_globals_patches(entries)
    brix = [e.get("brix") for e in entries]
    patches["sol_promedio"] = average(brix, 1)
    return patches


def sync_starch_rows(ctx: RuleContext) -> Patches:
    if ctx.get("matriz_presiones") is None:
        return {}
    labels = distinct_labels(ctx.rows("matriz_presiones"), "calibre")
    return {"matriz_almidon_sol": sync_rows(labels, ctx.rows("matriz_almidon_sol"), "calibre", _starch_row)}


def seed_colour_totals(ctx: RuleContext) -> Patches:
    if ctx.get("matriz_color_semilla") is None:
        return {}
    rows = ctx.rows("matriz_color_semilla")
    totals = ctx.rows("suma_color_semilla")
    if not totals:
        return {"suma_color_semilla": [new_row(**{k: sum_values(r.get(k) for r in rows) for k in SEED_COLUMNS})]}
    return {cell("suma_color_semilla", 0, k): sum_values(r.get(k) for r in rows) for k in SEED_COLUMNS}


def external_averages(ctx: RuleContext) -> Patches:
    if ctx.get("matriz_frutos_externo") is None:
        return {}
    rows = ctx.rows("matriz_frutos_externo")
    return {
        "promedio_diametro": average((r.get("diametro") for r in rows), 2),
        "promedio_peso": average((r.get("peso") for r in rows), 2),
    }


def cover_colour_average(ctx: RuleContext) -> Patches:
    if ctx.get("matriz_color_cubrimiento") is None:
        return {}
    rows = ctx.rows("matriz_color_cubrimiento")
    return {"promedio_color_cubrimiento": average((r.get("color_cubrimiento") for r in rows), 1)}


def malic_acid(ctx: RuleContext) -> Patches:
    if ctx.get("gasto_ml") is None:
        return {}
    gasto = to_number(ctx.get("gasto_ml"))
    return {"ac_malico_pct": EMPTY if gasto is None else round_half_away(gasto * MALIC_ACID_FACTOR, 3)}


def starch_globals(ctx: RuleContext) -> Patches:
    if ctx.get("matriz_almidon_sol") is None:
        return {}
    values = numeric_values(column_values(ctx.rows("matriz_almidon_sol"), STARCH_COLUMNS))
    return {
        "almidon_promedio": average(values, 2),
        "almidon_max": maximum(values),
        "almidon_min": minimum(values),
    }


RULES = [
    variety_reset_rule("matriz_categorias_calibre", VARIETY_PATH),
    Rule("sync calibres into pressure and seed matrices", sync_calibres),
    Rule("pressure and brix globals", pressure_globals),
    Rule("sync calibres into starch matrix", sync_starch_rows),
    Rule("seed colour totals", seed_colour_totals),
    Rule("external diameter and weight averages", external_averages),
    Rule("cover colour average", cover_colour_average, governed_by="promedio_color_cubrimiento"),
    Rule("malic acid", malic_acid),
    Rule("starch globals", starch_globals),
]
