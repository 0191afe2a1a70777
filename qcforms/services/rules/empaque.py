from __future__ import annotations

from typing import Any

from ...models.document import EMPTY, ROW_ID, is_empty, new_row
from ..aggregates import average, count_non_empty, numeric_values, to_number
from ..change_detector import find_row
from ..reconciler import reconcile_cell, to_percentage, valid_denominator
from ..recalculation import Patches, Rule, RuleContext
from .common import (
    cell,
    find_index,
    internal_market_rule,
    pressure_globals_patches,
    series,
    units_of,
)

"""REG.CKU.017 Empaque.

Line tables 3B (defects) and 3C (off-category) take fruit counts per packing
line and store them as a share of the sampled ``calibre``. When ``calibre``
itself changes, untouched cells are rebased on it. Summary rows (Comercial,
% Comercial, Resolución) are never reconciled.
"""

TEMPLATE_ID = "REG.CKU.017"

DENOMINATOR_PATH = "calibre"
LINE_COLUMNS = tuple(series("l", 30))
WEIGHT_COLUMNS = tuple(series("c", 10))
LINE_TABLES = ("tabla_danos_defectos", "tabla_fuera_categoria")
SUMMARY_CONCEPTS = frozenset({"Comercial", "% Comercial", "Resolución"})


def _previous_row(ctx: RuleContext, table_key: str, idx: int, row: dict[str, Any]) -> dict[str, Any] | None:
    key = row.get(ROW_ID)
    return find_row(ctx.previous_rows(table_key), key if key else idx)


def line_autocomplete(ctx: RuleContext) -> Patches:
    """Typing a producer on a line fills that line's calibre and category."""
    rows = ctx.rows("tabla_datos_linea")
    producer = find_index(rows, "concepto", "Productor")
    if producer is None or not ctx.previous_rows("tabla_datos_linea"):
        return {}
    targets = {
        label: find_index(rows, "concepto", label) for label in ("Calibre", "Categoría")
    }
    source = {
        "Calibre": EMPTY if is_empty(ctx.get("calibre")) else ctx.get("calibre"),
        "Categoría": EMPTY if is_empty(ctx.get("categoria")) else ctx.get("categoria"),
    }
    row_key = rows[producer].get(ROW_ID) or producer
    patches: Patches = {}
    for col in LINE_COLUMNS:
        if not ctx.edited("tabla_datos_linea", row_key, col):
            continue
        typed = rows[producer].get(col)
        filled = isinstance(typed, str) and typed.strip() != ""
        for label, idx in targets.items():
            if idx is not None:
                patches[cell("tabla_datos_linea", idx, col)] = source[label] if filled else EMPTY
    return patches


def reconcile_lines(ctx: RuleContext) -> Patches:
    """Units -> % of calibre for 3B / 3C cells, plus each row's mean in units."""
    cur_den = ctx.get(DENOMINATOR_PATH)
    prev_den = ctx.get_previous(DENOMINATOR_PATH)
    den = valid_denominator(cur_den)
    patches: Patches = {}
    for table_key in LINE_TABLES:
        for idx, row in enumerate(ctx.rows(table_key)):
            if row.get("concepto") in SUMMARY_CONCEPTS:
                patches[cell(table_key, idx, "promedio_fila")] = EMPTY
                continue
            prev_row = _previous_row(ctx, table_key, idx, row) or {}
            units: list[Any] = []
            for col in LINE_COLUMNS:
                path = cell(table_key, idx, col)
                stored = reconcile_cell(path, row.get(col), prev_row.get(col), cur_den, prev_den)
                if stored != row.get(col):
                    patches[path] = stored
                if not is_empty(stored):
                    units.append(units_of(stored, den))
            patches[cell(table_key, idx, "promedio_fila")] = average(units, 2)
    return patches


def commercial_totals(ctx: RuleContext) -> Patches:
    rows = ctx.rows("tabla_danos_defectos")
    total_idx = find_index(rows, "concepto", "Comercial")
    share_idx = find_index(rows, "concepto", "% Comercial")
    if total_idx is None or share_idx is None:
        return {}
    den = valid_denominator(ctx.get(DENOMINATOR_PATH))
    sources = [r for r in rows if r.get("concepto") not in SUMMARY_CONCEPTS]
    patches: Patches = {}
    for col in LINE_COLUMNS:
        cells = [r.get(col) for r in sources if not is_empty(r.get(col))]
        if not cells:
            total: Any = EMPTY
        else:
            total = sum(u for u in (units_of(v, den) for v in cells) if u is not None)
        patches[cell("tabla_danos_defectos", total_idx, col)] = total
        patches[cell("tabla_danos_defectos", share_idx, col)] = (
            EMPTY if is_empty(total) else to_percentage(total, den)
        )
    return patches


def first_pressure_entry(ctx: RuleContext) -> Patches:
    """The first pressure entry follows the sampled calibre."""
    calibre = ctx.get(DENOMINATOR_PATH)
    label = EMPTY if is_empty(calibre) else str(calibre)
    entries = ctx.rows("presiones_por_calibre")
    if label:
        if not entries:
            return {"presiones_por_calibre": [new_row(calibre=label, n_frutos=0, detalles=[])]}
        return {cell("presiones_por_calibre", 0, "calibre"): label}
    if len(entries) == 1 and entries[0].get("calibre") and not to_number(entries[0].get("n_frutos")):
        return {"presiones_por_calibre": []}
    if entries and entries[0].get("calibre"):
        return {cell("presiones_por_calibre", 0, "calibre"): EMPTY}
    return {}


def pressure_globals(ctx: RuleContext) -> Patches:
    if ctx.get("presiones_por_calibre") is None:
        return {}
    return pressure_globals_patches(ctx.rows("presiones_por_calibre"), require_samples=True)


def weight_control(ctx: RuleContext) -> Patches:
    """Boxes weighed per row, their mean, and the mean over every box."""
    calibre = ctx.get(DENOMINATOR_PATH)
    label = EMPTY if is_empty(calibre) or to_number(calibre) == 0 else str(calibre)
    rows = ctx.rows("tabla_control_peso")
    if label and not rows:
        # a fresh row has no boxes yet, so its figures and the general mean are final
        return {
            "tabla_control_peso": [new_row(calibre=label, n_cajas=0, promedio=EMPTY)],
            "promedio_pesos_general": EMPTY,
        }
    if not rows:
        return {}
    patches: Patches = {}
    weights: list[Any] = []
    for idx, row in enumerate(rows):
        values = numeric_values(row.get(c) for c in WEIGHT_COLUMNS)
        weights.extend(values)
        patches[cell("tabla_control_peso", idx, "calibre")] = label
        patches[cell("tabla_control_peso", idx, "n_cajas")] = count_non_empty(values)
        patches[cell("tabla_control_peso", idx, "promedio")] = average(values, 2)
    patches["promedio_pesos_general"] = average(weights, 2)
    return patches


RULES = [
    Rule("line autocomplete from producer", line_autocomplete),
    Rule("reconcile line percentages against calibre", reconcile_lines),
    Rule("commercial totals", commercial_totals),
    Rule("first pressure entry calibre", first_pressure_entry),
    Rule("pressure globals", pressure_globals),
    Rule("weight control", weight_control),
    internal_market_rule(),
]
