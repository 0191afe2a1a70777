from __future__ import annotations

from typing import Any

from ...models.document import EMPTY, ROW_ID, is_empty, new_row
from ..aggregates import round_half_away, to_number
from ..change_detector import find_row
from ..reconciler import reconcile_cell, to_percentage, valid_denominator
from ..recalculation import Patches, Rule, RuleContext
from .common import cell, find_index, internal_market_rule, series, units_of

"""REG.CKU.018 C.K.U Presizer.

Each presizer channel has its own fruit count (row ``Nº Frutos`` of table 4A).
Tables 4B and 4C store per-channel shares of that count: typed cells are units,
untouched cells are rebased when the channel's count changes.
"""

__all__ = [
    "TEMPLATE_ID",
    "RULES",
    "channel_denominators",
]

TEMPLATE_ID = "REG.CKU.018"

CHANNEL_COLUMNS = tuple(series("ch", 50))
BASE_TABLE = "tabla_datos_canal"
BASE_CONCEPT = "Nº Frutos"
CHANNEL_TABLES = ("tabla_fuera_categoria_canal", "tabla_danos_defectos_canal")
SUMMARY_CONCEPTS = frozenset({"Comercial", "% Comercial", "Calibre", "% Calibre", "Resolución"})


def channel_denominators(rows: list[dict[str, Any]]) -> dict[str, Any]:
    idx = find_index(rows, "concepto", BASE_CONCEPT)
    if idx is None:
        return {}
    return {ch: rows[idx].get(ch) for ch in CHANNEL_COLUMNS}


def entry_tags(ctx: RuleContext) -> Patches:
    """``cant_te`` decides how many entry tags are listed."""
    raw = ctx.get("cant_te")
    wanted = 0 if is_empty(raw) else to_number(raw)
    if wanted is None or wanted < 0:
        return {}
    wanted = int(wanted)
    rows = ctx.rows("te")
    if len(rows) == wanted:
        return {}
    if len(rows) > wanted:
        return {"te": rows[:wanted]}
    added = [
        new_row(n_tarja=str(i + 1), tarja_entrada=EMPTY, fixed=True)
        for i in range(len(rows), wanted)
    ]
    return {"te": list(rows) + added}


def reconcile_channels(ctx: RuleContext) -> Patches:
    if not ctx.rows(BASE_TABLE):
        return {}
    current = channel_denominators(ctx.rows(BASE_TABLE))
    previous = channel_denominators(ctx.previous_rows(BASE_TABLE)) or current
    patches: Patches = {}
    for table_key in CHANNEL_TABLES:
        prev_rows = ctx.previous_rows(table_key)
        for idx, row in enumerate(ctx.rows(table_key)):
            if row.get("concepto") in SUMMARY_CONCEPTS:
                continue
            prev_row = find_row(prev_rows, row.get(ROW_ID) or idx) or {}
            for ch in CHANNEL_COLUMNS:
                path = cell(table_key, idx, ch)
                stored = reconcile_cell(path, row.get(ch), prev_row.get(ch), current.get(ch), previous.get(ch))
                if stored != row.get(ch):
                    patches[path] = stored
    return patches


def commercial_channels(ctx: RuleContext) -> Patches:
    """4C Comercial holds the defect units per channel; % Comercial their share."""
    rows = ctx.rows("tabla_danos_defectos_canal")
    total_idx = find_index(rows, "concepto", "Comercial")
    share_idx = find_index(rows, "concepto", "% Comercial")
    if total_idx is None and share_idx is None:
        return {}
    denominators = channel_denominators(ctx.rows(BASE_TABLE))
    sources = [r for r in rows if r.get("concepto") not in SUMMARY_CONCEPTS]
    patches: Patches = {}
    for ch in CHANNEL_COLUMNS:
        den = valid_denominator(denominators.get(ch))
        units = [units_of(r.get(ch), den) for r in sources if not is_empty(r.get(ch))]
        units = [u for u in units if u is not None]
        total: Any = round_half_away(sum(units), 0) if units else EMPTY
        if total_idx is not None:
            patches[cell("tabla_danos_defectos_canal", total_idx, ch)] = total
        if share_idx is not None and denominators:
            patches[cell("tabla_danos_defectos_canal", share_idx, ch)] = to_percentage(
                0 if is_empty(total) else total, den
            )
    return patches


RULES = [
    Rule("entry tags sized by cant_te", entry_tags),
    Rule("reconcile channel percentages against fruit counts", reconcile_channels),
    Rule("commercial per channel", commercial_channels),
    internal_market_rule(),
]
