from __future__ import annotations

from ...models.document import EMPTY
from ..aggregates import round_half_away, to_number
from ..reconciler import to_percentage, valid_denominator
from ..recalculation import Patches, Rule, RuleContext
from .common import cell, find_index, variety_reset_rule

"""REG.CKU.015 Proyección embalaje.

Unit columns of the defect and pest tables are shown next to their share of
``recepcion.tamano_muestra``. The packing projection expresses each category's
fruit count the same way, and the exportable summary is whatever the sample
holds beyond the Comercial category.
"""

TEMPLATE_ID = "REG.CKU.015"

VARIETY_PATH = "recepcion.variedad_rotulada_grupo"
SAMPLE_SIZE_PATH = "recepcion.tamano_muestra"
DEFAULT_SAMPLE_SIZE = 50

UNIT_TABLES = ("danos_defectos", "plagas_enfermedades")
UNIT_COLUMNS = (("leve_unidades", "leve_pct"), ("grave_unidades", "grave_pct"))


def unit_percentages(ctx: RuleContext) -> Patches:
    sample_size = ctx.get(SAMPLE_SIZE_PATH)
    patches: Patches = {}
    for table_key in UNIT_TABLES:
        for idx, row in enumerate(ctx.rows(table_key)):
            for units_key, pct_key in UNIT_COLUMNS:
                patches[cell(table_key, idx, pct_key)] = to_percentage(row.get(units_key), sample_size)
    return patches


def projection_percentages(ctx: RuleContext) -> Patches:
    sample_size = ctx.get(SAMPLE_SIZE_PATH)
    return {
        cell("tabla_proyeccion_embalaje", idx, "porcentaje"): to_percentage(row.get("n_frutos"), sample_size)
        for idx, row in enumerate(ctx.rows("tabla_proyeccion_embalaje"))
    }


def exportable_fruit(ctx: RuleContext) -> Patches:
    if not ctx.rows("resumen_fruta_exportable"):
        return {}
    projection = ctx.rows("tabla_proyeccion_embalaje")
    idx = find_index(projection, "categoria", "Comercial")
    commercial = to_number(projection[idx].get("n_frutos")) if idx is not None else None
    sample_size = valid_denominator(ctx.get(SAMPLE_SIZE_PATH))
    quantity, share = EMPTY, EMPTY
    if sample_size is not None and commercial is not None:
        remaining = max(0, sample_size - commercial)
        quantity = int(remaining) if float(remaining).is_integer() else remaining
        share = round_half_away(remaining / sample_size * 100, 1)
    return {
        cell("resumen_fruta_exportable", 0, "cantidad_exportable"): quantity,
        cell("resumen_fruta_exportable", 0, "porcentaje_exportable"): share,
    }


RULES = [
    variety_reset_rule("tabla_color_cubrimiento", VARIETY_PATH),
    Rule("defect and pest percentages", unit_percentages),
    Rule("packing projection percentages", projection_percentages),
    Rule("exportable fruit", exportable_fruit),
]
