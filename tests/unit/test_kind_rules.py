from __future__ import annotations

from qcforms.models.document import ROW_ID
from qcforms.models.template import FieldKind, FormField
from qcforms.services.rules.kinds import hydrate_initial_rows, matrix_summary_rule, table_calc_rule


def test_calc_column_averages_row_inputs(new_session):
    s = new_session("REG.CKU.022")
    s.set_fields({"matriz_fruto_3.0.c1": 3, "matriz_fruto_3.0.c2": 5, "matriz_fruto_3.0.porcentaje": 100})
    assert s.get("matriz_fruto_3.0.cx") == 4.0
    assert s.get("matriz_fruto_3.1.cx") == ""


def test_only_average_for_single_summary_matrix(new_session):
    s = new_session("REG.CKU.022")
    s.set_field("matriz_presiones.0.detalles", [{"p1": 10, "p2": 12}, {"p1": 14, "p2": ""}])
    entry = s.get("matriz_presiones.0")
    assert entry["x"] == 12.0
    assert "max" not in entry
    assert "min" not in entry


def test_weight_mode_reads_p1_only(new_session):
    s = new_session("REG.CKU.018")
    s.set_fields(
        {
            "tabla_control_peso.0.detalles": [{"p1": 18.4, "p2": 99}, {"p1": 18.6}],
            "matriz_presiones.0.detalles": [{"p1": 15, "p2": 17}],
        }
    )
    weights = s.get("tabla_control_peso.0")
    assert (weights["x"], weights["max"], weights["min"]) == (18.5, 18.6, 18.4)
    pressures = s.get("matriz_presiones.0")
    assert (pressures["x"], pressures["max"], pressures["min"]) == (16.0, 17, 15)


def test_no_rule_without_calc_or_summary():
    plain = FormField(key="t", label="T", kind=FieldKind.DYNAMIC_TABLE)
    assert table_calc_rule(plain) is None
    assert matrix_summary_rule(FormField(key="m", label="M", kind=FieldKind.PRESSURE_MATRIX)) is None


def test_hydrated_rows_get_fresh_ids():
    f = FormField(
        key="m",
        label="M",
        kind=FieldKind.PRESSURE_MATRIX,
        initial_rows=({"calibre": "", "n_frutos": 0},),
    )
    first = hydrate_initial_rows(f)
    second = hydrate_initial_rows(f)
    assert first[0][ROW_ID] != second[0][ROW_ID]
    assert first[0]["detalles"] == []
    assert ROW_ID not in f.initial_rows[0]
