from __future__ import annotations

from unittest.mock import patch

import pytest

from tests.conftest import row_index


def _damage_rows(s):
    rows = s.get("tabla_danos_defectos")
    return row_index(rows, "concepto", "Comercial"), row_index(rows, "concepto", "% Comercial")


def test_line_units_stored_as_share_of_calibre(new_session):
    s = new_session("REG.CKU.017")
    s.set_fields({"calibre": 50, "tabla_danos_defectos.0.l1": 5})
    row = s.get("tabla_danos_defectos.0")
    assert row["l1"] == 10.0
    assert row["promedio_fila"] == 5.0

    total, share = _damage_rows(s)
    assert (total, share) == (14, 15)
    assert s.get(f"tabla_danos_defectos.{total}.l1") == 5
    assert s.get(f"tabla_danos_defectos.{share}.l1") == 10.0
    assert s.get(f"tabla_danos_defectos.{total}.l2") == ""
    assert s.get(f"tabla_danos_defectos.{share}.promedio_fila") == ""


def test_calibre_change_rebases_untouched_cells(new_session):
    s = new_session("REG.CKU.017")
    s.set_field("calibre", 50)
    s.set_field("tabla_danos_defectos.0.l1", 5)
    s.set_field("calibre", 25)
    assert s.get("tabla_danos_defectos.0.l1") == 20.0
    assert s.get("tabla_danos_defectos.0.promedio_fila") == 5.0
    _, share = _damage_rows(s)
    assert s.get(f"tabla_danos_defectos.{share}.l1") == 20.0


def test_units_kept_raw_without_calibre(new_session):
    s = new_session("REG.CKU.017")
    s.set_field("tabla_danos_defectos.2.l4", 3)
    assert s.get("tabla_danos_defectos.2.l4") == 3
    assert s.get("tabla_danos_defectos.2.promedio_fila") == 3.0


def test_off_category_table_reconciles_but_not_resolution(new_session):
    s = new_session("REG.CKU.017")
    rows = s.get("tabla_fuera_categoria")
    superior = row_index(rows, "concepto", "Superior %")
    resolution = row_index(rows, "concepto", "Resolución")
    s.set_fields(
        {
            "calibre": 40,
            f"tabla_fuera_categoria.{superior}.l1": 8,
            f"tabla_fuera_categoria.{resolution}.l1": "Aprobado",
        }
    )
    assert s.get(f"tabla_fuera_categoria.{superior}.l1") == 20.0
    assert s.get(f"tabla_fuera_categoria.{resolution}.l1") == "Aprobado"


def test_producer_fills_line_calibre_and_category(new_session):
    s = new_session("REG.CKU.017")
    s.set_fields({"calibre": 80, "categoria": "XFY"})
    rows = s.get("tabla_datos_linea")
    calibre_idx = row_index(rows, "concepto", "Calibre")
    category_idx = row_index(rows, "concepto", "Categoría")

    s.set_field("tabla_datos_linea.0.l1", "AGRICOLA SUR")
    assert s.get(f"tabla_datos_linea.{calibre_idx}.l1") == 80
    assert s.get(f"tabla_datos_linea.{category_idx}.l1") == "XFY"
    assert s.get(f"tabla_datos_linea.{calibre_idx}.l2") == ""

    s.set_field("tabla_datos_linea.0.l1", "")
    assert s.get(f"tabla_datos_linea.{calibre_idx}.l1") == ""
    assert s.get(f"tabla_datos_linea.{category_idx}.l1") == ""


def test_first_pressure_entry_follows_calibre(new_session):
    s = new_session("REG.CKU.017")
    assert s.get("presiones_por_calibre") == []
    s.set_field("calibre", 80)
    entries = s.get("presiones_por_calibre")
    assert len(entries) == 1
    assert entries[0]["calibre"] == "80"
    s.set_field("calibre", "")
    assert s.get("presiones_por_calibre") == []


def test_pressure_globals_need_declared_samples(new_session):
    s = new_session("REG.CKU.017")
    s.set_field("calibre", 80)
    s.set_field("presiones_por_calibre.0.detalles", [{"p1": 14, "p2": 16}])
    assert s.get("presion_promedio") == ""
    s.set_field("presiones_por_calibre.0.n_frutos", 2)
    assert s.get("presion_promedio") == 15.0
    assert (s.get("presion_max"), s.get("presion_min")) == (16, 14)


def test_weight_control(new_session):
    s = new_session("REG.CKU.017")
    s.set_field("calibre", 80)
    row = s.get("tabla_control_peso.0")
    assert (row["calibre"], row["n_cajas"]) == ("80", 0)
    s.set_fields({"tabla_control_peso.0.c1": 18.5, "tabla_control_peso.0.c2": "19.5"})
    row = s.get("tabla_control_peso.0")
    assert row["n_cajas"] == 2
    assert row["promedio"] == 19.0
    assert s.get("promedio_pesos_general") == 19.0


def test_internal_market_totals(new_session):
    s = new_session("REG.CKU.017")
    assert s.get("total_frutos_mercado_interno") == ""
    s.set_fields({"tabla_mercado_interno.0.f1": 2, "tabla_mercado_interno.1.f1": 3})
    count = row_index(s.get("tabla_mercado_interno"), "defecto", "N° frutos")
    assert count == 27
    assert s.get(f"tabla_mercado_interno.{count}.f1") == 5
    assert s.get(f"tabla_mercado_interno.{count}.f2") == ""
    assert s.get(f"tabla_mercado_interno.{count}.promedio_x") == 5.0
    assert s.get("tabla_mercado_interno.0.promedio_x") == 2.0
    assert s.get("total_frutos_mercado_interno") == 5


def test_added_rows_keep_their_share_when_a_sibling_is_removed(new_session):
    s = new_session("REG.CKU.017")
    s.set_field("calibre", 50)
    end = len(s.get("tabla_danos_defectos"))
    s.set_field(f"tabla_danos_defectos.{end}", {"concepto": "Extra A", "l1": 5})
    s.set_field(f"tabla_danos_defectos.{end + 1}", {"concepto": "Extra B", "l1": 10})
    rows = s.get("tabla_danos_defectos")
    assert rows[end]["_id"] and rows[end + 1]["_id"]
    assert (rows[end]["l1"], rows[end + 1]["l1"]) == (10.0, 20.0)

    s.set_field("tabla_danos_defectos", [r for r in rows if r.get("concepto") != "Extra A"])
    extra_b = s.get(f"tabla_danos_defectos.{end}")
    assert extra_b["concepto"] == "Extra B"
    assert extra_b["l1"] == 20.0


def test_rejected_edit_keeps_calibre_and_shares_consistent(new_session):
    s = new_session("REG.CKU.017")
    s.set_fields({"calibre": 50, "tabla_danos_defectos.0.l1": 5})
    with pytest.raises(IndexError):
        s.set_fields({"calibre": 25, "tabla_danos_defectos.999.l1": 1})
    assert s.get("calibre") == 50
    assert s.get("tabla_danos_defectos.0.l1") == 10.0
    s.set_field("calibre", 25)
    assert s.get("tabla_danos_defectos.0.l1") == 20.0


def test_entering_calibre_settles_without_warning(new_session):
    s = new_session("REG.CKU.017")
    with patch("qcforms.services.recalculation.logger") as mock_logger:
        result = s.set_field("calibre", 80)
    assert result.converged
    mock_logger.warning.assert_not_called()
    assert s.get("promedio_pesos_general") == ""
    assert s.set_fields({}).writes == ()
