from __future__ import annotations

import json
from pathlib import Path

import pytest

from qcforms.models.document import ROW_FIXED, ROW_OPTIONS, ROW_READ_ONLY
from qcforms.models.template import FieldKind
from qcforms.services.templates import TEMPLATE_SCHEMA_PATH, TemplateError, TemplateProvider, parse_template

SCHEMA = json.loads(TEMPLATE_SCHEMA_PATH.read_text(encoding="utf-8"))

MINIMAL = """id: REG.TST.001
title: Test
version: "1.0"
sections:
  - key: s
    title: S
    fields:
      - {key: a, label: A, kind: integer}
"""


def test_all_templates_load(provider: TemplateProvider):
    assert provider.template_ids() == [
        "REG.CKU.013",
        "REG.CKU.014",
        "REG.CKU.015",
        "REG.CKU.017",
        "REG.CKU.018",
        "REG.CKU.022",
    ]


def test_series_columns_are_expanded(provider: TemplateProvider):
    f = provider.get_template("REG.CKU.017").field("tabla_danos_defectos")
    assert f is not None
    keys = [c.key for c in f.columns]
    assert keys[0] == "concepto"
    assert keys[1:31] == [f"l{i}" for i in range(1, 31)]
    assert keys[-1] == "promedio_fila"
    assert f.column("l3").label == "Línea 3"
    assert f.column("l3").kind is FieldKind.DECIMAL
    assert f.column("promedio_fila").read_only


def test_row_labels_are_expanded(provider: TemplateProvider):
    f = provider.get_template("REG.CKU.017").field("tabla_danos_defectos")
    rows = list(f.initial_rows)
    assert len(rows) == 16
    assert rows[0]["concepto"] == "Golpe sol"
    assert rows[0]["l1"] == ""
    assert all(r[ROW_FIXED] for r in rows)
    by_label = {r["concepto"]: r for r in rows}
    assert by_label["% Comercial"][ROW_READ_ONLY] is True
    assert ROW_READ_ONLY not in by_label["Golpe sol"]


def test_row_options_cover_editable_columns(provider: TemplateProvider):
    f = provider.get_template("REG.CKU.018").field("tabla_fuera_categoria_canal")
    resolution = [r for r in f.initial_rows if r["concepto"] == "Resolución"][0]
    options = resolution[ROW_OPTIONS]
    assert sorted(options, key=lambda k: int(k[2:])) == [f"ch{i}" for i in range(1, 51)]
    assert options["ch7"] == ["Aprobado", "Rechazado"]


def test_numbered_rows(provider: TemplateProvider):
    f = provider.get_template("REG.CKU.014").field("tabla_parciales")
    assert [r["n_parcial"] for r in f.initial_rows][:3] == ["1", "2", "3"]
    assert len(f.initial_rows) == 20


def test_settings_paths_and_defaults(provider: TemplateProvider):
    t = provider.get_template("REG.CKU.015")
    assert t.settings_paths == {"planta": "encabezado.planta", "temporada": "encabezado.temporada"}
    assert t.defaults["recepcion.tamano_muestra"] == 50
    assert t.variety_schemas["table"] == "tabla_color_cubrimiento"


def test_matrix_flags(provider: TemplateProvider):
    f = provider.get_template("REG.CKU.022").field("matriz_presiones")
    assert f.kind is FieldKind.PRESSURE_MATRIX
    assert f.hide_brix and f.hide_calibre and f.show_summary_columns and f.show_only_average
    weights = provider.get_template("REG.CKU.018").field("tabla_control_peso")
    assert weights.weight_mode


def test_unknown_template(provider: TemplateProvider):
    with pytest.raises(TemplateError, match="unknown template"):
        provider.get_template("REG.CKU.999")


def test_parse_rejects_unknown_kind():
    data = {
        "id": "REG.TST.001",
        "title": "t",
        "version": "1",
        "sections": [{"key": "s", "title": "S", "fields": [{"key": "a", "kind": "slider"}]}],
    }
    with pytest.raises(TemplateError, match="template validation failed"):
        parse_template(data, SCHEMA)


def test_parse_rejects_duplicate_keys():
    field = {"key": "a", "kind": "text"}
    data = {
        "id": "REG.TST.001",
        "title": "t",
        "version": "1",
        "sections": [
            {"key": "s1", "title": "S1", "fields": [field]},
            {"key": "s2", "title": "S2", "fields": [field]},
        ],
    }
    with pytest.raises(TemplateError, match="duplicate field keys: a"):
        parse_template(data, SCHEMA)


def test_provider_errors(tmp_path: Path):
    with pytest.raises(TemplateError, match="templates directory not found"):
        TemplateProvider(tmp_path / "missing").templates()

    (tmp_path / "bad.yml").write_text("id: [unclosed", encoding="utf-8")
    with pytest.raises(TemplateError, match="invalid yaml"):
        TemplateProvider(tmp_path).templates()


def test_provider_rejects_same_id_twice(tmp_path: Path):
    (tmp_path / "a.yml").write_text(MINIMAL, encoding="utf-8")
    (tmp_path / "b.yml").write_text(MINIMAL, encoding="utf-8")
    with pytest.raises(TemplateError, match="defined twice"):
        TemplateProvider(tmp_path).templates()


def test_provider_caches(tmp_path: Path):
    (tmp_path / "a.yml").write_text(MINIMAL, encoding="utf-8")
    provider = TemplateProvider(tmp_path)
    first = provider.get_template("REG.TST.001")
    (tmp_path / "a.yml").unlink()
    assert provider.get_template("REG.TST.001") is first
