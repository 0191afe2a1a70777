from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.document import EMPTY, ROW_FIXED, ROW_OPTIONS, ROW_READ_ONLY
from ..models.template import (
    FieldDependency,
    FieldKind,
    FormField,
    FormSection,
    FormTemplate,
    TableColumn,
)

"""Template provider.

Form templates are YAML files (one per template) validated against the packaged
``template_schema.json``. Two shorthands keep the files readable:

- a column entry ``{series: {prefix: l, count: 30, kind: decimal, label: "Línea {n}"}}``
  expands to columns ``l1..l30``;
- ``rows: {column: concepto, labels: [...]}`` (or ``count: N`` for numbered rows)
  expands to fixed initial rows carrying the label and an empty cell per column.
"""

__all__ = [
    "TemplateError",
    "TemplateProvider",
    "TEMPLATE_SCHEMA_PATH",
    "parse_template",
]

logger = logging.getLogger(__name__)

TEMPLATE_SCHEMA_PATH = Path(__file__).resolve().parent.parent / "config" / "template_schema.json"


class TemplateError(Exception):
    pass


def _dependency(raw: dict[str, Any] | None) -> FieldDependency | None:
    if not raw:
        return None
    return FieldDependency(key=raw["key"], value=raw["value"])


def _expand_columns(raw_columns: list[dict[str, Any]]) -> tuple[TableColumn, ...]:
    columns: list[TableColumn] = []
    for raw in raw_columns:
        if "series" in raw:
            s = raw["series"]
            label = s.get("label", s["prefix"].upper() + "{n}")
            for n in range(1, s["count"] + 1):
                columns.append(
                    TableColumn(
                        key=f"{s['prefix']}{n}",
                        label=label.format(n=n),
                        kind=FieldKind(s["kind"]),
                        required=s.get("required", False),
                    )
                )
            continue
        columns.append(
            TableColumn(
                key=raw["key"],
                label=raw.get("label", raw["key"]),
                kind=FieldKind(raw["kind"]),
                read_only=raw.get("read_only", False),
                required=raw.get("required", False),
                calc=raw.get("calc"),
                exclude_from_calc=raw.get("exclude_from_calc", False),
                options=tuple(raw.get("options", ())),
            )
        )
    return tuple(columns)


def _expand_rows(layout: dict[str, Any], columns: tuple[TableColumn, ...]) -> list[dict[str, Any]]:
    label_column = layout["column"]
    labels = layout.get("labels") or [str(n) for n in range(1, layout.get("count", 0) + 1)]
    read_only = set(layout.get("read_only_labels", ()))
    row_options = layout.get("row_options", {})
    cells = layout.get("cells", {})
    rows: list[dict[str, Any]] = []
    for label in labels:
        row: dict[str, Any] = {c.key: EMPTY for c in columns}
        row.update(cells)
        row[label_column] = label
        row[ROW_FIXED] = layout.get("fixed", True)
        if label in read_only:
            row[ROW_READ_ONLY] = True
        if label in row_options:
            row[ROW_OPTIONS] = {
                c.key: list(row_options[label]) for c in columns if c.key != label_column and not c.read_only
            }
        rows.append(row)
    return rows


def _parse_field(raw: dict[str, Any]) -> FormField:
    kind = FieldKind(raw["kind"])
    columns = _expand_columns(raw.get("columns", []))
    initial_rows = list(raw.get("initial_rows", []))
    if "rows" in raw:
        initial_rows.extend(_expand_rows(raw["rows"], columns))
    return FormField(
        key=raw["key"],
        label=raw.get("label", raw["key"]),
        kind=kind,
        required=raw.get("required", False),
        read_only=raw.get("read_only", False),
        dependency=_dependency(raw.get("dependency")),
        columns=columns,
        initial_rows=tuple(initial_rows),
        options=tuple(raw.get("options", ())),
        hide_brix=raw.get("hide_brix", False),
        hide_calibre=raw.get("hide_calibre", False),
        show_summary_columns=raw.get("show_summary_columns", False),
        show_only_average=raw.get("show_only_average", False),
        weight_mode=raw.get("weight_mode", False),
    )


def parse_template(data: dict[str, Any], schema: dict[str, Any]) -> FormTemplate:
    """Validate raw template data and build the model.

    Raises:
        TemplateError: data violates the template schema or repeats a field key
    """
    try:
        jsonschema.validate(data, schema)
    except ValidationError as e:
        raise TemplateError(f"template validation failed: {e.message}") from e

    sections = tuple(
        FormSection(
            key=s["key"],
            title=s["title"],
            fields=tuple(_parse_field(f) for f in s["fields"]),
            dependency=_dependency(s.get("dependency")),
        )
        for s in data["sections"]
    )
    template = FormTemplate(
        id=data["id"],
        title=data["title"],
        version=str(data["version"]),
        sections=sections,
        defaults=dict(data.get("defaults", {})),
        settings_paths=dict(data.get("settings_paths", {})),
        variety_schemas=dict(data.get("variety_schemas", {})),
    )
    keys = [f.key for f in template.fields()]
    duplicates = sorted({k for k in keys if keys.count(k) > 1})
    if duplicates:
        raise TemplateError(f"{template.id}: duplicate field keys: {', '.join(duplicates)}")
    return template


class TemplateProvider:
    """Loads and caches every ``*.yml`` template of a directory."""

    def __init__(self, directory: Path, schema_path: Path = TEMPLATE_SCHEMA_PATH) -> None:
        self.directory = Path(directory)
        self.schema_path = schema_path
        self._templates: dict[str, FormTemplate] | None = None

    def _schema(self) -> dict[str, Any]:
        if not self.schema_path.exists():
            raise TemplateError(f"template schema not found: {self.schema_path}")
        try:
            return json.loads(self.schema_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise TemplateError(f"invalid schema file: {e}") from e

    def _load(self) -> dict[str, FormTemplate]:
        if not self.directory.is_dir():
            raise TemplateError(f"templates directory not found: {self.directory}")
        schema = self._schema()
        out: dict[str, FormTemplate] = {}
        for path in sorted(self.directory.glob("*.yml")):
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except yaml.YAMLError as e:
                raise TemplateError(f"invalid yaml in {path.name}: {e}") from e
            template = parse_template(data, schema)
            if template.id in out:
                raise TemplateError(f"template {template.id} defined twice ({path.name})")
            out[template.id] = template
            logger.debug(f"loaded template {template.id} from {path.name}")
        return out

    def templates(self) -> dict[str, FormTemplate]:
        if self._templates is None:
            self._templates = self._load()
        return self._templates

    def template_ids(self) -> list[str]:
        return sorted(self.templates())

    def get_template(self, template_id: str) -> FormTemplate:
        try:
            return self.templates()[template_id]
        except KeyError:
            raise TemplateError(f"unknown template: {template_id}") from None
