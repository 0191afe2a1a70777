from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .document import get_path

"""Form template model.

Templates are data: sections of fields, each field tagged with a ``FieldKind``.
Behaviour that depends on the kind (row hydration, per-kind derived columns) is
registered against the enum member and resolved by lookup.
"""

__all__ = [
    "FieldKind",
    "FieldDependency",
    "TableColumn",
    "FormField",
    "FormSection",
    "FormTemplate",
]


class FieldKind(Enum):
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    TIME = "time"
    BOOLEAN = "boolean"
    SELECT = "select"
    MULTISELECT = "multiselect"
    MEASURE_SERIES = "measure_series"
    TEXTAREA = "textarea"
    FILE = "file"
    DYNAMIC_TABLE = "dynamic_table"
    PRESSURE_MATRIX = "pressure_matrix"
    AUTOCOMPLETE = "autocomplete"

    @property
    def is_table(self) -> bool:
        return self in (FieldKind.DYNAMIC_TABLE, FieldKind.PRESSURE_MATRIX)

    @property
    def is_numeric(self) -> bool:
        return self in (FieldKind.INTEGER, FieldKind.DECIMAL)


@dataclass(frozen=True)
class FieldDependency:
    """Visibility condition: the watched path must equal ``value`` (or be one of it)."""
    key: str
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        current = get_path(data, self.key)
        if isinstance(self.value, list):
            return current in self.value
        return current == self.value


@dataclass(frozen=True)
class TableColumn:
    key: str
    label: str
    kind: FieldKind
    read_only: bool = False
    required: bool = False
    calc: str | None = None  # average | sum | max | min
    exclude_from_calc: bool = False
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class FormField:
    key: str  # dot path into the document
    label: str
    kind: FieldKind
    required: bool = False
    read_only: bool = False
    dependency: FieldDependency | None = None
    columns: tuple[TableColumn, ...] = ()
    initial_rows: tuple[dict[str, Any], ...] = ()
    options: tuple[str, ...] = ()
    # pressure / weight matrix presentation flags
    hide_brix: bool = False
    hide_calibre: bool = False
    show_summary_columns: bool = False
    show_only_average: bool = False
    weight_mode: bool = False

    def column(self, key: str) -> TableColumn | None:
        for col in self.columns:
            if col.key == key:
                return col
        return None


@dataclass(frozen=True)
class FormSection:
    key: str
    title: str
    fields: tuple[FormField, ...]
    dependency: FieldDependency | None = None


@dataclass(frozen=True)
class FormTemplate:
    id: str
    title: str
    version: str
    sections: tuple[FormSection, ...]
    defaults: dict[str, Any] = field(default_factory=dict)
    settings_paths: dict[str, str] = field(default_factory=dict)  # planta/temporada -> path
    variety_schemas: dict[str, Any] = field(default_factory=dict)

    def fields(self) -> list[FormField]:
        return [f for s in self.sections for f in s.fields]

    def field(self, key: str) -> FormField | None:
        for f in self.fields():
            if f.key == key:
                return f
        return None

    def section(self, key: str) -> FormSection | None:
        for s in self.sections:
            if s.key == key:
                return s
        return None

    def fields_of_kind(self, kind: FieldKind) -> list[FormField]:
        return [f for f in self.fields() if f.kind is kind]

    def is_visible(self, field_key: str, data: dict[str, Any]) -> bool:
        """Field visibility including the dependency of its section.

        Unknown keys are visible; computed fields that are not declared on the
        template are never hidden by it.
        """
        for s in self.sections:
            for f in s.fields:
                if f.key != field_key:
                    continue
                if s.dependency is not None and not s.dependency.matches(data):
                    return False
                return f.dependency is None or f.dependency.matches(data)
        return True
