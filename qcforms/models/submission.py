from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

"""Submission record and finalize result models.

A submission is one filled instance of a template. Drafts travel as JSON with
camelCase keys (``templateId``, ``dynamicSchemas`` ...) so ``from_dict`` /
``to_dict`` keep that wire form.

State transitions: Borrador (draft) → Ingresado (finalized). Nothing goes back.
"""

__all__ = [
    "FormStatus",
    "HealthStatus",
    "Submission",
    "FinalizeResult",
]


class FormStatus(Enum):
    DRAFT = "Borrador"
    FINALIZED = "Ingresado"


class HealthStatus(Enum):
    """Loader health as reported by the persistence side after a finalize."""
    OK = "OK"
    WARN = "WARN"
    FAIL = "FAIL"

    @classmethod
    def parse(cls, raw: Any) -> HealthStatus:
        """Map a loader health string; anything unrecognised counts as OK."""
        text = str(raw or "").strip().upper()
        for member in cls:
            if member.value == text:
                return member
        return cls.OK


@dataclass
class Submission:
    id: str
    template_id: str
    data: dict[str, Any]
    status: FormStatus = FormStatus.DRAFT
    created_at: str | None = None  # ISO8601 UTC
    updated_at: str | None = None
    submitted_by: str | None = None
    dynamic_schemas: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    planta: str | None = None
    custom_name: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Submission:
        status_raw = raw.get("status", FormStatus.DRAFT.value)
        return cls(
            id=str(raw["id"]),
            template_id=str(raw["templateId"]),
            data=copy.deepcopy(raw.get("data") or {}),
            status=FormStatus(status_raw),
            created_at=raw.get("createdAt"),
            updated_at=raw.get("updatedAt"),
            submitted_by=raw.get("submittedBy"),
            dynamic_schemas=copy.deepcopy(raw.get("dynamicSchemas") or {}),
            planta=raw.get("planta"),
            custom_name=raw.get("customName"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "templateId": self.template_id,
            "status": self.status.value,
            "data": copy.deepcopy(self.data),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "dynamicSchemas": copy.deepcopy(self.dynamic_schemas),
        }
        # optional keys are omitted rather than written as null
        if self.submitted_by is not None:
            out["submittedBy"] = self.submitted_by
        if self.planta is not None:
            out["planta"] = self.planta
        if self.custom_name is not None:
            out["customName"] = self.custom_name
        return out

    def with_status(self, status: FormStatus, updated_at: str) -> Submission:
        return replace(self, status=status, updated_at=updated_at)


@dataclass(frozen=True)
class FinalizeResult:
    """What the persistence collaborator hands back after a finalize.

    ``counts`` is displayed as-is; nothing here interprets it.
    """
    ok: bool
    submission_id: str
    health_status: HealthStatus
    counts: dict[str, int] = field(default_factory=dict)
    request_id: str | None = None
