from __future__ import annotations

import copy
import json
import logging
import re
import uuid
from typing import Any

import pandas as pd
from psycopg2.extras import Json

from qcforms.logging.audit_log import AuditLogBuffer
from qcforms.models.audit_record import AuditRecord
from qcforms.models.submission import FinalizeResult, HealthStatus, Submission
from qcforms.models.template import FormTemplate

"""Finalize persistence (PostgreSQL via psycopg2).

A finalized submission is upserted as one row (flat ``data`` as jsonb), then the
template's loader procedure spreads it into reporting tables and the health view
reports how that went. The caller owns the connection and its transaction.

Every finalize call is traced with AuditRecords:
FINALIZE_RECEIVED → FINALIZE_START → FINALIZE_DONE | FINALIZE_FAIL.
With a cursor they go to ``qc_finalize_audit``; without one (mock mode) and for
failures they go to the JSON Lines audit log.
"""

__all__ = [
    "FinalizeError",
    "SUBMISSIONS_TABLE",
    "AUDIT_TABLE",
    "build_payload",
    "upsert_submission",
    "write_audit",
    "run_loader",
    "fetch_health",
    "finalize_submission",
]

logger = logging.getLogger(__name__)

SUBMISSIONS_TABLE = "qc_submissions"
AUDIT_TABLE = "qc_finalize_audit"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


class FinalizeError(Exception):
    pass


def _flatten(data: dict[str, Any]) -> dict[str, Any]:
    """Nested mappings become dot keys; row collections stay lists."""
    if not data:
        return {}
    records = pd.json_normalize(data, sep=".").to_dict(orient="records")
    return records[0] if records else {}


def build_payload(submission: Submission, template: FormTemplate, user: str | None) -> dict[str, Any]:
    return {
        "submission_id": submission.id,
        "template_id": submission.template_id,
        "template_version": template.version,
        "status": submission.status.value,
        "planta": submission.planta,
        "submitted_by": user,
        "created_at": submission.created_at,
        "updated_at": submission.updated_at,
        "data": _flatten(submission.data),
        "dynamic_schemas": copy.deepcopy(submission.dynamic_schemas),
    }


def upsert_submission(cursor: Any, payload: dict[str, Any]) -> None:
    sql = (
        f"INSERT INTO {SUBMISSIONS_TABLE} "
        "(submission_id, template_id, template_version, status, planta, submitted_by, "
        "created_at, updated_at, data, dynamic_schemas) "
        "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s) "
        "ON CONFLICT (submission_id) DO UPDATE SET "
        "template_version = EXCLUDED.template_version, status = EXCLUDED.status, "
        "planta = EXCLUDED.planta, submitted_by = EXCLUDED.submitted_by, "
        "updated_at = EXCLUDED.updated_at, data = EXCLUDED.data, "
        "dynamic_schemas = EXCLUDED.dynamic_schemas"
    )
    params = (
        payload["submission_id"],
        payload["template_id"],
        payload["template_version"],
        payload["status"],
        payload["planta"],
        payload["submitted_by"],
        payload["created_at"],
        payload["updated_at"],
        Json(payload["data"]),
        Json(payload["dynamic_schemas"]),
    )
    cursor.execute(sql, params)


def write_audit(cursor: Any, record: AuditRecord) -> None:
    cursor.execute(
        f"INSERT INTO {AUDIT_TABLE} (ts, request_id, submission_id, template_id, event, message) "
        "VALUES (%s, %s, %s, %s, %s, %s)",
        (
            record.timestamp,
            record.request_id,
            record.submission_id,
            record.template_id,
            record.event,
            record.message,
        ),
    )


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise FinalizeError(f"invalid SQL identifier: {name!r}")
    return name


def run_loader(cursor: Any, procedure: str, submission_id: str) -> None:
    cursor.execute(f"CALL {_check_identifier(procedure)}(%s)", (submission_id,))


def _parse_counts(raw: Any) -> dict[str, int]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"health counts are not JSON: {raw[:80]}")
            return {}
    if not isinstance(raw, dict):
        return {}
    counts: dict[str, int] = {}
    for key, value in raw.items():
        try:
            counts[str(key)] = int(value)
        except (TypeError, ValueError):
            continue
    return counts


def fetch_health(cursor: Any, health_view: str, submission_id: str) -> tuple[HealthStatus, dict[str, int]]:
    """Health status and row counts reported for a submission; no row reads as OK."""
    cursor.execute(
        f"SELECT health_status, counts FROM {_check_identifier(health_view)} WHERE submission_id = %s",
        (submission_id,),
    )
    row = cursor.fetchone()
    if row is None:
        return HealthStatus.OK, {}
    return HealthStatus.parse(row[0]), _parse_counts(row[1] if len(row) > 1 else None)


def finalize_submission(
    cursor: Any,
    payload: dict[str, Any],
    loaders: dict[str, str] | None = None,
    *,
    health_view: str | None = None,
    audit: AuditLogBuffer | None = None,
) -> FinalizeResult:
    """Persist a finalize payload and report the loader's health.

    Raises:
        FinalizeError: any database step failed (the caller rolls back)
    """
    request_id = str(uuid.uuid4())
    submission_id = payload["submission_id"]
    template_id = payload["template_id"]
    buffer = audit if audit is not None else AuditLogBuffer()

    def record(event: str, message: str = "") -> AuditRecord:
        return AuditRecord.create(request_id, submission_id, template_id, event, message)

    if cursor is None:
        buffer.extend(
            record(event, "mock mode") for event in ("FINALIZE_RECEIVED", "FINALIZE_START", "FINALIZE_DONE")
        )
        path = buffer.flush()
        logger.info(f"{submission_id}: finalize recorded in mock mode ({path.name})")
        return FinalizeResult(
            ok=True,
            submission_id=submission_id,
            health_status=HealthStatus.OK,
            counts={},
            request_id=request_id,
        )

    procedure = (loaders or {}).get(template_id)
    try:
        write_audit(cursor, record("FINALIZE_RECEIVED"))
        write_audit(cursor, record("FINALIZE_START", procedure or ""))
        upsert_submission(cursor, payload)
        if procedure:
            run_loader(cursor, procedure, submission_id)
        else:
            logger.warning(f"{template_id}: no loader configured; submission stored without load")
        health, counts = (
            fetch_health(cursor, health_view, submission_id) if health_view else (HealthStatus.OK, {})
        )
        write_audit(cursor, record("FINALIZE_DONE", health.value))
    except Exception as e:
        buffer.append(record("FINALIZE_FAIL", str(e)))
        buffer.flush()
        raise FinalizeError(f"finalize {submission_id} failed: {e}") from e

    return FinalizeResult(
        ok=health is not HealthStatus.FAIL,
        submission_id=submission_id,
        health_status=health,
        counts=counts,
        request_id=request_id,
    )
