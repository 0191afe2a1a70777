from __future__ import annotations

import json
from pathlib import Path

import pytest

from qcforms.logging.audit_log import AuditLogBuffer, AuditRecord

KEYS = {"timestamp", "request_id", "submission_id", "template_id", "event", "message"}


def test_audit_record_creation_and_json_line():
    rec = AuditRecord.create("req-1", "sub-1", "REG.CKU.017", "FINALIZE_FAIL", "relation missing: «qc»")
    data = json.loads(rec.to_json_line())
    assert data["event"] == "FINALIZE_FAIL"
    assert data["timestamp"].endswith("Z")
    assert set(data.keys()) == KEYS
    assert "«qc»" in rec.to_json_line()


def test_audit_record_rejects_unknown_event():
    with pytest.raises(ValueError, match="unknown audit event"):
        AuditRecord.create("req-1", "sub-1", "REG.CKU.017", "FINALIZE_MAYBE")


def test_audit_log_buffer_flush(temp_workdir: Path):
    buf = AuditLogBuffer()
    buf.append(AuditRecord.create("r", "s", "REG.CKU.017", "FINALIZE_RECEIVED"))
    buf.append(AuditRecord.create("r", "s", "REG.CKU.017", "FINALIZE_START", "usp_Load_CKU_EMPAQUE"))
    assert [r.event for r in buf.records] == ["FINALIZE_RECEIVED", "FINALIZE_START"]
    path = buf.flush()
    assert path.exists()
    assert path.parent.name == "logs"
    assert path.name.startswith("audit-")
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    for raw in lines:
        assert set(json.loads(raw).keys()) == KEYS
    assert len(buf) == 0


def test_audit_log_buffer_multiple_flushes_append(temp_workdir: Path):
    buf = AuditLogBuffer()
    buf.append(AuditRecord.create("r", "s", "REG.CKU.017", "FINALIZE_RECEIVED"))
    path = buf.flush()
    size1 = path.stat().st_size
    buf.append(AuditRecord.create("r", "s", "REG.CKU.017", "FINALIZE_DONE", "OK"))
    path2 = buf.flush()
    assert path == path2
    assert path2.stat().st_size > size1


def test_empty_flush_writes_nothing(temp_workdir: Path):
    path = AuditLogBuffer().flush()
    assert not path.exists()
