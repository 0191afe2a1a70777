from __future__ import annotations

import json
from pathlib import Path

import pytest

from qcforms.models.submission import Submission
from qcforms.services.replay import ReplayError, read_draft, replay_all, replay_draft, scan_drafts, write_draft


def _save(new_session, directory: Path, name: str, template_id: str, **values) -> Path:
    s = new_session(template_id)
    if values:
        s.set_fields(values)
    path = directory / name
    write_draft(path, s.to_submission())
    return path


def test_scan_drafts_sorted_json_only(tmp_path: Path):
    (tmp_path / "b.json").write_text("{}", encoding="utf-8")
    (tmp_path / "a.json").write_text("{}", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    assert [p.name for p in scan_drafts(tmp_path)] == ["a.json", "b.json"]


def test_scan_drafts_errors(tmp_path: Path):
    with pytest.raises(ReplayError, match="Directory not found"):
        scan_drafts(tmp_path / "missing")
    f = tmp_path / "file.json"
    f.write_text("{}", encoding="utf-8")
    with pytest.raises(ReplayError, match="Path is not a directory"):
        scan_drafts(f)


def test_read_draft_errors(tmp_path: Path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ReplayError, match="unreadable draft"):
        read_draft(bad)
    listing = tmp_path / "list.json"
    listing.write_text("[]", encoding="utf-8")
    with pytest.raises(ReplayError, match="must be a JSON object"):
        read_draft(listing)
    missing = tmp_path / "missing.json"
    missing.write_text('{"id": "x"}', encoding="utf-8")
    with pytest.raises(ReplayError, match="invalid draft"):
        read_draft(missing)
    status = tmp_path / "status.json"
    status.write_text('{"id": "x", "templateId": "REG.CKU.013", "status": "Aprobado"}', encoding="utf-8")
    with pytest.raises(ReplayError, match="invalid draft"):
        read_draft(status)


def test_write_draft_keeps_accents(tmp_path: Path):
    path = tmp_path / "d.json"
    write_draft(path, Submission(id="d", template_id="REG.CKU.017", data={"concepto": "Machucón"}))
    assert "Machucón" in path.read_text(encoding="utf-8")
    assert read_draft(path).data == {"concepto": "Machucón"}


def test_saved_draft_replays_unchanged(new_session, provider, driver, tmp_path: Path):
    path = _save(new_session, tmp_path, "a.json", "REG.CKU.017", calibre=50, **{"tabla_danos_defectos.0.l1": 5})
    stat = replay_draft(path, provider, driver)
    assert stat.status == "unchanged"
    assert stat.writes == 0


def test_stale_derived_value_is_reported(new_session, provider, driver, tmp_path: Path):
    path = _save(new_session, tmp_path, "a.json", "REG.CKU.015", **{"danos_defectos.0.leve_unidades": 5})
    raw = json.loads(path.read_text(encoding="utf-8"))
    raw["data"]["danos_defectos"][0]["leve_pct"] = 99.0
    path.write_text(json.dumps(raw), encoding="utf-8")

    stat = replay_draft(path, provider, driver)
    assert stat.status == "changed"
    assert stat.writes == 1
    # without write_back the file keeps the stale value
    assert read_draft(path).data["danos_defectos"][0]["leve_pct"] == 99.0

    replay_draft(path, provider, driver, write_back=True)
    assert read_draft(path).data["danos_defectos"][0]["leve_pct"] == 10.0


def test_unknown_template_fails_draft(provider, driver, tmp_path: Path):
    path = tmp_path / "x.json"
    path.write_text('{"id": "x", "templateId": "REG.CKU.999", "data": {}}', encoding="utf-8")
    with pytest.raises(ReplayError, match="unknown template"):
        replay_draft(path, provider, driver)


def test_replay_all_counts(new_session, provider, tmp_path: Path):
    _save(new_session, tmp_path, "a.json", "REG.CKU.013")
    stale = _save(new_session, tmp_path, "b.json", "REG.CKU.013", gasto_ml=10)
    raw = json.loads(stale.read_text(encoding="utf-8"))
    raw["data"]["ac_malico_pct"] = 1
    stale.write_text(json.dumps(raw), encoding="utf-8")
    (tmp_path / "c.json").write_text("{broken", encoding="utf-8")

    result = replay_all(tmp_path, provider)
    assert (result.unchanged_drafts, result.changed_drafts, result.failed_drafts) == (1, 1, 1)
    assert result.total_drafts == 3
    assert result.total_writes == 1
    assert [s.status for s in result.draft_stats] == ["unchanged", "changed", "failed"]
    assert result.elapsed_seconds >= 0


def test_replay_all_empty_directory(provider, tmp_path: Path):
    result = replay_all(tmp_path, provider)
    assert result.total_drafts == 0
    assert result.draft_stats == []
