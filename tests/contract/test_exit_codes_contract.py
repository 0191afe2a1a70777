from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from qcforms.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL, main as cli_main
from qcforms.logging.init import reset_logging
from qcforms.models.submission import FinalizeResult, HealthStatus
from qcforms.services.replay import write_draft

"""Exit code contract: 0 success, 1 fatal, 2 partial failure."""


def test_exit_code_values():
    assert (EXIT_SUCCESS_ALL, EXIT_FATAL, EXIT_PARTIAL_FAILURE) == (0, 1, 2)


def test_exit_code_fatal_startup(temp_workdir: Path, capsys):
    reset_logging()
    code = cli_main([])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(write_config, temp_workdir: Path, new_session, capsys):
    reset_logging()
    for template_id in ("REG.CKU.013", "REG.CKU.022"):
        s = new_session(template_id)
        write_draft(temp_workdir / "data" / "drafts" / f"{template_id}.json", s.to_submission())
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY drafts=2 unchanged=2 changed=0 failed=0" in out


def test_exit_code_partial_failure_on_health_fail(write_config, temp_workdir: Path, new_session, monkeypatch, capsys):
    reset_logging()
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    s = new_session("REG.CKU.017")
    s.set_field("productor", "AGRICOLA SUR")
    path = temp_workdir / "data" / "drafts" / "d.json"
    write_draft(path, s.to_submission())

    def failing_health(cursor, payload, loaders=None, **kwargs):
        return FinalizeResult(ok=False, submission_id=payload["submission_id"], health_status=HealthStatus.FAIL)

    with patch("qcforms.cli.__main__.finalize_submission", side_effect=failing_health):
        code = cli_main(["--finalize", str(path)])
    out = capsys.readouterr().out
    assert code == 2
    assert "ok=false health=FAIL" in out
