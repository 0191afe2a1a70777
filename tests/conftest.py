# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path

import pytest

from qcforms.services.recalculation import RecalculationDriver
from qcforms.services.rules.registry import default_registry
from qcforms.services.session import FormSession
from qcforms.services.templates import TemplateProvider

PROJECT_ROOT = Path(__file__).resolve().parents[1]
TEMPLATES_DIR = PROJECT_ROOT / "templates"


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "data" / "drafts").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return f"""planta: PLANTA TEST
temporada: 2025-2026
templates_directory: {TEMPLATES_DIR.as_posix()}
drafts_directory: ./data/drafts
max_passes: 2
health_view: vw_submission_health
loaders:
  REG.CKU.017: usp_Load_CKU_EMPAQUE
  REG.CKU.022: usp_Load_ATM_CONTROLADA_POMACEAS
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "engine.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture(scope="session")
def provider() -> TemplateProvider:
    return TemplateProvider(TEMPLATES_DIR)


@pytest.fixture()
def driver() -> RecalculationDriver:
    return RecalculationDriver(default_registry())


@pytest.fixture()
def new_session(provider: TemplateProvider, driver: RecalculationDriver) -> Callable[..., FormSession]:
    """Factory: ``new_session("REG.CKU.017", planta="X")`` -> fresh draft session."""

    def make(template_id: str, **settings: str) -> FormSession:
        settings.setdefault("planta", "PLANTA TEST")
        settings.setdefault("temporada", "2025-2026")
        return FormSession.create(provider.get_template(template_id), settings, driver=driver)

    return make


def row_index(rows: list[dict], column: str, label: str) -> int:
    for idx, row in enumerate(rows):
        if row.get(column) == label:
            return idx
    raise AssertionError(f"no row {column}={label!r}")
