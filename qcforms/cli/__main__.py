from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from qcforms.config.loader import DEFAULT_CONFIG_PATH, ConfigError, EngineConfig, load_config
from qcforms.db.finalize_store import FinalizeError, finalize_submission
from qcforms.logging.init import get_logger, log_summary, set_level, setup_logging
from qcforms.models.submission import FinalizeResult, FormStatus, HealthStatus
from qcforms.services.recalculation import RecalculationDriver
from qcforms.services.replay import ReplayError, read_draft, replay_all, write_draft
from qcforms.services.rules.registry import default_registry
from qcforms.services.session import FormSession, SessionClosedError, ValidationError
from qcforms.services.summary import render_finalize_line, render_summary_line
from qcforms.services.templates import TemplateError, TemplateProvider

"""CLI entrypoint.

    python -m qcforms.cli --replay DIR       re-run the rules over saved drafts
    python -m qcforms.cli --finalize FILE    finalize one draft into PostgreSQL

Exit codes: 0 success, 1 fatal (config, templates, connection-less errors),
2 partial failure (some drafts failed, or the loader reported FAIL).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


@contextmanager
def _db_connection(cfg: EngineConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 connection + cursor; commits on success, rolls back on error.

    Connection settings, first match wins:
        1. DATABASE_URL / PGDSN (``.env`` is loaded with override before this)
        2. database.dsn from the config file
        3. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE, each falling
           back to the config's database section
    """
    import psycopg2

    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    conn.autocommit = False
    cur = conn.cursor()
    try:
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cur.close()
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load ``.env`` so its connection settings win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="qcforms", description="QA form computation engine")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--replay", metavar="DIR", help="Replay saved drafts (default: drafts_directory)")
    mode.add_argument("--finalize", metavar="FILE", help="Finalize one draft file")
    p.add_argument("--user", default=os.getenv("QCFORMS_USER", "cli"), help="Submitter recorded on finalize")
    p.add_argument("--write", action="store_true", help="With --replay: save drafts whose values changed")
    p.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Config file path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _replay(cfg: EngineConfig, provider: TemplateProvider, directory: Path, write_back: bool) -> int:
    logger = get_logger()
    logger.info(f"Replaying drafts from: {directory}")
    try:
        result = replay_all(directory, provider, max_passes=cfg.max_passes, write_back=write_back)
    except ReplayError as e:
        logger.error(f"replay: {e}")
        return EXIT_FATAL

    log_summary(render_summary_line(result)[8:])
    if result.failed_drafts > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _finalize(cfg: EngineConfig, provider: TemplateProvider, path: Path, user: str) -> int:
    logger = get_logger()
    try:
        submission = read_draft(path)
        template = provider.get_template(submission.template_id)
    except (ReplayError, TemplateError) as e:
        logger.error(f"finalize: {e}")
        return EXIT_FATAL
    if submission.status is FormStatus.FINALIZED:
        logger.error(f"finalize: {submission.id} is already {FormStatus.FINALIZED.value}")
        return EXIT_FATAL

    driver = RecalculationDriver(default_registry(), max_passes=cfg.max_passes)
    session = FormSession.load(submission, template, driver=driver)
    if cfg.loader_for(template.id) is None:
        logger.warning(f"{template.id}: no loader procedure configured")

    def persist_with(cursor: Any) -> FinalizeResult:
        return session.finalize(
            lambda payload: finalize_submission(
                cursor, payload, cfg.loaders, health_view=cfg.health_view
            ),
            user,
        )

    errors = session.validate()
    if errors:
        for key, message in sorted(errors.items()):
            logger.error(f"{key}: {message}")
        return EXIT_FATAL

    db_mode = "mock"
    try:
        if os.getenv("DISABLE_DB_CONNECT") == "1":
            logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
            result = persist_with(None)
        else:
            try:
                with _db_connection(cfg) as cur:
                    db_mode = "live"
                    result = persist_with(cur)
            except (FinalizeError, ValidationError, SessionClosedError):
                raise
            except Exception as db_e:
                if db_mode == "live":
                    # commit or connection teardown failed after the loader ran
                    raise FinalizeError(f"finalize {submission.id} failed: {db_e}") from db_e
                if os.getenv("SUPPRESS_DB_WARNING") == "1":
                    logger.debug(f"DB connection failed (suppressed warn) -> fallback to mock mode: {db_e}")
                else:
                    logger.info(f"DB connection failed -> fallback to mock mode: {db_e}")
                result = persist_with(None)
    except (FinalizeError, ValidationError, SessionClosedError) as e:
        logger.error(f"finalize: {e}")
        return EXIT_FATAL

    write_draft(path, session.submission)
    logger.info(f"mode={db_mode} submission={result.submission_id}")
    log_summary(render_finalize_line(result)[8:])
    if result.health_status is HealthStatus.FAIL:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None only: an explicit [] must not pick up the test runner's arguments
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(Path(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        set_level(logging.DEBUG)
        logger.debug("debug mode enabled")

    provider = TemplateProvider(Path(cfg.templates_directory))
    try:
        ids = provider.template_ids()
    except TemplateError as e:
        logger.error(f"templates: {e}")
        return EXIT_FATAL
    logger.debug(f"templates: {', '.join(ids)}")

    if args.finalize:
        return _finalize(cfg, provider, Path(args.finalize), args.user)
    directory = Path(args.replay) if args.replay else Path(cfg.drafts_directory)
    return _replay(cfg, provider, directory, args.write)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
