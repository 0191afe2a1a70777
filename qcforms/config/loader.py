from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Engine configuration loader.

Responsibilities:
- Load YAML config/engine.yml
- Validate it against the packaged config_schema.json
- Apply defaults (max_passes=2, drafts under ./data/drafts)
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "EngineConfig",
    "load_config",
    "SCHEMA_PATH",
    "DEFAULT_CONFIG_PATH",
]

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/engine.yml")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class EngineConfig:
    planta: str
    temporada: str
    templates_directory: str
    drafts_directory: str = "./data/drafts"
    max_passes: int = 2
    health_view: str | None = None
    loaders: dict[str, str] = field(default_factory=dict)  # template_id -> stored procedure
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def loader_for(self, template_id: str) -> str | None:
        return self.loaders.get(template_id)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path) -> EngineConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")

    _validate_config_schema(data)

    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return EngineConfig(
        planta=data["planta"],
        temporada=data["temporada"],
        templates_directory=data["templates_directory"],
        drafts_directory=data.get("drafts_directory", "./data/drafts"),
        max_passes=data.get("max_passes", 2),
        health_view=data.get("health_view"),
        loaders=dict(data.get("loaders", {})),
        database=db,
    )
