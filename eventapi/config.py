"""Application configuration loaded from a YAML file."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from eventapi.errors import AppError

DEFAULT_LOG_FILE = "app.log"


@dataclass(frozen=True)
class DBConfig:
    """Database connection settings."""

    host: str = ""
    user: str = ""
    password: str = ""
    port: str = ""
    database: str = ""


@dataclass(frozen=True)
class Config:
    """Top-level application settings."""

    debug: bool = False
    log_file: str = ""
    db: DBConfig = field(default_factory=DBConfig)


def _string(value: Any, key: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        raise AppError(f"config: {key} must be a string")
    if isinstance(value, (str, int, float)):
        return str(value)
    raise AppError(f"config: {key} must be a string")


def _mapping(value: Any, key: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise AppError(f"config: {key} must be a mapping")
    return value


def _parse(raw: Any) -> Config:
    data = _mapping(raw, "document")
    debug = data.get("debug", False)
    if debug is None:
        debug = False
    if not isinstance(debug, bool):
        raise AppError("config: debug must be a boolean")
    db = _mapping(data.get("db"), "db")
    return Config(
        debug=debug,
        log_file=_string(data.get("logFile"), "logFile"),
        db=DBConfig(
            **{name: _string(db.get(name), f"db.{name}") for name in ("host", "user", "password", "port", "database")}
        ),
    )


def load_config(path: str | Path) -> Config:
    """Read and validate the configuration file, filling in defaults."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise AppError(exc) from exc
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise AppError(exc) from exc
    conf = _parse(raw)
    if not conf.log_file:
        conf = replace(conf, log_file=DEFAULT_LOG_FILE)
    return conf