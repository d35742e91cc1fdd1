"""Structured JSON-lines logger writing to a file."""

from __future__ import annotations

import json
from datetime import datetime
from enum import IntEnum
from typing import Any

from eventapi.errors import AppError


class Level(IntEnum):
    """Severity levels; records below the logger's level are dropped."""

    DEBUG = -4
    INFO = 0
    WARN = 4
    ERROR = 8


class FileLogger:
    """Append one JSON object per record to a file."""

    def __init__(self, path: str, level: Level = Level.INFO) -> None:
        try:
            self._file = open(path, "a", encoding="utf-8")
        except OSError as exc:
            raise AppError(exc) from exc
        self.level = level

    def _log(self, level: Level, message: str, fields: dict[str, Any]) -> None:
        if level < self.level:
            return
        record = {
            "time": datetime.now().astimezone().isoformat(timespec="milliseconds"),
            "level": level.name,
            "msg": message,
            **fields,
        }
        self._file.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        self._file.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(Level.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(Level.INFO, message, kwargs)

    def warn(self, message: str, **kwargs: Any) -> None:
        self._log(Level.WARN, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(Level.ERROR, message, kwargs)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> FileLogger:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()