"""Long-lived application resources: settings, logger and database engine."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from eventapi.config import Config, load_config
from eventapi.errors import AppError
from eventapi.logger import FileLogger
from eventapi.schema import create_db


@dataclass
class Storage:
    """Resources shared by every request."""

    debug: bool
    logger: Any
    config: Config
    engine: Any

    def close(self) -> None:
        """Close the logger and release the database pool."""
        self.logger.close()
        self.engine.dispose()

    def __enter__(self) -> Storage:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_storage(config_path: str | Path) -> Storage:
    """Load the configuration and open the logger and database engine."""
    try:
        conf = load_config(config_path)
    except AppError as err:
        raise err.tap()
    try:
        logger = FileLogger(conf.log_file)
    except AppError as err:
        raise err.tap()
    try:
        engine = create_db(conf.db)
    except AppError as err:
        logger.close()
        raise err.tap()
    return Storage(debug=conf.debug, logger=logger, config=conf, engine=engine)