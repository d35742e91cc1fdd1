"""Command-line entry points: the HTTP server and database maintenance."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Callable, Sequence

from sqlalchemy.exc import SQLAlchemyError

from eventapi.config import load_config
from eventapi.container import close_container, make_container
from eventapi.errors import AppError
from eventapi.router import ServerConfig, run_server
from eventapi.routes import registration_routes
from eventapi.schema import CREATE_INDEX, INIT, create_db
from eventapi.seed import seed_database
from eventapi.storage import create_storage

PROG = "challengephp"
DESCRIPTION = "Простой API для сравнения с PHP"
DEFAULT_CONFIG = "config.yml"
DEFAULT_PORT = 12001


def _execute(engine: Any, statement: str) -> None:
    try:
        with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            conn.exec_driver_sql(statement)
    except SQLAlchemyError as exc:
        raise AppError(exc) from exc


def init_database(config_path: str | Path) -> None:
    """Recreate the tables and their indexes."""
    try:
        conf = load_config(config_path)
        engine = create_db(conf.db)
    except AppError as err:
        raise err.tap()
    try:
        for statement in (*INIT, *CREATE_INDEX):
            _execute(engine, statement)
    finally:
        engine.dispose()
    print("База данных инициализированна")


def serve(port: int, config_path: str | Path) -> None:
    """Open the shared resources and serve the API on the given port."""
    try:
        storage = create_storage(config_path)
    except AppError as err:
        raise err.tap()
    with storage:
        config = ServerConfig(
            storage=storage,
            registration_routes=registration_routes,
            make_context=make_container,
            close_context=close_container,
        )
        try:
            run_server(config, port, storage.debug, storage.logger)
        except AppError as err:
            raise err.tap()


def _run(parser: argparse.ArgumentParser, argv: Sequence[str] | None) -> int:
    args = parser.parse_args(argv)
    command: Callable[[argparse.Namespace], None] | None = getattr(args, "command", None)
    if command is None:
        parser.print_help()
        return 0
    try:
        command(args)
    except AppError as err:
        print(err, file=sys.stderr)
        return 1
    return 0


def _parser() -> tuple[argparse.ArgumentParser, Any]:
    parser = argparse.ArgumentParser(prog=PROG, description=DESCRIPTION)
    return parser, parser.add_subparsers(title="commands")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the server command."""
    parser, commands = _parser()
    server = commands.add_parser("server", help="start the server", description="start the server")
    server.add_argument("-p", "--port", type=int, default=DEFAULT_PORT, help="start http server on port")
    server.add_argument("-c", "--config", default=DEFAULT_CONFIG, help="config file path")
    server.set_defaults(command=lambda args: serve(args.port, args.config))
    return _run(parser, argv)


def database_main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the database maintenance command."""
    parser, commands = _parser()
    init = commands.add_parser("init", help="initialize the database", description="initialize the database")
    init.set_defaults(command=lambda args: init_database(DEFAULT_CONFIG))
    seed = commands.add_parser("seed", help="Заполняем базу данными", description="Заполняем базу данными")
    seed.set_defaults(command=lambda args: seed_database(DEFAULT_CONFIG))
    return _run(parser, argv)


if __name__ == "__main__":
    sys.exit(main())