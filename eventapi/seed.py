"""Filling the database with generated users, event types and events."""

from __future__ import annotations

import random
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError

from eventapi.config import load_config
from eventapi.errors import AppError
from eventapi.schema import (
    CREATE_INDEX,
    DROP_INDEX,
    POOL_MAX_CONNECTIONS,
    PREPARE_SQL,
    RECOVERY_AFTER_PREPARE,
    TABLE_EVENT_TYPES,
    TABLE_EVENTS,
    TABLE_USERS,
    create_db,
)

USER_COUNT = 1_000
TYPE_COUNT = 100
ARTICLE_COUNT = 100
EVENT_WORKERS = 2000
ROWS_PER_WORKER = 5000

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _now() -> str:
    return datetime.now().strftime(_TIME_FORMAT)


def _execute(engine: Any, statement: str) -> None:
    """Run one statement outside a transaction."""
    try:
        with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            conn.exec_driver_sql(statement)
    except SQLAlchemyError as exc:
        raise AppError(exc) from exc


def _execute_all(engine: Any, statements: Iterable[str]) -> None:
    for statement in statements:
        _execute(engine, statement)


def user_rows(now: str) -> list[str]:
    """Value tuples for the seeded users, all created at `now`."""
    return [f"({i}, 'user{i}', '{now}')" for i in range(1, USER_COUNT + 1)]


def type_rows() -> list[str]:
    """Value tuples for the seeded event types."""
    return [f"({i}, 'type{i}')" for i in range(1, TYPE_COUNT + 1)]


def event_rows(offset: int, total: int, now: str, rng: random.Random) -> list[str]:
    """Value tuples for one worker's block of events, ids offset*total+1 .. offset*total+total."""
    rows = []
    for i in range(1, total + 1):
        article_id = rng.randrange(ARTICLE_COUNT) + 1
        user_id = rng.randrange(USER_COUNT) + 1
        type_id = rng.randrange(TYPE_COUNT) + 1
        rows.append(
            f"({i + offset * total}, '{now}', '{{\"page\": \"/article{article_id}\"}}', {user_id}, {type_id})"
        )
    return rows


def _insert(engine: Any, query: str) -> None:
    try:
        _execute(engine, query)
    except AppError:
        print(query)
        raise


def _seed_users(engine: Any) -> None:
    rows = ",".join(user_rows(_now()))
    _insert(engine, f"INSERT INTO {TABLE_USERS} (id, name, created_at) VALUES {rows};")


def _seed_types(engine: Any) -> None:
    rows = ",".join(type_rows())
    _insert(engine, f"INSERT INTO {TABLE_EVENT_TYPES} (id, name) VALUES {rows};")


def _event_worker(engine: Any, offset: int, stop: threading.Event) -> None:
    if stop.is_set():
        return
    rows = ",".join(event_rows(offset, ROWS_PER_WORKER, _now(), random.Random()))
    query = f"INSERT INTO {TABLE_EVENTS} (id, timestamp, metadata, user_id, type_id) VALUES {rows};"
    if stop.is_set():
        return
    _execute(engine, query)


def _seed_events(engine: Any) -> None:
    workers = EVENT_WORKERS
    stop = threading.Event()
    with ThreadPoolExecutor(max_workers=max(1, min(workers, POOL_MAX_CONNECTIONS))) as pool:
        futures = [pool.submit(_event_worker, engine, offset, stop) for offset in range(workers)]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        failure = next((f.exception() for f in done if f.exception() is not None), None)
        if failure is not None:
            stop.set()
            for future in pending:
                future.cancel()
    if failure is not None:
        if isinstance(failure, AppError):
            raise failure.tap()
        raise AppError(failure) from failure


def seeding(engine: Any) -> None:
    """Drop indexes, load users, types and events concurrently, then restore indexes."""
    try:
        _execute_all(engine, (*PREPARE_SQL, *DROP_INDEX))
    except AppError as err:
        raise err.tap()

    with ThreadPoolExecutor(max_workers=3) as pool:
        tasks = [pool.submit(task, engine) for task in (_seed_users, _seed_types, _seed_events)]
        try:
            for task in tasks:
                task.result()
        except AppError as err:
            raise err.tap()

    try:
        _execute_all(engine, (*CREATE_INDEX, *RECOVERY_AFTER_PREPARE))
    except AppError as err:
        raise err.tap()


def seed_database(config_path: str | Path) -> None:
    """Load the configuration, connect and fill the database."""
    try:
        conf = load_config(config_path)
        engine = create_db(conf.db)
    except AppError as err:
        raise err.tap()
    try:
        print("Старт")
        try:
            seeding(engine)
        except AppError as err:
            raise err.tap()
        print("Конец")
    finally:
        engine.dispose()