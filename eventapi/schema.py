"""Table names, schema statements and the database connection."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from eventapi.config import DBConfig
from eventapi.errors import AppError

TABLE_EVENTS = "events"
TABLE_USERS = "users"
TABLE_EVENT_TYPES = "event_types"

POOL_MAX_CONNECTIONS = 50

PREPARE_SQL = (
    f"ALTER TABLE {TABLE_EVENTS} DISABLE TRIGGER ALL;",
    f"TRUNCATE TABLE {TABLE_EVENTS} RESTART IDENTITY;",
    f"TRUNCATE TABLE {TABLE_EVENT_TYPES} RESTART IDENTITY;",
    f"TRUNCATE TABLE {TABLE_USERS} RESTART IDENTITY;",
)

RECOVERY_AFTER_PREPARE = (
    f"ALTER TABLE {TABLE_EVENTS} ENABLE TRIGGER ALL;",
    f"SELECT setval('users_id_seq', (SELECT MAX(id) FROM {TABLE_USERS}));",
    f"SELECT setval('event_types_id_seq', (SELECT MAX(id) FROM {TABLE_EVENT_TYPES}));",
    f"SELECT setval('events_id_seq', (SELECT MAX(id) FROM {TABLE_EVENTS}));",
)

CREATE_INDEX = (
    f"CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_events_count ON {TABLE_EVENTS} USING btree (id)",
    f"CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_events_user_timestamp ON {TABLE_EVENTS} (user_id, timestamp DESC)",
    f"CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_events_timestamp_desc ON {TABLE_EVENTS} (timestamp DESC)",
    f"CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_events_type_timestamp ON {TABLE_EVENTS} (type_id, timestamp DESC)",
    f"CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_events_stats ON {TABLE_EVENTS} "
    "(user_id, ((metadata->>'page')), type_id)",
    f"CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_events_covering ON {TABLE_EVENTS} "
    "(user_id, type_id, timestamp DESC) INCLUDE (id, metadata)",
)

DROP_INDEX = (
    f"ALTER TABLE {TABLE_EVENTS} DISABLE TRIGGER ALL",
    "DROP INDEX CONCURRENTLY IF EXISTS idx_events_count",
    "DROP INDEX CONCURRENTLY IF EXISTS idx_events_user_timestamp",
    "DROP INDEX CONCURRENTLY IF EXISTS idx_events_timestamp_desc",
    "DROP INDEX CONCURRENTLY IF EXISTS idx_events_type_timestamp",
    "DROP INDEX CONCURRENTLY IF EXISTS idx_events_stats",
    "DROP INDEX CONCURRENTLY IF EXISTS idx_events_covering",
)

INIT = (
    f"DROP TABLE IF EXISTS {TABLE_USERS};",
    f"""CREATE TABLE {TABLE_USERS} (
			id BIGSERIAL PRIMARY KEY,
			name VARCHAR NOT NULL,
			created_at TIMESTAMP NOT NULL
		);""",
    f"DROP TABLE IF EXISTS {TABLE_EVENT_TYPES};",
    f"""CREATE TABLE {TABLE_EVENT_TYPES} (
			id BIGSERIAL PRIMARY KEY,
			name VARCHAR NOT NULL UNIQUE
		);""",
    f"DROP TABLE IF EXISTS {TABLE_EVENTS};",
    f"""CREATE TABLE {TABLE_EVENTS} (
			id BIGSERIAL PRIMARY KEY,
			timestamp TIMESTAMP NOT NULL,
			metadata JSONB,
			user_id BIGINT NOT NULL,
			type_id BIGINT NOT NULL
		);""",
)


def connection_url(conf: DBConfig) -> URL:
    """Build the PostgreSQL connection URL for the given settings."""
    try:
        port = int(conf.port) if conf.port else None
    except ValueError as exc:
        raise AppError(f"invalid database port {conf.port!r}") from exc
    return URL.create(
        "postgresql",
        username=conf.user or None,
        password=conf.password or None,
        host=conf.host or None,
        port=port,
        database=conf.database or None,
        query={"sslmode": "disable"},
    )


def create_db(conf: DBConfig) -> Engine:
    """Create a pooled engine for the configured database."""
    url = connection_url(conf)
    try:
        return create_engine(url, pool_size=POOL_MAX_CONNECTIONS, max_overflow=0)
    except (ImportError, SQLAlchemyError) as exc:
        raise AppError(exc) from exc