"""Database access for users, event types, events and statistics."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from eventapi.errors import AppError
from eventapi.models import Event, EventType, EventWithType, User
from eventapi.schema import TABLE_EVENT_TYPES, TABLE_EVENTS, TABLE_USERS

USER_EVENTS_LIMIT = 1000

_NO_ROWS = "no rows in result set"

_EVENT_SELECT = f"""
        SELECT e.id, e.timestamp, e.metadata, e.type_id, e.user_id, et.name AS type
        FROM {TABLE_EVENTS} e
            JOIN {TABLE_EVENT_TYPES} et ON e.type_id = et.id"""


def build_where(type_id: int, date_from: str, date_to: str) -> tuple[str, dict[str, Any]]:
    """Build the WHERE clause and its bound parameters for statistics queries.

    Parameters are named p1, p2, ... in the order their conditions appear.
    """
    conditions: list[str] = []
    params: dict[str, Any] = {}

    def bind(value: Any) -> str:
        name = f"p{len(params) + 1}"
        params[name] = value
        return f":{name}"

    if type_id > 0:
        conditions.append(f"type_id = {bind(type_id)}")
    if date_from:
        conditions.append(f"{bind(date_from)} <= timestamp")
    if date_to:
        conditions.append(f"timestamp <= {bind(date_to)}")
    where = " WHERE " + " AND ".join(conditions) if conditions else ""
    return where, params


def _decode_metadata(value: Any) -> dict[str, Any] | None:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError as exc:
            raise AppError(exc) from exc
    if value is None or isinstance(value, dict):
        return value
    raise AppError(f"cannot scan metadata of type {type(value).__name__} into a mapping")


def _decode_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as exc:
            raise AppError(exc) from exc
    raise AppError(f"cannot scan {type(value).__name__} into a timestamp")


def _event_from_row(row: Sequence[Any]) -> EventWithType:
    event_id, timestamp, metadata, type_id, user_id, type_name = row
    return EventWithType(
        id=event_id,
        timestamp=_decode_timestamp(timestamp),
        metadata=_decode_metadata(metadata),
        user_id=user_id,
        type_id=type_id,
        type_name=type_name,
    )


class Repository:
    """Queries and updates against the events database."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _query(self, sql: str, params: dict[str, Any] | None = None, *, write: bool = False) -> list[Sequence[Any]]:
        opener = self.engine.begin if write else self.engine.connect
        try:
            with opener() as conn:
                return list(conn.execute(text(sql), params or {}).all())
        except SQLAlchemyError as exc:
            raise AppError(exc) from exc

    def _first(self, sql: str, params: dict[str, Any] | None = None, *, write: bool = False) -> Sequence[Any]:
        rows = self._query(sql, params, write=write)
        if not rows:
            raise AppError(_NO_ROWS)
        return rows[0]

    def _count(self, sql: str, params: dict[str, Any] | None = None) -> int:
        return int(self._first(sql, params)[0])

    def find_user(self, user_id: int) -> User | None:
        """Return the user with this id, or None."""
        rows = self._query(f"SELECT id FROM {TABLE_USERS} WHERE id = :id", {"id": user_id})
        return User(id=rows[0][0]) if rows else None

    def find_event_type(self, name: str) -> EventType | None:
        """Return the event type with this name, or None."""
        rows = self._query(f"SELECT id, name FROM {TABLE_EVENT_TYPES} WHERE name = :name", {"name": name})
        return EventType(id=rows[0][0], name=rows[0][1]) if rows else None

    def find_or_create_user(self, user_id: int) -> User:
        """Return the user with this id, creating it if it does not exist."""
        user = self.find_user(user_id)
        if user is not None:
            return user
        row = self._first(
            f"""
            INSERT INTO {TABLE_USERS} (id, name, created_at)
            VALUES (:id, :name, NOW())
            RETURNING id, name
        """,
            {"id": user_id, "name": f"user{user_id}"},
            write=True,
        )
        return User(id=row[0], name=row[1])

    def find_or_create_event_type(self, name: str) -> EventType:
        """Return the event type with this name, creating it if it does not exist."""
        event_type = self.find_event_type(name)
        if event_type is not None:
            return event_type
        row = self._first(
            f"""
            INSERT INTO {TABLE_EVENT_TYPES} (name)
            VALUES (:name)
            RETURNING id, name
        """,
            {"name": name},
            write=True,
        )
        return EventType(id=row[0], name=row[1])

    def create_event(self, event: Event) -> int:
        """Store an event and return its new id."""
        try:
            metadata = json.dumps(event.metadata, ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise AppError(exc) from exc
        row = self._first(
            f"""
        INSERT INTO {TABLE_EVENTS} (timestamp, metadata, user_id, type_id)
        VALUES (:timestamp, :metadata, :user_id, :type_id)
        RETURNING id""",
            {
                "timestamp": event.timestamp,
                "metadata": metadata,
                "user_id": event.user_id,
                "type_id": event.type_id,
            },
            write=True,
        )
        return int(row[0])

    def events_total(self) -> int:
        """Count all stored events."""
        return self._count(f"SELECT COUNT(*) FROM {TABLE_EVENTS}")

    def list(self, page: int, limit: int) -> list[EventWithType]:
        """Return one page of events, newest first."""
        rows = self._query(
            _EVENT_SELECT
            + """
        ORDER BY e.timestamp DESC
        LIMIT :limit OFFSET :offset""",
            {"limit": limit, "offset": (page - 1) * limit},
        )
        return [_event_from_row(row) for row in rows]

    def list_for_user(self, user_id: int) -> list[EventWithType]:
        """Return the newest events of one user, at most USER_EVENTS_LIMIT."""
        rows = self._query(
            _EVENT_SELECT
            + f"""
        WHERE e.user_id = :user_id
        ORDER BY e.timestamp DESC
        LIMIT {USER_EVENTS_LIMIT}
    """,
            {"user_id": user_id},
        )
        return [_event_from_row(row) for row in rows]

    def stat_total(self, type_id: int, date_from: str, date_to: str) -> int:
        """Count events matching the filters."""
        where, params = build_where(type_id, date_from, date_to)
        return self._count(f"SELECT COUNT(*) FROM {TABLE_EVENTS} {where}", params)

    def stat_unique_users(self, type_id: int, date_from: str, date_to: str) -> int:
        """Count distinct users among events matching the filters."""
        where, params = build_where(type_id, date_from, date_to)
        return self._count(
            f"""
        select count(distinct user_id)
        from {TABLE_EVENTS}
        {where}""",
            params,
        )

    def stats_pages(self, type_id: int, date_from: str, date_to: str) -> dict[str, int]:
        """Count matching events per page, most visited first."""
        where, params = build_where(type_id, date_from, date_to)
        rows = self._query(
            f"""
        SELECT
            metadata->>'page' as page,
            COUNT(*) as page_count
        FROM {TABLE_EVENTS}
        {where}
        group by page
        order by page_count desc
    """,
            params,
        )
        pages: dict[str, int] = {}
        for page, count in rows:
            if page is None:
                raise AppError("cannot scan NULL page into a string")
            pages[page] = int(count)
        return pages