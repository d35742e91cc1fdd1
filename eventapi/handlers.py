"""Request handlers for ping, events, per-user events and statistics."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Protocol

from eventapi.errors import AppError
from eventapi.models import Event, EventWithType
from eventapi.responses import ResponseFactory
from eventapi.router import url_param
from eventapi.writer import Response

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 100
USER_EVENTS_LIMIT = 1000
USER_ID_PARAM = "userId"

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_INT_RE = re.compile(r"[+-]?[0-9]+")
_TIMESTAMP_RE = re.compile(
    r"(?P<year>[0-9]{4})-(?P<month>[0-9]{2})-(?P<day>[0-9]{2}) "
    r"(?P<hour>[0-9]{1,2}):(?P<minute>[0-9]{2}):(?P<second>[0-9]{2})(?:[.,][0-9]+)?"
)
_JSON_WHITESPACE = " \t\r\n"


class _QueryError(ValueError):
    """A query parameter could not be understood."""


class _BodyError(ValueError):
    """The request body could not be decoded."""


class Services(Protocol):
    request: Any

    def response_factory(self) -> ResponseFactory: ...

    def repository(self) -> Any: ...


def _parse_int64(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"integer {text!r} out of range")
    return value


def _valid_timestamp(text: str) -> bool:
    match = _TIMESTAMP_RE.fullmatch(text)
    if match is None:
        return False
    parts = {name: int(value) for name, value in match.groupdict().items()}
    try:
        datetime(**parts)
    except ValueError:
        return False
    return True


def parse_page_query(args: Mapping[str, str]) -> tuple[int, int]:
    """Return (page, limit) from query arguments, with defaults for missing ones."""
    page_text = args.get("page", "") or ""
    limit_text = args.get("limit", "") or ""
    page = DEFAULT_PAGE
    limit = DEFAULT_LIMIT
    if page_text:
        try:
            page = _parse_int64(page_text)
        except ValueError:
            raise _QueryError("page должно быть целым числом") from None
    if limit_text:
        try:
            limit = _parse_int64(limit_text)
        except ValueError:
            raise _QueryError("limit должно быть целым числом") from None
    return page, limit


def parse_stats_query(args: Mapping[str, str]) -> tuple[str, str, str]:
    """Return (type, from, to) from query arguments, checking the time formats."""
    date_from = args.get("from", "") or ""
    if date_from and not _valid_timestamp(date_from):
        raise _QueryError("Неудалось распарсить from")
    date_to = args.get("to", "") or ""
    if date_to and not _valid_timestamp(date_to):
        raise _QueryError("Неудалось распарсить to")
    return args.get("type", "") or "", date_from, date_to


@dataclass
class _EventRequest:
    user_id: int = 0
    event_type: str = ""
    timestamp: str = ""
    metadata: dict[str, Any] | None = None


def _reject_constant(name: str) -> Any:
    raise _BodyError(f"invalid JSON value {name}")


def _assign(body: _EventRequest, field: str, value: Any) -> None:
    if field == "metadata":
        if value is not None and not isinstance(value, dict):
            raise _BodyError("metadata must be an object")
        body.metadata = value
        return
    if value is None:
        return
    if field == "user_id":
        if isinstance(value, bool) or not isinstance(value, int):
            raise _BodyError("user_id must be an integer")
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise _BodyError("user_id out of range")
        body.user_id = value
        return
    if not isinstance(value, str):
        raise _BodyError(f"{field} must be a string")
    setattr(body, field, value)


_FIELDS = ("user_id", "event_type", "timestamp", "metadata")


def parse_event_body(body: bytes | str) -> _EventRequest:
    """Decode the first JSON value of a request body into an event request."""
    text = body.decode("utf-8", errors="replace") if isinstance(body, (bytes, bytearray)) else body
    text = text.lstrip(_JSON_WHITESPACE)
    if not text:
        raise _BodyError("EOF")
    decoder = json.JSONDecoder(parse_constant=_reject_constant)
    try:
        value, _ = decoder.raw_decode(text)
    except json.JSONDecodeError as exc:
        raise _BodyError(str(exc)) from exc
    result = _EventRequest()
    if value is None:
        return result
    if not isinstance(value, dict):
        raise _BodyError("request body must be an object")
    for key, item in value.items():
        field = key if key in _FIELDS else next((f for f in _FIELDS if f == key.lower()), None)
        if field is not None:
            _assign(result, field, item)
    return result


@dataclass(frozen=True)
class _PageQuery:
    page: int
    limit: int
    total: int

    def to_dict(self) -> dict[str, Any]:
        return {"page": self.page, "limit": self.limit, "total": self.total}


@dataclass(frozen=True)
class _EventsPage:
    data: list[EventWithType]
    query: _PageQuery

    def to_dict(self) -> dict[str, Any]:
        events = [event.to_dict() for event in self.data] if self.data else None
        return {"data": events, "query": self.query.to_dict()}


@dataclass(frozen=True)
class _UserQuery:
    limit: int
    total: int

    def to_dict(self) -> dict[str, Any]:
        return {"limit": self.limit, "total": self.total}


@dataclass(frozen=True)
class _UserEvents:
    data: list[EventWithType]
    query: _UserQuery

    def to_dict(self) -> dict[str, Any]:
        events = [event.to_dict() for event in self.data] if self.data else None
        return {"data": events, "query": self.query.to_dict()}


@dataclass(frozen=True)
class _Stats:
    total_events: int
    unique_users: int
    top_pages: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_events": self.total_events,
            "unique_users": self.unique_users,
            "top_pages": self.top_pages,
        }


def ping(services: Services) -> Response:
    return services.response_factory().string("ok")


def events_get(services: Services) -> Response:
    """List one page of events with the total count."""
    factory = services.response_factory()
    try:
        page, limit = parse_page_query(services.request.args)
    except _QueryError as err:
        return factory.error(400, str(err))
    repo = services.repository()
    try:
        events = repo.list(page, limit)
        total = repo.events_total()
    except AppError as err:
        raise err.tap()
    return factory.json(_EventsPage(events, _PageQuery(page, limit, total)))


def events_post(services: Services) -> Response:
    """Store a submitted event, creating its user and type when they are new."""
    factory = services.response_factory()
    try:
        data = parse_event_body(services.request.get_data())
    except _BodyError:
        return factory.error(400, "Не получилось распарсить запрос")
    repo = services.repository()
    try:
        user = repo.find_or_create_user(data.user_id)
        event_type = repo.find_or_create_event_type(data.event_type)
        event = Event(
            id=0,
            timestamp=data.timestamp,
            metadata=data.metadata,
            user_id=user.id,
            type_id=event_type.id,
        )
        event.id = repo.create_event(event)
    except AppError as err:
        raise err.tap()
    return factory.json(event)


def user_events(services: Services) -> Response:
    """List the newest events of the user named in the path."""
    factory = services.response_factory()
    try:
        user_id = _parse_int64(url_param(services.request, USER_ID_PARAM))
    except ValueError:
        return factory.error(404, "Страница не найдена")
    repo = services.repository()
    try:
        user = repo.find_user(user_id)
        if user is None:
            return factory.error(404, "Пользователь не найден")
        events = repo.list_for_user(user.id)
        total = repo.events_total()
    except AppError as err:
        raise err.tap()
    return factory.json(_UserEvents(events, _UserQuery(limit=USER_EVENTS_LIMIT, total=total)))


def stats(services: Services) -> Response:
    """Summarise events of one type within an optional time window."""
    factory = services.response_factory()
    try:
        type_name, date_from, date_to = parse_stats_query(services.request.args)
    except _QueryError as err:
        return factory.error(404, str(err))
    repo = services.repository()
    try:
        event_type = repo.find_event_type(type_name)
        if event_type is None:
            return factory.error(404, "не найден тип")
        pages = repo.stats_pages(event_type.id, date_from, date_to)
        unique_users = repo.stat_unique_users(event_type.id, date_from, date_to)
        total = repo.stat_total(event_type.id, date_from, date_to)
    except AppError as err:
        raise err.tap()
    return factory.json(_Stats(total_events=total, unique_users=unique_users, top_pages=pages))