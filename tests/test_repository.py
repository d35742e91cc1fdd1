from contextlib import contextmanager
from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from eventapi.errors import AppError
from eventapi.models import Event, EventType, EventWithType, User
from eventapi.repository import Repository, build_where


class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    def all(self):
        return list(self._rows)


class FakeConnection:
    def __init__(self, engine):
        self._engine = engine

    def execute(self, statement, params):
        self._engine.calls.append((str(statement), dict(params)))
        outcome = self._engine.results.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResult(outcome)


class FakeEngine:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.writes = 0

    @contextmanager
    def connect(self):
        yield FakeConnection(self)

    @contextmanager
    def begin(self):
        self.writes += 1
        yield FakeConnection(self)


def test_build_where_without_filters_is_empty():
    assert build_where(0, "", "") == ("", {})


def test_build_where_numbers_parameters_in_order():
    where, params = build_where(5, "2024-01-01 00:00:00", "2024-02-01 00:00:00")
    assert where == " WHERE type_id = :p1 AND :p2 <= timestamp AND timestamp <= :p3"
    assert params == {"p1": 5, "p2": "2024-01-01 00:00:00", "p3": "2024-02-01 00:00:00"}


def test_build_where_skips_missing_type():
    where, params = build_where(0, "", "2024-02-01 00:00:00")
    assert where == " WHERE timestamp <= :p1"
    assert params == {"p1": "2024-02-01 00:00:00"}


def test_find_user_found_and_missing():
    engine = FakeEngine([(7,)], [])
    repo = Repository(engine)
    assert repo.find_user(7) == User(id=7)
    assert repo.find_user(8) is None
    assert engine.calls[0][0] == "SELECT id FROM users WHERE id = :id"
    assert engine.calls[1][1] == {"id": 8}


def test_find_event_type():
    engine = FakeEngine([(3, "click")], [])
    repo = Repository(engine)
    assert repo.find_event_type("click") == EventType(id=3, name="click")
    assert repo.find_event_type("view") is None


def test_find_or_create_user_creates_missing():
    engine = FakeEngine([], [(42, "user42")])
    user = Repository(engine).find_or_create_user(42)
    assert user == User(id=42, name="user42")
    assert engine.writes == 1
    assert engine.calls[1][1] == {"id": 42, "name": "user42"}
    assert "INSERT INTO users" in engine.calls[1][0]


def test_find_or_create_user_existing_does_not_insert():
    engine = FakeEngine([(42,)])
    assert Repository(engine).find_or_create_user(42) == User(id=42)
    assert engine.writes == 0


def test_find_or_create_event_type_creates_missing():
    engine = FakeEngine([], [(9, "click")])
    assert Repository(engine).find_or_create_event_type("click") == EventType(id=9, name="click")
    assert engine.calls[1][1] == {"name": "click"}


def test_create_event_serialises_metadata():
    engine = FakeEngine([(11,)])
    event = Event(id=0, timestamp="2024-01-01 10:00:00", metadata={"page": "/a"}, user_id=2, type_id=3)
    assert Repository(engine).create_event(event) == 11
    params = engine.calls[0][1]
    assert params["metadata"] == '{"page": "/a"}'
    assert params["user_id"] == 2 and params["type_id"] == 3
    assert engine.writes == 1


def test_create_event_null_metadata():
    engine = FakeEngine([(1,)])
    Repository(engine).create_event(Event(0, "2024-01-01 10:00:00", None, 1, 1))
    assert engine.calls[0][1]["metadata"] == "null"


def test_events_total():
    engine = FakeEngine([(123,)])
    assert Repository(engine).events_total() == 123
    assert engine.calls[0][0] == "SELECT COUNT(*) FROM events"


def test_list_decodes_rows_and_pages():
    moment = datetime(2024, 1, 1, 10, 0, 0)
    engine = FakeEngine([(1, moment, '{"page": "/x"}', 4, 5, "click"), (2, moment, None, 4, 6, "click")])
    events = Repository(engine).list(3, 10)
    assert events == [
        EventWithType(1, moment, {"page": "/x"}, 5, 4, "click"),
        EventWithType(2, moment, None, 6, 4, "click"),
    ]
    assert engine.calls[0][1] == {"limit": 10, "offset": 20}


def test_list_first_page_has_zero_offset():
    engine = FakeEngine([])
    assert Repository(engine).list(1, 100) == []
    assert engine.calls[0][1]["offset"] == 0


def test_list_for_user_filters_and_limits():
    moment = datetime(2024, 1, 1)
    engine = FakeEngine([(1, moment, {"page": "/y"}, 2, 9, "view")])
    events = Repository(engine).list_for_user(9)
    assert [e.user_id for e in events] == [9]
    sql, params = engine.calls[0]
    assert params == {"user_id": 9}
    assert "LIMIT 1000" in sql


def test_list_rejects_non_mapping_metadata():
    engine = FakeEngine([(1, datetime(2024, 1, 1), "[1, 2]", 2, 9, "view")])
    with pytest.raises(AppError):
        Repository(engine).list(1, 10)


def test_stat_queries_use_where():
    engine = FakeEngine([(5,)], [(2,)])
    repo = Repository(engine)
    assert repo.stat_total(3, "", "") == 5
    assert repo.stat_unique_users(3, "", "") == 2
    for sql, params in engine.calls:
        assert "type_id = :p1" in sql
        assert params == {"p1": 3}


def test_stats_pages_builds_mapping():
    engine = FakeEngine([("/a", 4), ("/b", 1)])
    assert Repository(engine).stats_pages(0, "", "") == {"/a": 4, "/b": 1}
    assert "WHERE" not in engine.calls[0][0]


def test_stats_pages_null_page_is_error():
    engine = FakeEngine([(None, 3)])
    with pytest.raises(AppError):
        Repository(engine).stats_pages(0, "", "")


def test_database_errors_become_app_errors():
    engine = FakeEngine(SQLAlchemyError("boom"))
    with pytest.raises(AppError, match="boom"):
        Repository(engine).events_total()


def test_insert_without_returned_row_is_error():
    engine = FakeEngine([], [])
    with pytest.raises(AppError, match="no rows"):
        Repository(engine).find_or_create_user(1)