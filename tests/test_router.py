from types import SimpleNamespace

import pytest
from werkzeug.test import Client

from eventapi.errors import AppError
from eventapi.router import (
    Mux,
    RouterManager,
    ServerConfig,
    default_server_engine,
    run_server,
    url_param,
)


class RecordingLogger:
    def __init__(self):
        self.messages = []

    def error(self, message, **kwargs):
        self.messages.append(message)


def build(debug=False, logger=None):
    closed = []

    def make(storage, writer, request):
        return SimpleNamespace(storage=storage, writer=writer, request=request)

    manager = RouterManager(Mux(), "store", make, closed.append, debug, logger)
    return manager, closed


def writes(text):
    def handler(container):
        container.writer.write(text)

    return handler


def recorder(name, calls):
    def middleware(container, next_action):
        calls.append(name)
        return next_action()

    return middleware


def test_get_route_serves_handler_and_closes_container():
    manager, closed = build()
    manager.get("/ping", writes("ok"))
    response = Client(manager.mux).get("/ping")
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "ok"
    assert len(closed) == 1
    assert closed[0].storage == "store"


def test_middlewares_run_in_order_before_handler():
    manager, _ = build()
    calls = []
    manager.use(recorder("first", calls))

    def handler(container):
        calls.append("handler")

    manager.get("/x", handler, recorder("second", calls))
    Client(manager.mux).get("/x")
    assert calls == ["first", "second", "handler"]


def test_middleware_added_later_does_not_affect_registered_routes():
    manager, _ = build()
    calls = []
    manager.get("/x", writes("x"))
    manager.use(recorder("late", calls))
    Client(manager.mux).get("/x")
    assert calls == []


def test_app_error_renders_internal_error_page_without_details():
    logger = RecordingLogger()
    manager, closed = build(logger=logger)
    err = AppError("database down")

    def handler(container):
        raise err

    manager.get("/fail", handler)
    response = Client(manager.mux).get("/fail")
    assert response.status_code == 500
    assert response.get_data(as_text=True) == "<h1>500 Internal Server Error</h1>\n\n"
    assert response.headers["Content-Type"] == "text/html; charset=utf-8"
    assert logger.messages[0].startswith("database down")
    assert len(err.trace) >= 2
    assert len(closed) == 1


def test_debug_mode_shows_error_in_pre_block():
    manager, _ = build(debug=True)

    def handler(container):
        raise AppError("visible failure")

    manager.get("/fail", handler)
    body = Client(manager.mux).get("/fail").get_data(as_text=True)
    assert "<pre>visible failure" in body
    assert body.endswith("</pre>\n")


def test_unexpected_exception_becomes_panic_error():
    logger = RecordingLogger()
    manager, _ = build(logger=logger)

    def handler(container):
        raise ValueError("boom")

    manager.get("/boom", handler)
    response = Client(manager.mux).get("/boom")
    assert response.status_code == 500
    assert logger.messages[0].startswith("panic: boom")


def test_default_not_found():
    manager, _ = build()
    manager.get("/ping", writes("ok"))
    response = Client(manager.mux).get("/missing")
    assert response.status_code == 404
    assert response.get_data(as_text=True) == "404 page not found\n"


def test_custom_not_found_goes_through_manager():
    manager, _ = build()
    manager.not_found(writes("nothing here"))
    response = Client(manager.mux).get("/missing")
    assert response.get_data(as_text=True) == "nothing here"


def test_method_not_allowed_sets_allow_header():
    manager, _ = build()
    manager.get("/only-get", writes("ok"))
    response = Client(manager.mux).post("/only-get")
    assert response.status_code == 405
    assert response.headers["Allow"] == "GET"


def test_custom_no_method_handler():
    manager, _ = build()
    manager.no_method(writes("wrong method"))
    manager.post("/events", writes("posted"))
    response = Client(manager.mux).get("/events")
    assert response.get_data(as_text=True) == "wrong method"


def test_url_params_are_captured():
    manager, _ = build()

    def handler(container):
        container.writer.write(url_param(container.request, "userId"))

    manager.get("/users/{userId}/events", handler)
    response = Client(manager.mux).get("/users/42/events")
    assert response.get_data(as_text=True) == "42"


def test_static_segment_preferred_over_parameter():
    manager, _ = build()
    manager.get("/users/{id}", writes("param"))
    manager.get("/users/me", writes("static"))
    client = Client(manager.mux)
    assert client.get("/users/me").get_data(as_text=True) == "static"
    assert client.get("/users/7").get_data(as_text=True) == "param"


def test_group_mounts_routes_under_prefix_and_copies_middlewares():
    manager, _ = build()
    calls = []
    manager.use(recorder("root", calls))
    api = manager.group("/api")
    manager.use(recorder("after", calls))
    api.get("/ping", writes("pong"))
    response = Client(manager.mux).get("/api/ping")
    assert response.get_data(as_text=True) == "pong"
    assert calls == ["root"]


def test_nested_group_combines_middlewares():
    manager, _ = build()
    calls = []
    api = manager.group("/api")
    api.use(recorder("api", calls))
    v1 = api.group("/v1", recorder("v1", calls))
    v1.get("/items", writes("items"))
    response = Client(manager.mux).get("/api/v1/items")
    assert response.get_data(as_text=True) == "items"
    assert calls == ["api", "v1"]


def test_group_not_found_handler():
    manager, _ = build()
    api = manager.group("/api")
    api.not_found(writes("api missing"))
    client = Client(manager.mux)
    assert client.get("/api/nope").get_data(as_text=True) == "api missing"
    assert client.get("/other").status_code == 404


def test_common_registers_get_post_options():
    manager, _ = build()
    manager.common("/c", writes("c"))
    client = Client(manager.mux)
    for method in ("GET", "POST", "OPTIONS"):
        assert client.open("/c", method=method).get_data(as_text=True) == "c"
    assert client.put("/c").status_code == 405


def test_all_registers_every_method():
    manager, _ = build()
    manager.all("/a", writes("a"))
    client = Client(manager.mux)
    for method in ("GET", "POST", "PUT", "PATCH", "DELETE", "TRACE"):
        assert client.open("/a", method=method).get_data(as_text=True) == "a"


def test_list_registers_given_methods_on_group():
    manager, _ = build()
    group = manager.group("/g")
    group.list(["PUT", "DELETE"], "/r", writes("r"))
    client = Client(manager.mux)
    assert client.delete("/g/r").get_data(as_text=True) == "r"
    assert client.get("/g/r").status_code == 405


def test_default_server_engine_is_empty_router():
    engine = default_server_engine()
    assert Client(engine).get("/").status_code == 404


def test_run_server_propagates_engine_error_with_trace():
    err = AppError("engine failed")

    def init(storage):
        raise err

    config = ServerConfig(
        storage="store",
        registration_routes=lambda manager: None,
        make_context=lambda s, w, r: None,
        close_context=lambda c: None,
        init_server_engine=init,
    )
    with pytest.raises(AppError) as info:
        run_server(config, 0, False, None)
    assert info.value is err
    assert len(err.trace) == 2