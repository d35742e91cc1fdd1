"""Routing: a small path router, and a manager that wraps handlers in middleware."""

from __future__ import annotations

import functools
import traceback
from dataclasses import dataclass
from socketserver import ThreadingMixIn
from typing import Any, Callable, Generic, Iterable, Protocol, TypeVar
from wsgiref.simple_server import WSGIServer, make_server

from werkzeug.wrappers import Request

from eventapi.errors import AppError, PanicError
from eventapi.writer import ResponseWriter

S = TypeVar("S")
C = TypeVar("C")
R = TypeVar("R")

HttpHandler = Callable[[ResponseWriter, Request], None]
Action = Callable[[], Any]
HandlerFunc = Callable[[Any], Any]
MiddlewareFunc = Callable[[Any, Action], Any]

COMMON_METHODS = ("GET", "POST", "OPTIONS")
ALL_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "CONNECT", "OPTIONS", "TRACE")

_PARAMS_KEY = "eventapi.url_params"


class _ErrorLogger(Protocol):
    def error(self, message: str, **kwargs: Any) -> None: ...


def url_param(request: Request, name: str) -> str:
    """Return the value captured for a "{name}" path segment, or ""."""
    return request.environ.get(_PARAMS_KEY, {}).get(name, "")


def _segments(path: str) -> tuple[str, ...]:
    return tuple(path.split("/")[1:])


def _param_name(segment: str) -> str | None:
    if len(segment) > 2 and segment.startswith("{") and segment.endswith("}"):
        return segment[1:-1]
    return None


def _match_segments(
    pattern: tuple[str, ...], segments: tuple[str, ...]
) -> tuple[tuple[int, ...], dict[str, str]] | None:
    """Match segment by segment; the rank prefers static segments over parameters."""
    params: dict[str, str] = {}
    rank: list[int] = []
    for expected, actual in zip(pattern, segments):
        name = _param_name(expected)
        if name is None:
            if expected != actual:
                return None
            rank.append(1)
        else:
            if not actual:
                return None
            params[name] = actual
            rank.append(0)
    return tuple(rank), params


def _default_not_found(writer: ResponseWriter, request: Request) -> None:
    writer.set_header("Content-Type", "text/plain; charset=utf-8")
    writer.set_header("X-Content-Type-Options", "nosniff")
    writer.write_header(404)
    writer.write("404 page not found\n")


def _default_method_not_allowed(writer: ResponseWriter, request: Request) -> None:
    writer.write_header(405)


class Mux:
    """A WSGI router matching method and path, with mounted sub-routers."""

    def __init__(self) -> None:
        self._routes: dict[tuple[str, ...], dict[str, HttpHandler]] = {}
        self._mounts: list[tuple[tuple[str, ...], Mux]] = []
        self._not_found: HttpHandler | None = None
        self._method_not_allowed: HttpHandler | None = None

    def method(self, method: str, pattern: str, handler: HttpHandler) -> None:
        self._routes.setdefault(_segments(pattern), {})[method.upper()] = handler

    def get(self, pattern: str, handler: HttpHandler) -> None:
        self.method("GET", pattern, handler)

    def post(self, pattern: str, handler: HttpHandler) -> None:
        self.method("POST", pattern, handler)

    def mount(self, prefix: str, mux: Mux) -> None:
        """Serve every path under prefix with mux, seeing the rest of the path."""
        stripped = prefix.rstrip("/")
        self._mounts.append((_segments(stripped) if stripped else (), mux))

    def not_found(self, handler: HttpHandler) -> None:
        self._not_found = handler

    def method_not_allowed(self, handler: HttpHandler) -> None:
        self._method_not_allowed = handler

    def serve(self, writer: ResponseWriter, request: Request) -> None:
        """Dispatch a request to the matching handler."""
        self._dispatch(writer, request, request.path, {}, _default_not_found, _default_method_not_allowed)

    def _dispatch(
        self,
        writer: ResponseWriter,
        request: Request,
        path: str,
        params: dict[str, str],
        not_found: HttpHandler,
        method_not_allowed: HttpHandler,
    ) -> None:
        not_found = self._not_found or not_found
        method_not_allowed = self._method_not_allowed or method_not_allowed
        segments = _segments(path)

        best: tuple[tuple[int, ...], dict[str, str], dict[str, HttpHandler]] | None = None
        for pattern, handlers in self._routes.items():
            if len(pattern) != len(segments):
                continue
            matched = _match_segments(pattern, segments)
            if matched is not None and (best is None or matched[0] > best[0]):
                best = (matched[0], matched[1], handlers)

        if best is not None:
            _, captured, handlers = best
            request.environ[_PARAMS_KEY] = {**params, **captured}
            handler = handlers.get(request.method.upper())
            if handler is None:
                writer.set_header("Allow", ", ".join(sorted(handlers)))
                method_not_allowed(writer, request)
            else:
                handler(writer, request)
            return

        for prefix, mux in sorted(self._mounts, key=lambda item: len(item[0]), reverse=True):
            if len(segments) < len(prefix):
                continue
            matched = _match_segments(prefix, segments)
            if matched is None:
                continue
            rest = segments[len(prefix):]
            sub_path = "/" + "/".join(rest) if rest else "/"
            mux._dispatch(writer, request, sub_path, {**params, **matched[1]}, not_found, method_not_allowed)
            return

        request.environ[_PARAMS_KEY] = dict(params)
        not_found(writer, request)

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        request = Request(environ)
        writer = ResponseWriter()
        self.serve(writer, request)
        return writer.to_response()(environ, start_response)


def default_server_engine() -> Mux:
    return Mux()


@dataclass
class ServerConfig(Generic[S, C, R]):
    """What an application supplies to be served."""

    storage: S
    registration_routes: Callable[[RouterManager], None]
    make_context: Callable[[S, ResponseWriter, Request], C]
    close_context: Callable[[C], None]
    init_server_engine: Callable[[S], Mux] | None = None


class RouterManager:
    """Registers handlers that get a per-request container and run through middleware."""

    def __init__(
        self,
        mux: Mux,
        storage: Any,
        make_container: Callable[[Any, ResponseWriter, Request], Any],
        close_container: Callable[[Any], None],
        debug: bool,
        logger: _ErrorLogger | None,
    ) -> None:
        self._mux = mux
        self.storage = storage
        self._make_container = make_container
        self._close_container = close_container
        self.debug = debug
        self.logger = logger
        self._middlewares: list[MiddlewareFunc] = []

    @property
    def mux(self) -> Mux:
        return self._mux

    def _wrap(self, handler: HandlerFunc, extra: tuple[MiddlewareFunc, ...]) -> HttpHandler:
        return self._make_handler(handler, [*self._middlewares, *extra])

    def use(self, *args: MiddlewareFunc) -> None:
        self._middlewares.extend(args)

    def group(self, relative_path: str) -> Group:
        return Group(self, self._mux, relative_path, self._middlewares)

    def not_found(self, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self._mux.not_found(self._wrap(handler, args))

    def no_method(self, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self._mux.method_not_allowed(self._wrap(handler, args))

    def get(self, relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self._mux.get(relative_path, self._wrap(handler, args))

    def post(self, relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self._mux.post(relative_path, self._wrap(handler, args))

    def list(self, methods: Iterable[str], relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        for method in methods:
            self._mux.method(method, relative_path, self._wrap(handler, args))

    def common(self, relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self.list(COMMON_METHODS, relative_path, handler, *args)

    def all(self, relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self.list(ALL_METHODS, relative_path, handler, *args)

    def _make_handler(self, handler: HandlerFunc, middlewares: list[MiddlewareFunc]) -> HttpHandler:
        chain = tuple(middlewares)

        def serve(writer: ResponseWriter, request: Request) -> None:
            try:
                container = self._make_container(self.storage, writer, request)
                try:
                    self._pipeline(handler, chain, container)
                finally:
                    self._close_container(container)
            except AppError as err:
                self._errors_handler(writer, err)
            except Exception as exc:
                self._errors_handler(writer, PanicError(f"panic: {exc}", traceback.format_exc()))

        return serve

    @staticmethod
    def _pipeline(handler: HandlerFunc, middlewares: tuple[MiddlewareFunc, ...], container: Any) -> Any:
        action: Action = functools.partial(handler, container)
        for middleware in reversed(middlewares):
            action = functools.partial(middleware, container, action)
        try:
            return action()
        except AppError as err:
            raise err.tap()

    def _errors_handler(self, writer: ResponseWriter, err: AppError) -> None:
        if self.logger is not None:
            self.logger.error(str(err))
        message = f"<pre>{err}</pre>" if self.debug else ""
        writer.set_header("Content-Type", "text/html; charset=utf-8")
        writer.write_header(500)
        writer.write(f"<h1>500 Internal Server Error</h1>\n{message}\n")


class Group:
    """Routes mounted under a path prefix, sharing a middleware list."""

    def __init__(
        self,
        router_manager: RouterManager,
        parent: Mux,
        relative_path: str,
        middlewares: Iterable[MiddlewareFunc] = (),
    ) -> None:
        self._router_manager = router_manager
        self._mux = Mux()
        parent.mount(relative_path, self._mux)
        self._middlewares = list(middlewares)

    def _wrap(self, handler: HandlerFunc, extra: tuple[MiddlewareFunc, ...]) -> HttpHandler:
        return self._router_manager._make_handler(handler, [*self._middlewares, *extra])

    def use(self, *args: MiddlewareFunc) -> None:
        self._middlewares.extend(args)

    def group(self, relative_path: str, *args: MiddlewareFunc) -> Group:
        return Group(self._router_manager, self._mux, relative_path, [*self._middlewares, *args])

    def not_found(self, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self._mux.not_found(self._wrap(handler, args))

    def no_method(self, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self._mux.method_not_allowed(self._wrap(handler, args))

    def get(self, relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self._mux.get(relative_path, self._wrap(handler, args))

    def post(self, relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self._mux.post(relative_path, self._wrap(handler, args))

    def list(self, methods: Iterable[str], relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        for method in methods:
            self._mux.method(method, relative_path, self._wrap(handler, args))

    def common(self, relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self.list(COMMON_METHODS, relative_path, handler, *args)

    def all(self, relative_path: str, handler: HandlerFunc, *args: MiddlewareFunc) -> None:
        self.list(ALL_METHODS, relative_path, handler, *args)


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


def run_server(config: ServerConfig, port: int, debug: bool, logger: _ErrorLogger | None) -> None:
    """Register the application's routes and serve them until interrupted."""
    if config.init_server_engine is not None:
        try:
            engine = config.init_server_engine(config.storage)
        except AppError as err:
            raise err.tap()
    else:
        engine = default_server_engine()

    manager = RouterManager(engine, config.storage, config.make_context, config.close_context, debug, logger)
    config.registration_routes(manager)

    print(f"Starting http_server at port {port}...", end="", flush=True)
    try:
        server = make_server("", port, engine, server_class=_ThreadingWSGIServer)
    except OSError as exc:
        raise AppError(f"error starting http server: {exc}") from exc
    with server:
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass