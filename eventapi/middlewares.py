"""Middleware that renders responses and turns failures into error responses."""

from __future__ import annotations

import traceback
from typing import Any, Callable, Protocol

from eventapi.errors import AppError, PanicError
from eventapi.writer import ResponseWriter

Action = Callable[[], Any]


class _Logger(Protocol):
    def error(self, message: str, **kwargs: Any) -> None: ...


class ErrorServices(Protocol):
    debug: bool
    logger: _Logger | None
    writer: ResponseWriter

    def response_factory(self) -> Any: ...


class ResponseServices(Protocol):
    writer: ResponseWriter


def _errors_handler(services: ErrorServices, err: AppError) -> None:
    logger = services.logger
    if logger is not None:
        logger.error(str(err))
    text = str(err) if services.debug else "***"
    response = services.response_factory().error(500, text)
    try:
        response.render(services.writer)
    except AppError as render_err:
        raise render_err.add("failed to render the error page")


def error_middleware(services: ErrorServices, next_action: Action) -> None:
    """Run the rest of the chain; render any failure as a JSON error response."""
    try:
        next_action()
    except AppError as err:
        _errors_handler(services, err)
    except Exception as exc:
        _errors_handler(services, PanicError(f"panic: {exc}", traceback.format_exc()))
    return None


def response_middleware(services: ResponseServices, next_action: Action) -> None:
    """Run the rest of the chain and render the response it returns."""
    response = next_action()
    try:
        response.render(services.writer)
    except AppError as err:
        raise err.tap()
    return None