"""Errors that remember every place they passed through."""

from __future__ import annotations

import inspect

_UNKNOWN_LOCATION = "it was not possible to recover the information"


def _caller_location() -> str:
    """Return "file:line" of the code that called the method calling this helper."""
    frame = inspect.currentframe()
    try:
        for _ in range(2):
            if frame is None:
                break
            frame = frame.f_back
        if frame is None:
            return _UNKNOWN_LOCATION
        return f"{frame.f_code.co_filename}:{frame.f_lineno}"
    finally:
        del frame


class AppError(Exception):
    """An error carrying a message chain and a trace of source locations."""

    def __init__(self, error: BaseException | str) -> None:
        if isinstance(error, BaseException):
            cause: BaseException | None = error
            message = str(error)
        else:
            cause = None
            message = str(error)
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        self.trace: list[str] = [_caller_location()]

    def add(self, msg: str) -> AppError:
        """Prefix the message with context and record the current location."""
        self.trace.append(_caller_location())
        self.message = f"{msg}: {self.message}"
        self.args = (self.message,)
        return self

    def tap(self) -> AppError:
        """Record the current location without changing the message."""
        self.trace.append(_caller_location())
        return self

    def __str__(self) -> str:
        if not self.trace:
            return self.message
        return self.message + "\n\t" + "\n\t".join(self.trace)


class PanicError(AppError):
    """An error raised from an unexpected failure, traced by its stack dump."""

    def __init__(self, error: BaseException | str, stack: str) -> None:
        super().__init__(error)
        self.trace = stack.split("\n")