import inspect

import pytest

from eventapi.errors import AppError, PanicError


def test_new_error_records_creation_site():
    frame = inspect.currentframe()
    err = AppError("boom")
    line = frame.f_lineno - 1
    filename = frame.f_code.co_filename
    del frame
    assert err.trace == [f"{filename}:{line}"]


def test_str_joins_message_and_trace():
    err = AppError("boom")
    assert str(err) == "boom\n\t" + err.trace[0]


def test_add_prefixes_message_and_extends_trace():
    err = AppError("boom")
    result = err.add("ctx")
    assert result is err
    assert err.message == "ctx: boom"
    assert len(err.trace) == 2
    assert str(err).split("\n")[0] == "ctx: boom"


def test_add_records_call_site():
    err = AppError("boom")
    frame = inspect.currentframe()
    err.add("ctx")
    line = frame.f_lineno - 1
    filename = frame.f_code.co_filename
    del frame
    assert err.trace[-1] == f"{filename}:{line}"


def test_tap_keeps_message():
    err = AppError("boom")
    assert err.tap().tap() is err
    assert err.message == "boom"
    assert len(err.trace) == 3


def test_wraps_exception():
    cause = ValueError("bad value")
    err = AppError(cause)
    assert err.cause is cause
    assert err.__cause__ is cause
    assert err.message == "bad value"


def test_can_be_raised_and_caught():
    err = AppError("boom")
    with pytest.raises(AppError, match=r"^outer: boom\n\t") as info:
        raise err.add("outer")
    assert info.value is err
    assert info.value.message == "outer: boom"


def test_empty_trace_gives_bare_message():
    err = AppError("boom")
    err.trace.clear()
    assert str(err) == "boom"


def test_panic_error_uses_stack_lines():
    err = PanicError(RuntimeError("panic: x"), "frame one\nframe two")
    assert err.trace == ["frame one", "frame two"]
    assert str(err) == "panic: x\n\tframe one\n\tframe two"
    assert isinstance(err, AppError)