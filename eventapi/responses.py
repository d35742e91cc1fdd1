"""Response kinds and the factory handlers use to build them."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Any

from eventapi.errors import AppError
from eventapi.models import format_timestamp
from eventapi.writer import ResponseWriter

_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _to_plain(value: Any) -> Any:
    """Turn records into JSON-ready values; plain mappings get sorted keys."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict) and not isinstance(value, type):
        return {key: _to_plain(item) for key, item in to_dict().items()}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(key): _to_plain(item) for key, item in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


def _encode(plain: Any) -> bytes:
    try:
        text = json.dumps(plain, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise AppError(exc) from exc
    for char, escape in _ESCAPES.items():
        text = text.replace(char, escape)
    return text.encode("utf-8")


def _status_text(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""


@dataclass(frozen=True)
class StringResponse:
    text: str

    def render(self, writer: ResponseWriter) -> None:
        writer.write(self.text.encode("utf-8"))


@dataclass(frozen=True)
class JsonResponse:
    data: Any

    def render(self, writer: ResponseWriter) -> None:
        body = _encode(_to_plain(self.data))
        writer.set_header("Content-Type", "application/json")
        writer.write(body)


@dataclass(frozen=True)
class ErrorResponse:
    code: int
    text: str

    def render(self, writer: ResponseWriter) -> None:
        body = _encode({"code": self.code, "error": _status_text(self.code), "message": self.text})
        writer.set_header("Content-Type", "application/json")
        writer.write_header(self.code)
        writer.write(body)


class ResponseFactory:
    """Builds the response kinds handlers return."""

    def string(self, text: str) -> StringResponse:
        return StringResponse(text)

    def json(self, data: Any) -> JsonResponse:
        return JsonResponse(data)

    def error(self, code: int, text: str) -> ErrorResponse:
        return ErrorResponse(code, text)