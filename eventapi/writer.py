"""An in-memory HTTP response writer that responses render into."""

from __future__ import annotations

from typing import Protocol

from werkzeug.datastructures import Headers
from werkzeug.wrappers import Response as WerkzeugResponse

DEFAULT_CONTENT_TYPE = "text/plain; charset=utf-8"


class ResponseWriter:
    """Collects status, headers and body; headers freeze once the status is sent."""

    def __init__(self) -> None:
        self._headers = Headers()
        self._status: int | None = None
        self._chunks: list[bytes] = []

    @property
    def committed(self) -> bool:
        return self._status is not None

    @property
    def status(self) -> int:
        return self._status if self._status is not None else 200

    @property
    def headers(self) -> Headers:
        return Headers(self._headers)

    @property
    def body(self) -> bytes:
        return b"".join(self._chunks)

    def set_header(self, name: str, value: str) -> None:
        """Set a header; ignored once the status line has been sent."""
        if not self.committed:
            self._headers.set(name, value)

    def write_header(self, status: int) -> None:
        """Send the status; only the first call has effect."""
        if not self.committed:
            self._status = status

    def write(self, data: bytes | str) -> int:
        """Append to the body, sending a 200 status first if none was sent."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        if not self.committed:
            if "Content-Type" not in self._headers and data:
                self._headers.set("Content-Type", DEFAULT_CONTENT_TYPE)
            self.write_header(200)
        self._chunks.append(data)
        return len(data)

    def to_response(self) -> WerkzeugResponse:
        """Build a WSGI response from what was written."""
        return WerkzeugResponse(self.body, status=self.status, headers=list(self._headers.items()))


class Response(Protocol):
    """Anything that can render itself into a response writer."""

    def render(self, writer: ResponseWriter) -> None: ...