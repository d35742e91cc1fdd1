"""Per-request container giving handlers access to shared services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eventapi.repository import Repository
from eventapi.responses import ResponseFactory
from eventapi.storage import Storage
from eventapi.writer import ResponseWriter


@dataclass
class Container:
    """The services available while one request is handled."""

    storage: Storage
    writer: ResponseWriter
    request: Any

    @property
    def debug(self) -> bool:
        return self.storage.debug

    @property
    def logger(self) -> Any:
        return self.storage.logger

    def response_factory(self) -> ResponseFactory:
        return ResponseFactory()

    def repository(self) -> Repository:
        return Repository(self.storage.engine)


def make_container(storage: Storage, writer: ResponseWriter, request: Any) -> Container:
    return Container(storage=storage, writer=writer, request=request)


def close_container(container: Container) -> None:
    """Release per-request resources; a container holds none of its own."""