"""Domain records: users, event types and events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any


def format_timestamp(moment: datetime) -> str:
    """Format a moment as RFC 3339 with trailing fractional zeros trimmed.

    Naive values are taken to be UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += f".{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass
class User:
    id: int
    name: str = ""


@dataclass
class EventType:
    id: int
    name: str = ""


@dataclass
class Event:
    """An event as submitted, with its timestamp kept as given."""

    id: int
    timestamp: str
    metadata: dict[str, Any] | None
    user_id: int
    type_id: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "metadata": self.metadata,
            "user_id": self.user_id,
            "type_id": self.type_id,
        }


@dataclass
class EventWithType:
    """A stored event joined with the name of its type."""

    id: int
    timestamp: datetime
    metadata: dict[str, Any] | None
    user_id: int
    type_id: int
    type_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "metadata": self.metadata,
            "user_id": self.user_id,
            "type_id": self.type_id,
            "type": self.type_name,
        }