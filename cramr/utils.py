"""Utility helpers for Cramr."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Normalize aware datetimes to naive UTC; naive values are assumed UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_datetime(raw: Any) -> datetime | None:
    """Parse an ISO8601 string (``Z`` suffix allowed) into naive UTC.

    Raises ``ValueError`` for strings that are not ISO8601.
    """

    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return to_naive_utc(raw)
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(text))


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def without_id(values: list[str] | None, user_id: str) -> list[str]:
    """Return a copy of ``values`` with every occurrence of ``user_id`` removed."""

    return [v for v in (values or []) if v != user_id]


def with_id(values: list[str] | None, user_id: str) -> list[str]:
    """Return a copy of ``values`` with ``user_id`` appended when absent."""

    current = list(values or [])
    if user_id not in current:
        current.append(user_id)
    return current
