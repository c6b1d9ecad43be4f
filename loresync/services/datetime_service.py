"""Timestamp helpers: UTC now, ISO output, lax parsing of stored values."""

from __future__ import annotations

from datetime import datetime, timezone

import pendulum


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for JSON and database columns."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a stored timestamp into a timezone-aware datetime.

    Status files written by older versions or edited by hand may carry
    ``2026-02-02 22:21:29+00``, ``2026-02-02`` or full ISO 8601 values.
    Missing timezone defaults to default_tz.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            tz = pendulum.timezone(default_tz)
            value = value.replace(tzinfo=tz)  # type: ignore[arg-type]
        return value

    parsed = pendulum.parse(value.strip(), tz=default_tz, strict=False)
    if not isinstance(parsed, pendulum.DateTime):
        # pendulum.parse returns Date for date-only strings
        parsed = pendulum.datetime(
            parsed.year, parsed.month, parsed.day, tz=default_tz  # type: ignore[union-attr]
        )
    return parsed  # type: ignore[return-value]


def seconds_since(value: str | datetime, now: datetime | None = None) -> float:
    """Return the number of seconds elapsed since a stored timestamp."""
    if now is None:
        now = now_utc()
    return (now - parse_datetime(value)).total_seconds()
