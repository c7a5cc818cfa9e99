"""Datetime helpers: lax input -> timezone-aware UTC output."""

from __future__ import annotations

from datetime import UTC, datetime

import pendulum


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a lax datetime string into a timezone-aware datetime.

    Accepts ISO 8601 variants (``2024-01-02T03:04:05Z``), space separated
    forms (``2024-01-02 03:04:05``) and bare dates. Missing timezone
    defaults to default_tz.
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


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Normalize a datetime to UTC.

    SQLite drops offsets on storage, so values read back are naive; those are
    interpreted as UTC because everything is written in UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for JSON serialization."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.isoformat()


def days_since(dt: datetime | None, now: datetime | None = None) -> int:
    """Whole days elapsed since dt; 0 when dt is unknown or in the future."""
    if dt is None:
        return 0
    reference = now or now_utc()
    delta = ensure_utc(reference) - ensure_utc(dt)  # type: ignore[operator]
    return max(delta.days, 0)


def humanize_since(dt: datetime, now: datetime | None = None) -> str:
    """Human readable distance such as ``"3 minutes ago"``."""
    reference = pendulum.instance(ensure_utc(now or now_utc()))  # type: ignore[arg-type]
    moment = pendulum.instance(ensure_utc(dt))  # type: ignore[arg-type]
    if moment >= reference:
        return "just now"
    return f"{moment.diff_for_humans(reference, absolute=True)} ago"


def format_days_ago(days: int) -> str:
    """Format a day count as a coarse relative age."""
    if days == 0:
        return "today"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        weeks = days // 7
        return "1 week ago" if weeks == 1 else f"{weeks} weeks ago"
    if days < 365:
        months = days // 30
        return "1 month ago" if months == 1 else f"{months} months ago"
    years = days // 365
    return "1 year ago" if years == 1 else f"{years} years ago"
