"""Timestamp helpers.

Providers differ in whether DateTime values come back timezone-aware, so every
comparison in this context goes through ``as_utc``.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def epoch_millis(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)
