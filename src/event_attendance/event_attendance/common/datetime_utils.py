from __future__ import annotations

from datetime import datetime


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so services can take an explicit ``now`` in tests.
    """
    return datetime.now()


def minutes_between(start: datetime, end: datetime) -> float:
    """Signed number of minutes from ``start`` to ``end``."""
    return (end - start).total_seconds() / 60


def parse_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def month_key(value: datetime) -> str:
    return f"{value.year}-{value.month:02d}"
