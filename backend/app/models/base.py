"""
Shared model helpers.
"""
from datetime import datetime, timezone

from sqlmodel import SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """
    Attach UTC to naive datetimes read back from the database.

    SQLite (used by the test suite) drops tzinfo on ``DateTime(timezone=True)``
    columns; values are always written in UTC.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


__all__ = ["SQLModel", "utc_now", "as_utc"]
