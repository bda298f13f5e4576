"""
Datetime helpers

Embedded documents store timestamps as ISO-8601 strings; SQLite hands back
naive datetimes. Everything is normalised to aware UTC before comparison.
"""
from datetime import datetime, timezone
from typing import Optional, Union

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Parse/normalise a stored timestamp to an aware UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: Union[datetime, str, None]) -> Optional[str]:
    """Serialise a timestamp for storage inside a JSON column"""
    normalised = to_utc(value)
    return normalised.isoformat() if normalised else None
