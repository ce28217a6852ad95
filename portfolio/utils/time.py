"""UTC helpers.

All instants are stored and compared in UTC.  SQLite hands back naive
datetimes for ``DateTime(timezone=True)`` columns; ``as_utc`` re-attaches
the zone so values loaded from either backend compare cleanly.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_instant(raw: str | None) -> datetime | None:
    """Parse an ISO-8601 instant; naive input is taken as UTC.

    Raises ``ValueError`` on malformed input.
    """
    if raw is None or raw == "":
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))
