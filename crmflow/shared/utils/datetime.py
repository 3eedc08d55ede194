"""UTC helpers. The engine only ever compares timezone-aware UTC datetimes."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Convert dt to UTC; a naive value is taken to already be UTC."""
    if dt is None:
        return None
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


def parse_iso_datetime(value: str) -> datetime | None:
    """UTC datetime for an ISO-8601 string (a trailing Z is accepted), else None."""
    try:
        return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def minute_ref(dt: datetime) -> str:
    """YYYYMMDDHHMM of dt in UTC; names one scheduler tick."""
    return ensure_utc(dt).strftime("%Y%m%d%H%M")
