from datetime import datetime, UTC


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.replace(tzinfo=None)


def utcnow() -> datetime:
    """Current time as UTC-naive, the form every DateTime column stores."""
    return to_utc_naive(datetime.now(UTC))


def to_iso(dt: datetime) -> str:
    """ISO-8601 with an explicit UTC offset for naive UTC values."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.isoformat()
