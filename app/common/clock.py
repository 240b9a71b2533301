from datetime import datetime, timezone


def utcnow() -> datetime:
    # naive UTC, matches what the DateTime columns store
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC, naive ones are taken as UTC already."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
