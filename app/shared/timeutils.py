from datetime import datetime, timedelta, timezone


def next_local_midnight(now: float) -> float:
    """Epoch seconds of the next local midnight after `now` (DST aware)."""
    local_now = datetime.fromtimestamp(now)
    midnight = datetime.combine(local_now.date() + timedelta(days=1), datetime.min.time())
    return midnight.timestamp()


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
