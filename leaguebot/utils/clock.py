from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current UTC time as a naive datetime (SQLite drops tzinfo on round trip)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def whole_days_between(start: datetime, end: datetime) -> int:
    """Number of complete days elapsed from start to end, never negative"""
    if start.tzinfo is not None:
        start = start.astimezone(timezone.utc).replace(tzinfo=None)
    if end.tzinfo is not None:
        end = end.astimezone(timezone.utc).replace(tzinfo=None)
    return max(0, (end - start).days)
