from datetime import date, datetime, time, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_date(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        value_text = value.strip()
        if not value_text:
            return None
        try:
            return date.fromisoformat(value_text)
        except ValueError:
            return None
    return None


def start_of_day(value=None) -> datetime:
    day = normalize_date(value) or utc_now().date()
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def resolve_window(start=None, end=None):
    """Default an analytics window to ``[start of today, now)`` in UTC."""
    end = as_utc(end) if end is not None else utc_now()
    start = as_utc(start) if start is not None else start_of_day(end)
    return start, end


def days_until(target, today=None):
    target = normalize_date(target)
    if target is None:
        return None
    today = normalize_date(today) or utc_now().date()
    return (target - today).days


def trailing_window(days: int, now=None):
    now = as_utc(now) if now is not None else utc_now()
    return now - timedelta(days=max(0, int(days))), now
