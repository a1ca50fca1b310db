# rental_admin/utils/dates.py
from datetime import datetime, timedelta, timezone


def utcnow():
    # naive UTC, matching what the models store
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso8601(s):
    if not s:
        return None
    s = str(s).strip()
    # support trailing 'Z' (UTC)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)  # store naive UTC
    return dt


def iso(dt):
    return dt.isoformat() if dt else None


def parse_bound(value, end_of_day=False):
    """
    Parse a query-string date bound. A bare YYYY-MM-DD end bound covers
    that whole day. Raises ValueError on garbage.
    """
    dt = parse_iso8601(value)
    if dt is None:
        raise ValueError(f"invalid date: {value}")
    if end_of_day and len(str(value).strip()) == 10:
        dt = dt + timedelta(days=1) - timedelta(microseconds=1)
    return dt


def resolve_range(start=None, end=None, default_days=30, now=None):
    """
    Resolve an optional YYYY-MM-DD (or ISO datetime) window.

    Without dates the window is the trailing `default_days` ending now.
    """
    end_dt = parse_bound(end, end_of_day=True) if end else (now or utcnow())
    start_dt = parse_bound(start) if start else end_dt - timedelta(days=default_days)
    if start_dt > end_dt:
        raise ValueError("start date must be before end date")
    return start_dt, end_dt
