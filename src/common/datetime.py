"""Datetime utilities."""

from datetime import datetime, timezone

from dateutil.parser import parse as parse_date


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_optional_datetime(value) -> datetime | None:
    """Leniently parse a timestamp from a source payload.

    Accepts datetimes, ISO strings, RFC 822 feed dates and epoch seconds.
    Naive values are taken as UTC. Returns None when the value is missing
    or unparseable.
    """
    if value is None or value == "":
        return None
    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, (int, float)):
            dt = datetime.fromtimestamp(value, tz=timezone.utc)
        else:
            dt = parse_date(str(value))
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def canonical_timestamp(value) -> str | None:
    """Render a timestamp as second-precision UTC ISO text, or None."""
    dt = parse_optional_datetime(value)
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat()
