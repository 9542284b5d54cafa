# Overview: UTC clock and ISO-8601 parsing/serialization used by models and filters.

from __future__ import annotations

import re
from datetime import datetime, time, timedelta, timezone
from typing import Optional

# Stored timestamps are UTC with tzinfo stripped.
DATE_ONLY_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minutes_ago(minutes: int) -> datetime:
    return utcnow() - timedelta(minutes=minutes)


def is_date_only(value) -> bool:
    return isinstance(value, str) and bool(DATE_ONLY_RE.fullmatch(value.strip()))


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" -> midnight UTC that day
    - naive "YYYY-MM-DDTHH:MM[:SS]" is taken as UTC
    - "...Z" / "...+HH:MM" is converted to UTC

    Raises ValueError on anything else.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def end_of_day(dt: datetime) -> datetime:
    """Last representable instant of dt's calendar day."""
    return datetime.combine(dt.date(), time.max)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing 'Z', seconds precision. Naive input is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
