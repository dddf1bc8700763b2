from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional


def _system_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Tests swap this to move time forward without sleeping.
_clock: Callable[[], datetime] = _system_now


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return _clock()


def set_clock(clock: Optional[Callable[[], datetime]]) -> None:
    """Replace the clock used by utcnow(); None restores the system clock."""
    global _clock
    _clock = clock or _system_now


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
