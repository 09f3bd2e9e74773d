"""Day-granularity helpers shared by bookings and the availability ledger.

Conflict checks treat a booking as the half-open range ``[start, end)``
so a checkout day can be the next booking's first day. Ledger
materialization enumerates ``[start, end]`` inclusive.
"""
import math
from datetime import date, datetime, timedelta


def today() -> date:
    return datetime.utcnow().date()


def parse_date(value) -> date:
    """Accept a date, a datetime, or an ISO string ("2026-01-20" or
    "2026-01-20T00:00:00Z") and truncate it to a calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError("date value required")

    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    if "T" in raw or " " in raw:
        return datetime.fromisoformat(raw).date()
    return date.fromisoformat(raw)


def iter_days(start: date, end: date):
    """Yield every day from start to end, both included."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    # touching endpoints do not overlap
    return a_start < b_end and a_end > b_start


def nights_between(start, end) -> int:
    """Number of chargeable days between two points, never less than one."""
    delta = end - start
    days = math.ceil(delta.total_seconds() / 86400)
    return max(days, 1)
