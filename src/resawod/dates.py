"""Weekday arithmetic and booking-window timing.

Every function that produces an instant takes the timezone explicitly; the
provider opens windows on local wall-clock time, not UTC.
"""

from collections.abc import Awaitable, Callable
from datetime import date, datetime, time, timedelta, tzinfo

# Booking opens this long before the slot, one minute after the slot's start time
BOOKING_WINDOW_DAYS = 7
BOOKING_OFFSET = timedelta(minutes=1)

WEEKDAYS: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

# Injectable time sources so loops can be driven by tests
Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


def parse_weekday(name: str) -> int | None:
    """Map a weekday name (any case) to Python's weekday number (Monday=0)."""
    return WEEKDAYS.get(name.strip().lower())


def next_weekday(start: date, weekday: int) -> date:
    """Next date strictly after ``start`` falling on ``weekday``.

    If ``start`` is already that weekday, the result is one week later.
    """
    days_ahead = (weekday - start.weekday()) % 7 or 7
    return start + timedelta(days=days_ahead)


def booking_time(slot_time: time) -> time:
    """Wall-clock time at which a slot's booking window opens."""
    return (datetime.combine(date.min, slot_time) + BOOKING_OFFSET).time()


def window_opens_at(target: date, slot_time: time, tz: tzinfo) -> datetime:
    """Instant the booking window for the slot on ``target`` opens."""
    opens_date = target - timedelta(days=BOOKING_WINDOW_DAYS)
    return datetime.combine(opens_date, booking_time(slot_time), tzinfo=tz)


def next_window_after(target: date, slot_time: time, tz: tzinfo) -> datetime:
    """Instant the following week's window opens, once ``target`` is handled."""
    return datetime.combine(target, booking_time(slot_time), tzinfo=tz)


def seconds_until(when: datetime, now: datetime) -> float:
    """Elapsed seconds from ``now`` to ``when``, never negative.

    Compared as absolute instants: subtracting two datetimes sharing a tzinfo
    gives wall-clock time, which is off by an hour across a DST change.
    """
    return max(when.timestamp() - now.timestamp(), 0.0)

