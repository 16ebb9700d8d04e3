"""Live scheduler status shared with the status page.

Each slot booking task owns one entry, keyed ``"{user name}:{day}"``, and is
the only writer of that key. The status page reads point-in-time snapshots.
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime

# Status vocabulary written by slot booking tasks
STATUS_SCHEDULED = "scheduled"
STATUS_BOOKING = "booking..."
STATUS_BOOKED = "booked"
STATUS_ALREADY_BOOKED = "already booked"
STATUS_WAITING_LIST = "full, joined waiting list"
STATUS_SLOT_NOT_FOUND = "slot not found"


@dataclass(frozen=True)
class SchedulerEntry:
    user_name: str
    day: str  # capitalized weekday, e.g. "Tuesday"
    time: str
    target_date: str  # YYYY-MM-DD
    books_at: str  # window opening, "YYYY-MM-DD HH:MM"
    status: str

    def with_status(self, status: str) -> "SchedulerEntry":
        return replace(self, status=status)


def entry_key(user_name: str, day_name: str) -> str:
    return f"{user_name}:{day_name}"


class StatusTable:
    """Task-keyed scheduler entries plus the watcher's last check time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, SchedulerEntry] = {}
        self._last_watcher_check: datetime | None = None

    def update(self, key: str, entry: SchedulerEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def get(self, key: str) -> SchedulerEntry | None:
        with self._lock:
            return self._entries.get(key)

    def snapshot(self) -> list[SchedulerEntry]:
        """All entries sorted by target date, then user name."""
        with self._lock:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda e: (e.target_date, e.user_name, e.time))

    def record_watcher_check(self, when: datetime) -> None:
        with self._lock:
            self._last_watcher_check = when

    @property
    def last_watcher_check(self) -> datetime | None:
        with self._lock:
            return self._last_watcher_check
