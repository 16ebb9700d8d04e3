from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from resawod.config import AppConfig, BookingConfig, SlotConfig, UserConfig
from resawod.gateway import BookingGateway
from resawod.ledger import BookedSlotLedger
from resawod.models import ActionResult, BookingEntry, Bookings, Slot
from resawod.status import StatusTable

PARIS = ZoneInfo("Europe/Paris")


class StopLoop(Exception):
    """Raised by FakeSleep to break out of an infinite task loop."""


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeSleep:
    """Records sleep durations and advances the clock instead of waiting.

    The clock moves in elapsed time, so a sleep across a DST change lands on
    the right local hour.
    """

    def __init__(self, clock: FakeClock | None = None, limit: int | None = None):
        self.clock = clock
        self.limit = limit
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        if self.limit is not None and len(self.calls) >= self.limit:
            raise StopLoop()
        self.calls.append(seconds)
        if self.clock is not None:
            now = self.clock.now
            elapsed = now.astimezone(timezone.utc) + timedelta(seconds=seconds)
            self.clock.now = elapsed.astimezone(now.tzinfo)


class FakeGateway(BookingGateway):
    """In-memory gateway recording every call."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.slots_by_date: dict[date, list[Slot]] = {}
        self.bookings = Bookings()
        self.book_results: dict[str, ActionResult] = {}
        self.waiting_results: dict[str, ActionResult] = {}
        self.errors: dict[str, Exception] = {}
        self.closed = 0

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.errors:
            raise self.errors[name]

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def login(self, login, password):
        self._record("login", login)

    async def get_slots(self, day):
        self._record("get_slots", day)
        return list(self.slots_by_date.get(day, []))

    async def get_bookings(self):
        self._record("get_bookings")
        return self.bookings

    async def book(self, slot_id):
        self._record("book", slot_id)
        return self.book_results.get(slot_id, ActionResult(success=True))

    async def book_waiting_list(self, slot_id):
        self._record("book_waiting_list", slot_id)
        return self.waiting_results.get(slot_id, ActionResult(success=False))

    async def close(self):
        self.closed += 1


def make_slot(start: str, slot_id: str, name: str | None = None, **counts) -> Slot:
    return Slot.model_validate(
        {
            "start_timestamp": start,
            "end_timestamp": start,
            "id_activity_calendar": slot_id,
            "name_activity": name,
            **counts,
        }
    )


def make_entry(start: str, slot_id: str | None, name: str = "CrossFit WOD") -> BookingEntry:
    return BookingEntry.model_validate(
        {"start_timestamp": start, "id_activity_calendar": slot_id, "name_activity": name}
    )


@pytest.fixture
def tz():
    return PARIS


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def ledger(tmp_path):
    return BookedSlotLedger(tmp_path / "scheduler_state.json")


@pytest.fixture
def status():
    return StatusTable()


@pytest.fixture
def alice():
    return UserConfig(name="Alice", login="alice@example.com", password="pw", slots=["tuesday"])


@pytest.fixture
def crossfit_slot():
    return SlotConfig(time="18:00", activity="CrossFit")


@pytest.fixture
def booking_config(alice, crossfit_slot):
    return BookingConfig(
        app=AppConfig(application_id="1", category_activity_id="2"),
        users=[alice],
        slots={"tuesday": crossfit_slot},
    )
