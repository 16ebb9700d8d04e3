from datetime import date, datetime

import pytest

from conftest import PARIS, FakeGateway, make_entry, make_slot
from resawod.config import SlotConfig, UserConfig
from resawod.dashboard import (
    UserDashboard,
    collect_user_dashboards,
    render_page,
    render_scheduler_table,
    render_slots_table,
    render_user_section,
)
from resawod.errors import AuthenticationError, TransientError
from resawod.models import BookingEntry, Bookings
from resawod.status import SchedulerEntry

NOW = datetime(2024, 1, 8, 10, 0, tzinfo=PARIS)


def test_empty_table():
    assert "No scheduled bookings" in render_scheduler_table([])


def test_page_lists_entries_escaped():
    entry = SchedulerEntry(
        user_name="<Alice>", day="Tuesday", time="18:00", target_date="2024-01-09",
        books_at="2024-01-02 18:01", status="full, joined waiting list",
    )
    page = render_page([entry], None, NOW)
    assert "&lt;Alice&gt;" in page
    assert "full, joined waiting list" in page
    assert "waiting for first check" in page
    assert "No slots configured" in page


def test_page_shows_watcher_check():
    page = render_page([], datetime(2024, 1, 8, 9, 30, tzinfo=PARIS), NOW)
    assert "last check 2024-01-08 09:30:00" in page


def test_slots_table_in_weekday_order():
    table = render_slots_table(
        {
            "friday": SlotConfig(time="07:00"),
            "tuesday": SlotConfig(time="18:00", activity="CrossFit"),
        }
    )
    assert table.index("Tuesday") < table.index("Friday")
    assert "<td>18:00</td><td>CrossFit</td>" in table
    assert "<td>07:00</td><td></td>" in table


def test_user_section_shows_counts_and_free_places():
    booked = BookingEntry(start="2024-01-09 18:00", name="WOD", inscribed=10, capacity=12)
    unknown = BookingEntry(start="2024-01-10 18:00", name=None)
    waiting = [
        BookingEntry(start="2024-01-11 18:00", name="Gym", inscribed=12, capacity=12),
        BookingEntry(start="2024-01-12 18:00", name="Gym", inscribed=11, capacity=12),
    ]
    section = render_user_section(
        UserDashboard("Alice", bookings=[booked, unknown], waiting_list=waiting)
    )
    assert "10/12" in section
    assert "<td>?</td>" in section
    assert "<td class='capacity full'>12/12 (0 free)</td>" in section
    assert "<td class='capacity available'>11/12 (1 free)</td>" in section


def test_user_section_shows_error_inline():
    section = render_user_section(UserDashboard("Bob", error="Login failed: <denied>"))
    assert "<div class='error'>Login failed: &lt;denied&gt;</div>" in section
    assert "Bookings" not in section


def test_empty_user_section():
    section = render_user_section(UserDashboard("Alice"))
    assert "No upcoming bookings." in section
    assert "Not on any waiting lists." in section


@pytest.mark.asyncio
async def test_collect_fills_waiting_counts_and_isolates_failures():
    alice = UserConfig(name="Alice", login="alice@example.com", password="pw")
    bob = UserConfig(name="Bob", login="bob@example.com", password="pw")
    carol = UserConfig(name="Carol", login="carol@example.com", password="pw")

    ok = FakeGateway()
    ok.bookings = Bookings(
        bookings=[make_entry("2024-01-09 18:00:00", "41")],
        waiting_list=[make_entry("2024-01-10 18:00:00", "42"), make_entry("2024-01-10 19:00:00", "43")],
    )
    ok.slots_by_date[date(2024, 1, 10)] = [
        make_slot("2024-01-10 18:00:00", "42", "CrossFit WOD", n_inscribed=12, n_capacity=12)
    ]
    denied = FakeGateway()
    denied.errors["login"] = AuthenticationError("bad password")
    broken = FakeGateway()
    broken.errors["get_bookings"] = TransientError("timeout")
    gateways = iter([ok, denied, broken])

    users = await collect_user_dashboards([alice, bob, carol], lambda: next(gateways))

    assert [u.name for u in users] == ["Alice", "Bob", "Carol"]
    assert users[0].error is None
    assert [e.id for e in users[0].bookings] == ["41"]
    counted, uncounted = users[0].waiting_list
    assert (counted.inscribed, counted.capacity) == (12, 12)
    assert uncounted.inscribed is None
    assert users[1].error == "Login failed: bad password"
    assert users[2].error == "Failed to fetch bookings: timeout"
    assert (ok.closed, denied.closed, broken.closed) == (1, 1, 1)


def test_page_renders_user_sections():
    page = render_page(
        [], None, NOW,
        slots={"tuesday": SlotConfig(time="18:00")},
        users=[UserDashboard("Alice"), UserDashboard("Bob", error="Login failed: x")],
    )
    assert "<h2>Configured Slots</h2><table>" in page
    assert "<h2>Alice</h2>" in page
    assert "Login failed: x" in page
