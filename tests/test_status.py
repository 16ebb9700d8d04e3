from datetime import datetime

from conftest import PARIS
from resawod.status import SchedulerEntry, StatusTable, entry_key


def entry(user, target, status="scheduled"):
    return SchedulerEntry(
        user_name=user, day="Tuesday", time="18:00", target_date=target,
        books_at="2024-01-02 18:01", status=status,
    )


def test_update_replaces_entry_in_place():
    table = StatusTable()
    key = entry_key("Alice", "tuesday")
    table.update(key, entry("Alice", "2024-01-09"))
    table.update(key, entry("Alice", "2024-01-09").with_status("booked"))

    snapshot = table.snapshot()
    assert len(snapshot) == 1
    assert snapshot[0].status == "booked"


def test_snapshot_sorted_by_target_date():
    table = StatusTable()
    table.update("Bob:friday", entry("Bob", "2024-01-12"))
    table.update("Alice:tuesday", entry("Alice", "2024-01-09"))
    table.update("Carol:tuesday", entry("Carol", "2024-01-09"))

    assert [e.user_name for e in table.snapshot()] == ["Alice", "Carol", "Bob"]


def test_snapshot_is_a_copy():
    table = StatusTable()
    table.update("Alice:tuesday", entry("Alice", "2024-01-09"))
    snapshot = table.snapshot()
    table.update("Bob:friday", entry("Bob", "2024-01-12"))
    assert len(snapshot) == 1


def test_watcher_check_timestamp():
    table = StatusTable()
    assert table.last_watcher_check is None
    when = datetime(2024, 1, 8, 10, 0, tzinfo=PARIS)
    table.record_watcher_check(when)
    assert table.last_watcher_check == when
