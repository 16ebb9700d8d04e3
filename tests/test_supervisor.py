import asyncio

import pytest

from conftest import PARIS, FakeGateway
from resawod.config import AppConfig, BookingConfig, SlotConfig, UserConfig
from resawod.supervisor import Scheduler


def make_scheduler(config, ledger, status, factory=FakeGateway):
    return Scheduler(
        config,
        gateway_factory=factory,
        ledger=ledger,
        status=status,
        tz=PARIS,
        retry_delay=3600,
        watcher_active_interval=3600,
        watcher_idle_interval=3600,
    )


def test_one_task_per_user_and_valid_day(ledger, status):
    config = BookingConfig(
        app=AppConfig(application_id="1", category_activity_id="2"),
        users=[
            UserConfig(name="Alice", login="a", password="p", slots=["tuesday", "Friday"]),
            UserConfig(name="Bob", login="b", password="p", slots=["tuesday", "funday", "sunday"]),
        ],
        slots={
            "tuesday": SlotConfig(time="18:00", activity="CrossFit"),
            "Friday": SlotConfig(time="07:00"),
            "funday": SlotConfig(time="09:00"),
            "sunday": SlotConfig(time="late"),
        },
    )
    scheduler = make_scheduler(config, ledger, status)

    tasks = scheduler.build_slot_tasks()

    assert [t.key for t in tasks] == ["Alice:tuesday", "Alice:Friday", "Bob:tuesday"]
    assert tasks[1].activity is None


def test_missing_slot_definition_is_skipped(ledger, status):
    config = BookingConfig(
        app=AppConfig(application_id="1", category_activity_id="2"),
        users=[UserConfig(name="Alice", login="a", password="p", slots=["monday"])],
    )
    assert make_scheduler(config, ledger, status).build_slot_tasks() == []


@pytest.mark.asyncio
async def test_run_loads_ledger_and_shutdown_cancels(booking_config, ledger, status):
    ledger.insert_and_persist("a:2024-01-09:18:00")
    fresh_ledger = type(ledger)(ledger.path)
    scheduler = make_scheduler(booking_config, fresh_ledger, status)

    runner = asyncio.create_task(scheduler.run())
    await asyncio.sleep(0.05)

    assert len(fresh_ledger) == 1
    assert status.get("Alice:tuesday") is not None

    scheduler.shutdown()
    with pytest.raises(asyncio.CancelledError):
        await runner
