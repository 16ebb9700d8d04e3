"""Starts one slot booking task per (user, configured day) plus the watcher.

All tasks run inside an asyncio.TaskGroup owned by ``Scheduler.run()``.
``shutdown()`` cancels the group so the process can exit cleanly.
"""

import asyncio
from datetime import tzinfo

from resawod import dates
from resawod.config import BookingConfig
from resawod.gateway import GatewayFactory
from resawod.ledger import BookedSlotLedger
from resawod.logging import get_logger
from resawod.slot_task import DEFAULT_RETRY_DELAY, SlotBookingTask
from resawod.status import StatusTable
from resawod.watcher import INTERVAL_ACTIVE, INTERVAL_IDLE, WaitingListWatcher

logger = get_logger(__name__)


class Scheduler:
    def __init__(
        self,
        config: BookingConfig,
        *,
        gateway_factory: GatewayFactory,
        ledger: BookedSlotLedger,
        status: StatusTable,
        tz: tzinfo,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        watcher_active_interval: float = INTERVAL_ACTIVE,
        watcher_idle_interval: float = INTERVAL_IDLE,
    ) -> None:
        self.config = config
        self.gateway_factory = gateway_factory
        self.ledger = ledger
        self.status = status
        self.tz = tz
        self.retry_delay = retry_delay
        self.watcher_active_interval = watcher_active_interval
        self.watcher_idle_interval = watcher_idle_interval
        self._main_task: asyncio.Task | None = None

    def build_slot_tasks(self) -> list[SlotBookingTask]:
        """One task per valid (user, day); invalid combinations are skipped."""
        tasks = []
        for user in self.config.users:
            for day_name in user.slots:
                slot = self.config.slot_for(day_name)
                if slot is None:
                    logger.warning("no_slot_configured", user=user.name, day=day_name)
                    continue
                if dates.parse_weekday(day_name) is None:
                    logger.warning("unknown_day", user=user.name, day=day_name)
                    continue
                try:
                    task = SlotBookingTask(
                        user,
                        day_name,
                        slot,
                        gateway_factory=self.gateway_factory,
                        ledger=self.ledger,
                        status=self.status,
                        tz=self.tz,
                        retry_delay=self.retry_delay,
                    )
                except ValueError as e:
                    logger.warning("invalid_slot", user=user.name, day=day_name, error=str(e))
                    continue
                logger.info(
                    "slot_task_spawning",
                    user=user.name,
                    day=day_name,
                    time=slot.time,
                    activity=slot.activity_filter or "any",
                )
                tasks.append(task)
        return tasks

    def build_watcher(self) -> WaitingListWatcher:
        return WaitingListWatcher(
            self.config.users,
            gateway_factory=self.gateway_factory,
            status=self.status,
            tz=self.tz,
            active_interval=self.watcher_active_interval,
            idle_interval=self.watcher_idle_interval,
        )

    async def run(self) -> None:
        """Load the ledger and run every task until shutdown."""
        self._main_task = asyncio.current_task()
        self.ledger.load()
        slot_tasks = self.build_slot_tasks()
        watcher = self.build_watcher()
        logger.info("scheduler_started", slot_tasks=len(slot_tasks), booked=len(self.ledger))
        try:
            async with asyncio.TaskGroup() as group:
                group.create_task(watcher.run(), name="waiting-list-watcher")
                for task in slot_tasks:
                    group.create_task(task.run(), name=f"slot:{task.key}")
        except asyncio.CancelledError:
            logger.info("scheduler_stopped")
            raise

    def shutdown(self) -> None:
        """Cancel all scheduler tasks."""
        if self._main_task is not None and not self._main_task.done():
            logger.info("scheduler_shutdown_requested")
            self._main_task.cancel()
