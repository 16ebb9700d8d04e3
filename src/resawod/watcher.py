"""Waiting-list watcher: books freed places for users on a waiting list.

Polls every user's future bookings. For each waiting-list entry whose slot
now reports a free place, a direct booking is attempted. The poll interval is
short while anybody is waiting and long otherwise.
"""

import asyncio
from collections.abc import Sequence
from datetime import date, datetime, tzinfo

from resawod.config import UserConfig
from resawod.dates import Clock, Sleep
from resawod.errors import ResawodError
from resawod.gateway import BookingGateway, GatewayFactory
from resawod.logging import get_logger
from resawod.status import StatusTable

logger = get_logger(__name__)

INTERVAL_ACTIVE = 60.0  # someone has waiting-list entries
INTERVAL_IDLE = 3600.0  # nobody is waiting


async def fetch_capacity(
    gateway: BookingGateway, day_strings: set[str]
) -> dict[str, tuple[int, int]]:
    """Map slot id to (inscribed, capacity) for every slot on the given days.

    Days that cannot be parsed or fetched are logged and left out.
    """
    capacity: dict[str, tuple[int, int]] = {}
    for day_str in sorted(day_strings):
        try:
            day = date.fromisoformat(day_str)
        except ValueError:
            logger.warning("capacity_bad_entry_date", value=day_str)
            continue
        try:
            slots = await gateway.get_slots(day)
        except ResawodError as e:
            logger.warning("capacity_slots_fetch_failed", date=day_str, error=str(e))
            continue
        for slot in slots:
            if slot.inscribed is not None and slot.capacity is not None:
                capacity[slot.id] = (slot.inscribed, slot.capacity)
    return capacity


class WaitingListWatcher:
    def __init__(
        self,
        users: Sequence[UserConfig],
        *,
        gateway_factory: GatewayFactory,
        status: StatusTable,
        tz: tzinfo,
        active_interval: float = INTERVAL_ACTIVE,
        idle_interval: float = INTERVAL_IDLE,
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.users = list(users)
        self.gateway_factory = gateway_factory
        self.status = status
        self.tz = tz
        self.active_interval = active_interval
        self.idle_interval = idle_interval
        self.interval = active_interval
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.sleep = sleep

    async def run(self) -> None:
        logger.info(
            "watcher_started",
            active_interval=self.active_interval,
            idle_interval=self.idle_interval,
        )
        while True:
            await self.sleep(self.interval)
            await self.run_cycle()

    async def run_cycle(self) -> bool:
        """Check every user once and pick the next interval.

        Returns:
            True if any user had waiting-list entries.
        """
        logger.info("watcher_check_started", users=len(self.users))
        any_waiting = False
        for user in self.users:
            try:
                any_waiting |= await self.check_user(user)
            except ResawodError as e:
                logger.error("watcher_user_failed", user=user.name, error=str(e))
            except Exception as e:
                logger.exception("watcher_user_unexpected_error", user=user.name, error=str(e))

        self.interval = self.active_interval if any_waiting else self.idle_interval
        self.status.record_watcher_check(self.clock())
        logger.info("watcher_check_finished", any_waiting=any_waiting, next_check_in=self.interval)
        return any_waiting

    async def check_user(self, user: UserConfig) -> bool:
        """Try to promote ``user``'s waiting-list entries.

        Returns:
            True if the user has waiting-list entries.
        """
        gateway = self.gateway_factory()
        try:
            return await self._check_user(gateway, user)
        finally:
            await gateway.close()

    async def _check_user(self, gateway: BookingGateway, user: UserConfig) -> bool:
        await gateway.login(user.login, user.password)
        bookings = await gateway.get_bookings()
        entries = bookings.waiting_list
        if not entries:
            logger.debug("watcher_no_waiting_entries", user=user.name)
            return False

        capacity = await fetch_capacity(gateway, {e.date for e in entries})

        for entry in entries:
            if entry.id is None or entry.id not in capacity:
                continue
            inscribed, cap = capacity[entry.id]
            if cap - inscribed <= 0:
                continue
            logger.info(
                "watcher_free_spot",
                user=user.name,
                slot_id=entry.id,
                start=entry.start,
                inscribed=inscribed,
                capacity=cap,
            )
            try:
                result = await gateway.book(entry.id)
            except ResawodError as e:
                logger.warning(
                    "watcher_booking_request_failed", user=user.name, slot_id=entry.id, error=str(e)
                )
                continue
            if result.success:
                logger.info("watcher_promoted", user=user.name, slot_id=entry.id)
            else:
                logger.warning(
                    "watcher_booking_failed",
                    user=user.name,
                    slot_id=entry.id,
                    message=result.message or "unknown",
                )
        return True
