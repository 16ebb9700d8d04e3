"""Long-running booking loop for one user and one configured weekday.

Each pass computes the next occurrence of the weekday, sleeps until the
provider opens its booking window (seven days ahead, one minute after the
slot's start time) and tries to book it. Handled occurrences are recorded in
the ledger before the loop moves on, so a restart never books twice.
Failures are retried after a fixed delay against the same target date.

Note: if attempts keep failing past the target date itself, the next pass
silently targets the following week.
"""

import asyncio
from datetime import datetime, time, tzinfo

from resawod import dates
from resawod.dates import Clock, Sleep
from resawod.booking import BookingOutcome, OutcomeKind, attempt_slot_booking
from resawod.config import SlotConfig, UserConfig
from resawod.errors import ResawodError
from resawod.gateway import GatewayFactory
from resawod.ledger import BookedSlotLedger, slot_key
from resawod.logging import get_logger
from resawod.status import (
    STATUS_ALREADY_BOOKED,
    STATUS_BOOKED,
    STATUS_BOOKING,
    STATUS_SCHEDULED,
    STATUS_SLOT_NOT_FOUND,
    STATUS_WAITING_LIST,
    SchedulerEntry,
    StatusTable,
    entry_key,
)

logger = get_logger(__name__)

DEFAULT_RETRY_DELAY = 60.0

_HANDLED_STATUS = {
    OutcomeKind.BOOKED: STATUS_BOOKED,
    OutcomeKind.ALREADY_BOOKED: STATUS_ALREADY_BOOKED,
    OutcomeKind.WAITING_LIST: STATUS_WAITING_LIST,
}


def outcome_status(outcome: BookingOutcome) -> str:
    """Status string shown for a booking outcome."""
    if outcome.kind in _HANDLED_STATUS:
        return _HANDLED_STATUS[outcome.kind]
    if outcome.kind is OutcomeKind.SLOT_NOT_FOUND:
        return STATUS_SLOT_NOT_FOUND
    return f"failed: {outcome.reason}"


class SlotBookingTask:
    """Books ``slot`` every week on ``day_name`` for ``user``."""

    def __init__(
        self,
        user: UserConfig,
        day_name: str,
        slot: SlotConfig,
        *,
        gateway_factory: GatewayFactory,
        ledger: BookedSlotLedger,
        status: StatusTable,
        tz: tzinfo,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        weekday = dates.parse_weekday(day_name)
        if weekday is None:
            raise ValueError(f"Unknown day {day_name!r}")
        self.user = user
        self.day_name = day_name
        self.weekday = weekday
        self.slot_time_str = slot.time
        self.slot_time: time = slot.parsed_time()
        self.activity = slot.activity_filter
        self.gateway_factory = gateway_factory
        self.ledger = ledger
        self.status = status
        self.tz = tz
        self.retry_delay = retry_delay
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.sleep = sleep
        self.key = entry_key(user.name, day_name)

    def _now(self) -> datetime:
        return self.clock().astimezone(self.tz)

    def _set_status(self, entry: SchedulerEntry, status: str) -> SchedulerEntry:
        entry = entry.with_status(status)
        self.status.update(self.key, entry)
        return entry

    async def _sleep_until(self, when: datetime) -> None:
        """Sleep until ``when``, or the retry delay if it has already passed."""
        delay = dates.seconds_until(when, self._now())
        await self.sleep(delay if delay > 0 else self.retry_delay)

    async def run(self) -> None:
        logger.info(
            "slot_task_started",
            user=self.user.name,
            day=self.day_name,
            time=self.slot_time_str,
            activity=self.activity or "any",
        )
        while True:
            await self.run_once()

    async def run_once(self) -> None:
        """One pass of the loop: compute, wait, attempt, then sleep."""
        now = self._now()
        target = dates.next_weekday(now.date(), self.weekday)
        key = slot_key(self.user.login, target, self.slot_time_str)
        opens_at = dates.window_opens_at(target, self.slot_time, self.tz)
        next_window = dates.next_window_after(target, self.slot_time, self.tz)
        log = logger.bind(
            user=self.user.name,
            day=self.day_name,
            time=self.slot_time_str,
            target_date=target.isoformat(),
        )

        entry = SchedulerEntry(
            user_name=self.user.name,
            day=self.day_name.capitalize(),
            time=self.slot_time_str,
            target_date=target.isoformat(),
            books_at=opens_at.strftime("%Y-%m-%d %H:%M"),
            status=STATUS_SCHEDULED,
        )

        if self.ledger.contains(key):
            self._set_status(entry, STATUS_BOOKED)
            await self._sleep_until(next_window)
            return

        self._set_status(entry, STATUS_SCHEDULED)
        wait = dates.seconds_until(opens_at, now)
        if wait > 0:
            log.info("booking_window_scheduled", opens_at=opens_at.isoformat())
            await self.sleep(wait)

        entry = self._set_status(entry, STATUS_BOOKING)
        try:
            outcome = await attempt_slot_booking(
                self.gateway_factory,
                self.user,
                self.slot_time_str,
                self.activity,
                target,
            )
        except ResawodError as e:
            log.error("booking_error", error=str(e), type=type(e).__name__)
            self._set_status(entry, f"error: {e}")
            await self.sleep(self.retry_delay)
            return
        except Exception as e:
            log.exception("booking_unexpected_error", error=str(e))
            self._set_status(entry, f"error: {e}")
            await self.sleep(self.retry_delay)
            return

        if not outcome.handled:
            self._set_status(entry, outcome_status(outcome))
            log.warning(
                "booking_retry_scheduled",
                outcome=outcome.kind.value,
                reason=outcome.reason,
            )
            await self.sleep(self.retry_delay)
            return

        # Persist before moving on so a crash here cannot double-book
        self.ledger.insert_and_persist(key)
        self._set_status(entry, outcome_status(outcome))
        log.info("slot_handled", outcome=outcome.kind.value)
        await self._sleep_until(next_window)
