"""Single booking attempt for one user, slot time and date.

Orchestrates the gateway calls: skip if the user already holds the booking,
otherwise find the slot, book it directly and fall back to the waiting list.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum

from resawod.config import UserConfig
from resawod.gateway import BookingGateway, GatewayFactory
from resawod.logging import get_logger
from resawod.models import BookingEntry, Slot

logger = get_logger(__name__)


class OutcomeKind(str, Enum):
    BOOKED = "booked"
    ALREADY_BOOKED = "already_booked"
    WAITING_LIST = "waiting_list"
    SLOT_NOT_FOUND = "slot_not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class BookingOutcome:
    kind: OutcomeKind
    reason: str = ""

    @property
    def handled(self) -> bool:
        """True when the slot occurrence needs no further attempts."""
        return self.kind in (
            OutcomeKind.BOOKED,
            OutcomeKind.ALREADY_BOOKED,
            OutcomeKind.WAITING_LIST,
        )


BOOKED = BookingOutcome(OutcomeKind.BOOKED)
ALREADY_BOOKED = BookingOutcome(OutcomeKind.ALREADY_BOOKED)
WAITING_LIST = BookingOutcome(OutcomeKind.WAITING_LIST)
SLOT_NOT_FOUND = BookingOutcome(OutcomeKind.SLOT_NOT_FOUND)


def failed(reason: str) -> BookingOutcome:
    return BookingOutcome(OutcomeKind.FAILED, reason)


def find_slot(slots: list[Slot], slot_time: str, activity: str | None) -> Slot | None:
    """First slot starting at ``slot_time`` whose name contains ``activity``."""
    return next((s for s in slots if s.matches(slot_time, activity)), None)


def find_existing_booking(
    bookings: list[BookingEntry], target: date, slot_time: str, activity: str | None
) -> BookingEntry | None:
    target_ymd = target.isoformat()
    for booking in bookings:
        if target_ymd not in booking.start or slot_time not in booking.start:
            continue
        if not activity:
            return booking
        if booking.name and activity.lower() in booking.name.lower():
            return booking
    return None


async def attempt_booking(
    gateway: BookingGateway,
    user: UserConfig,
    slot_time: str,
    activity: str | None,
    target: date,
) -> BookingOutcome:
    """Book ``slot_time`` on ``target`` for ``user``.

    Raises:
        ResawodError: On transport, protocol or authentication failure.
    """
    await gateway.login(user.login, user.password)

    bookings = await gateway.get_bookings()
    if find_existing_booking(bookings.bookings, target, slot_time, activity):
        return ALREADY_BOOKED

    slots = await gateway.get_slots(target)
    slot = find_slot(slots, slot_time, activity)
    if slot is None:
        return SLOT_NOT_FOUND

    result = await gateway.book(slot.id)
    if result.success:
        return BOOKED

    message = result.message or ""
    logger.info(
        "direct_booking_failed",
        user=user.name,
        slot_id=slot.id,
        message=message,
        next_step="waiting_list",
    )
    wl_result = await gateway.book_waiting_list(slot.id)
    if wl_result.success:
        return WAITING_LIST
    return failed(message)


async def attempt_slot_booking(
    gateway_factory: GatewayFactory,
    user: UserConfig,
    slot_time: str,
    activity: str | None,
    target: date,
) -> BookingOutcome:
    """Run ``attempt_booking`` on a fresh gateway session and close it afterwards."""
    gateway = gateway_factory()
    try:
        return await attempt_booking(gateway, user, slot_time, activity, target)
    finally:
        await gateway.close()
