"""Abstract interface to the remote booking service.

The scheduler core only talks to this interface; ``NubappClient`` is the
production implementation and tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date

from resawod.models import ActionResult, Bookings, Slot


class BookingGateway(ABC):
    """Authenticated session against a booking provider.

    All methods may raise ``ResawodError`` subclasses on transport or
    protocol failures.
    """

    @abstractmethod
    async def login(self, login: str, password: str) -> None:
        """Authenticate. Must precede every other call."""

    @abstractmethod
    async def get_slots(self, day: date) -> list[Slot]:
        """Slots offered on ``day``, in provider order."""

    @abstractmethod
    async def get_bookings(self) -> Bookings:
        """Current bookings and waiting-list entries of the logged-in user."""

    @abstractmethod
    async def book(self, slot_id: str) -> ActionResult:
        """Book a slot directly."""

    @abstractmethod
    async def book_waiting_list(self, slot_id: str) -> ActionResult:
        """Join a slot's waiting list."""

    async def close(self) -> None:
        """Release network resources."""


# Each booking attempt and watcher pass builds its own session
GatewayFactory = Callable[[], BookingGateway]
