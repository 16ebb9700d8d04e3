"""Pydantic models for Nubapp API payloads.

All data structures use Pydantic v2 for validation, serialization, and type safety.
The provider is inconsistent about field names between endpoints, so models
accept both the long and short spellings.
"""

from pydantic import AliasChoices, BaseModel, Field, field_validator


def normalize_id(value):
    # Identifiers arrive as JSON numbers from some endpoints and strings from others
    if value is None:
        return value
    return str(value).strip('"')


class Slot(BaseModel):
    """One bookable activity occurrence from getActivitiesCalendar."""

    start: str = Field(validation_alias=AliasChoices("start_timestamp", "start"))
    end: str = Field(validation_alias=AliasChoices("end_timestamp", "end"))
    id: str = Field(validation_alias=AliasChoices("id_activity_calendar", "id"))
    name: str | None = Field(
        default=None, validation_alias=AliasChoices("name_activity", "name")
    )
    inscribed: int | None = Field(
        default=None, validation_alias=AliasChoices("n_inscribed", "inscribed")
    )
    capacity: int | None = Field(
        default=None, validation_alias=AliasChoices("n_capacity", "capacity")
    )

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value):
        return normalize_id(value)

    @property
    def free_places(self) -> int | None:
        if self.inscribed is None or self.capacity is None:
            return None
        return max(self.capacity - self.inscribed, 0)

    def matches(self, slot_time: str, activity: str | None = None) -> bool:
        """True if the start contains ``slot_time`` and the name contains ``activity``.

        The activity comparison is case-insensitive; an empty filter matches
        any slot, a slot without a name never matches a non-empty filter.
        """
        if slot_time not in self.start:
            return False
        if not activity:
            return True
        return self.name is not None and activity.lower() in self.name.lower()


class BookingEntry(BaseModel):
    """A confirmed booking or waiting-list entry from getUserFutureBookings."""

    start: str = Field(
        default="", validation_alias=AliasChoices("start_timestamp", "start")
    )
    end: str = Field(default="", validation_alias=AliasChoices("end_timestamp", "end"))
    id: str | None = Field(
        default=None, validation_alias=AliasChoices("id_activity_calendar", "id")
    )
    name: str | None = Field(
        default=None, validation_alias=AliasChoices("name_activity", "name")
    )
    inscribed: int | None = Field(
        default=None, validation_alias=AliasChoices("n_inscribed", "inscribed")
    )
    capacity: int | None = Field(
        default=None, validation_alias=AliasChoices("n_capacity", "capacity")
    )

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value):
        return normalize_id(value)

    @property
    def date(self) -> str:
        """Calendar date (YYYY-MM-DD) of the start timestamp."""
        return self.start[:10]


class Bookings(BaseModel):
    """A user's future bookings and waiting-list entries."""

    bookings: list[BookingEntry] = []
    waiting_list: list[BookingEntry] = Field(
        default=[], validation_alias=AliasChoices("in_waiting_list", "waiting_list")
    )

    model_config = {"extra": "ignore", "populate_by_name": True}


class ActionResult(BaseModel):
    """Response of a booking or waiting-list call."""

    success: bool = False
    message: str | None = None

    model_config = {"extra": "ignore"}

    @field_validator("message", mode="before")
    @classmethod
    def _stringify_message(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)
