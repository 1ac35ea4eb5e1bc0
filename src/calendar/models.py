"""Pydantic models for calendar events and digest bookkeeping."""

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

Recurrence = Literal["daily", "weekly", "once"]

DAY_NAMES_SHORT = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
DAY_NAMES_FULL = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]
DAY_MAP = {name.lower(): index for index, name in enumerate(DAY_NAMES_SHORT)}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_time(value: str) -> str:
    """Accept a zero-padded 24h ``HH:MM`` string."""
    if len(value) != 5:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    datetime.strptime(value, "%H:%M")
    return value


def validate_date(value: str) -> str:
    """Accept a ``YYYY-MM-DD`` string."""
    if len(value) != 10:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    datetime.strptime(value, "%Y-%m-%d")
    return value


def parse_day(value: str) -> Optional[int]:
    """Map "Mon"/"monday" to 1; 0 is Sunday. None if unknown."""
    return DAY_MAP.get(value[:3].lower()) if len(value) >= 3 else None


class TaggedRecipient(BaseModel):
    """Someone who receives digests for an event."""

    recipient_id: str
    name: str


class CalendarEvent(BaseModel):
    """A daily, weekly or one-time event.

    ``day_of_week`` (0=Sun..6=Sat) is set exactly when the event is weekly
    and ``date`` exactly when it happens once.
    """

    id: str
    title: str
    recurrence: Recurrence
    time: str
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    date: Optional[str] = None
    tagged_recipients: List[TaggedRecipient] = Field(default_factory=list)
    created_by: str
    created_at: datetime = Field(default_factory=_utcnow)
    conversation_id: str

    check_time = field_validator("time")(validate_time)

    @field_validator("date")
    @classmethod
    def check_date(cls, value: Optional[str]) -> Optional[str]:
        return validate_date(value) if value is not None else None

    @model_validator(mode="after")
    def check_recurrence(self) -> "CalendarEvent":
        if (self.recurrence == "weekly") != (self.day_of_week is not None):
            raise ValueError("day_of_week is required for weekly events only")
        if (self.recurrence == "once") != (self.date is not None):
            raise ValueError("date is required for one-time events only")
        return self

    def occurs_on(self, day_of_week: int, date_str: str) -> bool:
        """Whether the event happens on the given weekday/date."""
        if self.recurrence == "daily":
            return True
        if self.recurrence == "weekly":
            return self.day_of_week == day_of_week
        return self.date == date_str

    def has_recipient(self, recipient_id: str) -> bool:
        return any(r.recipient_id == recipient_id for r in self.tagged_recipients)

    @property
    def schedule_label(self) -> str:
        if self.recurrence == "daily":
            return f"Daily at {self.time}"
        if self.recurrence == "weekly":
            return f"Every {DAY_NAMES_SHORT[self.day_of_week]} at {self.time}"
        return f"{self.date} at {self.time}"


class DigestConfig(BaseModel):
    """When daily and weekly digests go out (deployment timezone)."""

    daily_time: str = "07:00"
    weekly_day: int = Field(default=0, ge=0, le=6)
    weekly_time: str = "18:00"

    check_times = field_validator("daily_time", "weekly_time")(validate_time)


class CalendarData(BaseModel):
    """The whole calendar, persisted as a single document."""

    events: List[CalendarEvent] = Field(default_factory=list)
    digest_config: DigestConfig = Field(default_factory=DigestConfig)
    last_daily_digest: Dict[str, datetime] = Field(default_factory=dict)
    last_weekly_digest: Dict[str, datetime] = Field(default_factory=dict)

    def find_event(self, event_id: str) -> Optional[CalendarEvent]:
        for event in self.events:
            if event.id == event_id:
                return event
        return None
