"""Calendar persistence -- one JSON document holding every event."""

import secrets
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import structlog
from pydantic import ValidationError

from ..storage.json_store import JsonStore
from .models import (
    CalendarData,
    CalendarEvent,
    DigestConfig,
    Recurrence,
    TaggedRecipient,
)

logger = structlog.get_logger()

CALENDAR_KEY = "calendar"


def generate_event_id() -> str:
    """Short random hex id, e.g. ``"3fa2c91b"``."""
    return secrets.token_hex(4)


class CalendarRepository:
    """Load/save the calendar and apply user edits to it."""

    def __init__(self, store: JsonStore) -> None:
        self.store = store

    def load(self) -> CalendarData:
        raw = self.store.read_json(CALENDAR_KEY)
        if raw is None:
            return CalendarData()
        try:
            return CalendarData.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable calendar", error=str(exc))
            return CalendarData()

    def save(self, data: CalendarData) -> None:
        self.store.write_json(CALENDAR_KEY, data.model_dump(mode="json"))

    def add_event(
        self,
        conversation_id: str,
        created_by: str,
        recurrence: Recurrence,
        title: str,
        time: str,
        day_of_week: Optional[int] = None,
        date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CalendarEvent:
        """Create and persist an event. Raises ValidationError on bad input."""
        event = CalendarEvent(
            id=generate_event_id(),
            title=title,
            recurrence=recurrence,
            time=time,
            day_of_week=day_of_week,
            date=date,
            created_by=created_by,
            created_at=now or datetime.now(timezone.utc),
            conversation_id=conversation_id,
        )
        data = self.load()
        data.events.append(event)
        self.save(data)
        logger.info(
            "Calendar event added",
            event_id=event.id,
            recurrence=recurrence,
            conversation_id=conversation_id,
        )
        return event

    def get_event(self, event_id: str) -> Optional[CalendarEvent]:
        return self.load().find_event(event_id)

    def remove_event(self, event_id: str) -> Optional[CalendarEvent]:
        data = self.load()
        event = data.find_event(event_id)
        if event is None:
            return None
        data.events.remove(event)
        self.save(data)
        logger.info("Calendar event removed", event_id=event_id)
        return event

    def tag_recipients(
        self, event_id: str, recipients: Iterable[TaggedRecipient]
    ) -> Optional[List[TaggedRecipient]]:
        """Attach recipients to an event, skipping ones already tagged.

        Returns the newly tagged recipients, or None if the event is gone.
        """
        data = self.load()
        event = data.find_event(event_id)
        if event is None:
            return None

        added: List[TaggedRecipient] = []
        for recipient in recipients:
            if event.has_recipient(recipient.recipient_id):
                continue
            event.tagged_recipients.append(recipient)
            added.append(recipient)

        if added:
            self.save(data)
            logger.info("Recipients tagged", event_id=event_id, count=len(added))
        return added

    def set_daily_digest(self, time: str) -> bool:
        """Set the daily digest time. Returns False when nothing changed."""
        data = self.load()
        config = DigestConfig(**{**data.digest_config.model_dump(), "daily_time": time})
        return self._update_digest(data, config)

    def set_weekly_digest(self, day_of_week: int, time: str) -> bool:
        """Set the weekly digest day and time. Returns False when nothing changed."""
        data = self.load()
        config = DigestConfig(
            daily_time=data.digest_config.daily_time,
            weekly_day=day_of_week,
            weekly_time=time,
        )
        return self._update_digest(data, config)

    def _update_digest(self, data: CalendarData, config: DigestConfig) -> bool:
        if config == data.digest_config:
            return False
        data.digest_config = config
        self.save(data)
        logger.info("Digest schedule updated", **config.model_dump())
        return True
