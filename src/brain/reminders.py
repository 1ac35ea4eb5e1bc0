"""One-shot reminders delivered by the background tick."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List

import structlog

logger = structlog.get_logger()

SendFn = Callable[[str, str], Awaitable[None]]


@dataclass
class Reminder:
    """A pending reminder for a conversation."""

    conversation_id: str
    message: str
    due_at: datetime
    set_at: datetime

    def is_due(self, now: datetime) -> bool:
        return self.due_at <= now


class ReminderQueue:
    """In-memory reminder queue with at-most-once delivery."""

    def __init__(self) -> None:
        self._pending: List[Reminder] = []

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> List[Reminder]:
        return list(self._pending)

    def schedule(
        self,
        conversation_id: str,
        message: str,
        delay_minutes: int,
        now: datetime,
    ) -> Reminder:
        """Queue a reminder due ``delay_minutes`` after ``now``."""
        reminder = Reminder(
            conversation_id=conversation_id,
            message=message,
            due_at=now + timedelta(minutes=delay_minutes),
            set_at=now,
        )
        self._pending.append(reminder)
        logger.info(
            "Reminder scheduled",
            conversation_id=conversation_id,
            due_at=reminder.due_at.isoformat(),
        )
        return reminder

    def pop_due(self, now: datetime) -> List[Reminder]:
        """Remove and return every reminder due at ``now``."""
        due = [r for r in self._pending if r.is_due(now)]
        if due:
            self._pending = [r for r in self._pending if not r.is_due(now)]
        return due

    async def dispatch(self, now: datetime, send: SendFn) -> int:
        """Deliver due reminders. Failures are logged and never retried.

        Returns the number of reminders delivered successfully.
        """
        delivered = 0
        for reminder in self.pop_due(now):
            try:
                await send(reminder.conversation_id, f"⏰ Reminder: {reminder.message}")
                delivered += 1
                logger.info(
                    "Reminder sent",
                    conversation_id=reminder.conversation_id,
                )
            except Exception as exc:
                logger.error(
                    "Failed to send reminder",
                    conversation_id=reminder.conversation_id,
                    error=str(exc),
                )
        return delivered
