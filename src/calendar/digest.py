"""Daily and weekly calendar digests.

Called once per background tick. All wall-clock comparisons happen in the
deployment timezone; stored timestamps stay UTC.
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Awaitable, Callable, Dict, List, Sequence

import structlog

from .models import DAY_NAMES_FULL, CalendarData, CalendarEvent
from .repository import CalendarRepository

logger = structlog.get_logger()

SendFn = Callable[[str, str], Awaitable[None]]

DIGEST_WINDOW_SECONDS = 60
WEEKLY_RESEND_INTERVAL = timedelta(hours=23)
SECONDS_PER_DAY = 24 * 60 * 60


def day_of_week(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def _seconds(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 3600 + int(minutes) * 60


def is_time_within_window(
    current: str, target: str, window_seconds: int = DIGEST_WINDOW_SECONDS
) -> bool:
    """Compare two ``HH:MM`` strings, wrapping around midnight."""
    diff = abs(_seconds(current) - _seconds(target))
    return diff <= window_seconds or SECONDS_PER_DAY - diff <= window_seconds


def collect_today_events(
    events: Sequence[CalendarEvent], today: date
) -> Dict[str, List[CalendarEvent]]:
    """Events happening ``today`` per recipient, sorted by time."""
    weekday = day_of_week(today)
    today_str = today.isoformat()
    result: Dict[str, List[CalendarEvent]] = {}
    for event in events:
        if not event.occurs_on(weekday, today_str):
            continue
        for recipient in event.tagged_recipients:
            result.setdefault(recipient.recipient_id, []).append(event)

    for recipient_events in result.values():
        recipient_events.sort(key=lambda e: e.time)
    return result


def collect_week_events(
    events: Sequence[CalendarEvent], start: date
) -> Dict[str, Dict[int, List[CalendarEvent]]]:
    """Events for the 7 days from ``start`` per recipient, keyed by day offset."""
    result: Dict[str, Dict[int, List[CalendarEvent]]] = {}
    for offset in range(7):
        day = start + timedelta(days=offset)
        weekday = day_of_week(day)
        day_str = day.isoformat()
        for event in events:
            if not event.occurs_on(weekday, day_str):
                continue
            for recipient in event.tagged_recipients:
                days = result.setdefault(recipient.recipient_id, {})
                days.setdefault(offset, []).append(event)

    for days in result.values():
        for day_events in days.values():
            day_events.sort(key=lambda e: e.time)
    return result


def find_recipient_name(events: Sequence[CalendarEvent], recipient_id: str) -> str:
    """Display name from the recipient's first tag."""
    for event in events:
        for recipient in event.tagged_recipients:
            if recipient.recipient_id == recipient_id:
                return recipient.name
    return "there"


def purge_past_events(data: CalendarData, today: date) -> bool:
    """Drop one-time events dated strictly before ``today``."""
    today_str = today.isoformat()
    before = len(data.events)
    data.events = [
        e for e in data.events if e.recurrence != "once" or e.date >= today_str
    ]
    return len(data.events) != before


def format_daily_digest(name: str, events: Sequence[CalendarEvent]) -> str:
    lines = [
        f"📅 Good morning, {name}!",
        "",
        "Here's your schedule for today:",
        "",
    ]
    lines.extend(f"• {e.time} - {e.title}" for e in events)
    return "\n".join(lines)


def format_weekly_digest(
    name: str, start: date, days: Dict[int, List[CalendarEvent]]
) -> str:
    lines = [
        f"📅 Weekly Schedule, {name}!",
        "",
        "Here's your week ahead:",
    ]
    for offset in sorted(days):
        day = start + timedelta(days=offset)
        lines.append("")
        lines.append(f"{DAY_NAMES_FULL[day_of_week(day)]} {day.isoformat()}")
        lines.extend(f"  • {e.time} - {e.title}" for e in days[offset])
    return "\n".join(lines)


class DigestScheduler:
    """Sends due digests and purges expired one-time events."""

    def __init__(self, repository: CalendarRepository, tz: tzinfo) -> None:
        self.repository = repository
        self.tz = tz

    async def process(self, now: datetime, send: SendFn) -> int:
        """Run one digest pass at ``now``. Returns the number of digests sent."""
        data = self.repository.load()
        if not data.events:
            return 0

        local = now.astimezone(self.tz)
        current_time = local.strftime("%H:%M")
        today = local.date()
        config = data.digest_config
        sent = 0
        changed = False

        if is_time_within_window(current_time, config.daily_time):
            for recipient_id, events in collect_today_events(data.events, today).items():
                last = data.last_daily_digest.get(recipient_id)
                if last is not None and last.astimezone(self.tz).date() == today:
                    continue
                name = find_recipient_name(data.events, recipient_id)
                if await self._deliver(
                    send, recipient_id, format_daily_digest(name, events), "daily"
                ):
                    data.last_daily_digest[recipient_id] = now
                    sent += 1
                    changed = True

        if day_of_week(today) == config.weekly_day and is_time_within_window(
            current_time, config.weekly_time
        ):
            for recipient_id, days in collect_week_events(data.events, today).items():
                last = data.last_weekly_digest.get(recipient_id)
                if last is not None and now - last < WEEKLY_RESEND_INTERVAL:
                    continue
                name = find_recipient_name(data.events, recipient_id)
                if await self._deliver(
                    send,
                    recipient_id,
                    format_weekly_digest(name, today, days),
                    "weekly",
                ):
                    data.last_weekly_digest[recipient_id] = now
                    sent += 1
                    changed = True

        if purge_past_events(data, today):
            logger.info("Purged past one-time events")
            changed = True

        if changed:
            self.repository.save(data)
        return sent

    async def _deliver(
        self, send: SendFn, recipient_id: str, text: str, kind: str
    ) -> bool:
        try:
            await send(recipient_id, text)
        except Exception as exc:
            logger.error(
                "Failed to send digest",
                kind=kind,
                recipient_id=recipient_id,
                error=str(exc),
            )
            return False
        logger.info("Digest sent", kind=kind, recipient_id=recipient_id)
        return True
