"""Slash commands.

Commands:
- /clear, /reset - Clear conversation history
- /help - Show commands
- /status - Mood, budget and session overview
- /remember - Show stored memories
- /forget - Clear stored memories
- /calendar - List events
- /event add|remove|tag|digest ... - Manage events
- /skip - Stop tagging contacts

Unknown commands return None so the message is handled as normal text.
"""

import math
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError

from ...brain.budget import usage_label
from ...brain.context import BrainContext
from ...calendar.models import (
    DAY_NAMES_FULL,
    DAY_NAMES_SHORT,
    CalendarEvent,
    parse_day,
)
from ...calendar.pending import PendingContactTags
from ...calendar.repository import CalendarRepository
from ...memory.manager import MemoryManager
from ...sessions.store import SessionStore

logger = structlog.get_logger()

HELP_TEXT = """\
🤖 Commands

/clear - Clear conversation history
/status - Show bot status
/remember - Show what I remember about you
/forget - Clear my memory of you
/calendar - Show all events
/event add - Add an event
/event remove <id> - Remove event
/event tag <id> - Tag a contact
/event digest - Set digest times
/skip - Stop tagging contacts
/help - Show this help

Just send a message to chat with me!"""

EVENT_ADD_USAGE = (
    "Usage: /event add daily|weekly|once ...\n\n"
    "Examples:\n"
    "/event add daily 07:30 Take vitamins\n"
    "/event add weekly Mon 08:00 School run\n"
    "/event add once 2026-02-15 10:00 Dentist"
)
DAILY_USAGE = "Usage: /event add daily HH:MM Event title"
WEEKLY_USAGE = (
    "Usage: /event add weekly Mon HH:MM Event title\n"
    "Days: Sun, Mon, Tue, Wed, Thu, Fri, Sat"
)
ONCE_USAGE = "Usage: /event add once YYYY-MM-DD HH:MM Event title"
DIGEST_USAGE = "Usage:\n/event digest daily HH:MM\n/event digest weekly Sun HH:MM"
TAG_PROMPT = "Send me a contact to tag someone, or /skip."


def _bar(value: float) -> str:
    filled = math.ceil(value / 10)
    return "█" * filled + "░" * (10 - filled)


def _format_uptime(seconds: float) -> str:
    minutes, _ = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class CommandRouter:
    """Dispatches ``/command args`` text to a handler returning the reply."""

    def __init__(
        self,
        ctx: BrainContext,
        sessions: SessionStore,
        calendar: CalendarRepository,
        pending_tags: PendingContactTags,
        memory: Optional[MemoryManager] = None,
    ) -> None:
        self.ctx = ctx
        self.sessions = sessions
        self.calendar = calendar
        self.pending_tags = pending_tags
        self.memory = memory
        self.started_at = ctx.now()
        self._commands: Dict[str, Callable[[str, str, List[str]], str]] = {
            "clear": self.clear,
            "reset": self.clear,
            "help": self.help,
            "status": self.status,
            "remember": self.remember,
            "forget": self.forget,
            "calendar": self.list_events,
            "event": self.event,
        }

    def handle(self, conversation_id: str, sender_id: str, text: str) -> Optional[str]:
        """Run a command, or return None when ``text`` is not a known command."""
        if not text.startswith("/"):
            return None
        parts = text[1:].split()
        if not parts:
            return None
        # "/status@my_bot" in group chats
        command = parts[0].split("@", 1)[0].lower()
        args = parts[1:]

        if command == "skip":
            return self.skip(conversation_id)

        handler = self._commands.get(command)
        if handler is None:
            return None
        logger.info("Command", command=command, conversation_id=conversation_id)
        return handler(conversation_id, sender_id, args)

    # --- Session and memory ---

    def clear(self, conversation_id: str, sender_id: str, args: List[str]) -> str:
        self.sessions.clear(conversation_id)
        return "🧹 Session cleared. Starting fresh!"

    def help(self, conversation_id: str, sender_id: str, args: List[str]) -> str:
        return HELP_TEXT

    def status(self, conversation_id: str, sender_id: str, args: List[str]) -> str:
        ctx = self.ctx
        mood = ctx.mood
        budget = ctx.budget
        params = ctx.params()
        ratio = ctx.usage_ratio
        session = self.sessions.get(conversation_id)
        uptime = (ctx.now() - self.started_at).total_seconds()
        reset_local = budget.reset_at.astimezone(ctx.tz)

        return "\n".join(
            [
                "🤖 Status",
                "",
                f"Model: {params.model}",
                f"Messages in session: {len(session.messages)}",
                f"Uptime: {_format_uptime(uptime)}",
                "",
                "🦎 Mood",
                f"Energy: {_bar(mood.energy)} {round(mood.energy)}%",
                f"Stress: {_bar(mood.stress)} {round(mood.stress)}%",
                f"Curiosity: {_bar(mood.curiosity)} {round(mood.curiosity)}%",
                f"Mood: {mood.emoji}",
                "",
                "🔋 Token Budget",
                f"Used: {budget.used:,} / {budget.budget:,} ({round(ratio * 100)}%)",
                usage_label(ratio),
                f"Resets: {reset_local:%H:%M %Z}",
                "",
                "📋 Reminders",
                f"Pending: {len(ctx.reminders)}",
            ]
        )

    def remember(self, conversation_id: str, sender_id: str, args: List[str]) -> str:
        if not self.memory:
            return "🧠 Memory is not enabled."
        memory = self.memory.recall(conversation_id)
        if memory.is_empty:
            return "🧠 I don't have any memories about you yet. Keep chatting and I'll learn!"

        lines = ["🧠 What I remember:", ""]
        if memory.facts:
            lines.append("Facts:")
            lines.extend(f"• {fact}" for fact in memory.facts)
            lines.append("")
        if memory.summary:
            lines.append("Our history:")
            lines.append(memory.summary)
        return "\n".join(lines).rstrip()

    def forget(self, conversation_id: str, sender_id: str, args: List[str]) -> str:
        if not self.memory:
            return "🧠 Memory is not enabled."
        self.memory.forget(conversation_id)
        return "🧠 Done! I've forgotten everything about you. Fresh start!"

    # --- Calendar ---

    def list_events(self, conversation_id: str, sender_id: str, args: List[str]) -> str:
        data = self.calendar.load()
        if not data.events:
            return "📅 No events yet. Use /event add to create one!"

        lines = ["📅 All Events", ""]
        for event in data.events:
            tagged = ""
            if event.tagged_recipients:
                names = ", ".join(r.name for r in event.tagged_recipients)
                tagged = f" ({names})"
            lines.append(f"{event.title} [{event.id}]")
            lines.append(f"{event.schedule_label}{tagged}")
            lines.append("")

        config = data.digest_config
        lines.append(
            f"Digests: daily {config.daily_time}, "
            f"weekly {DAY_NAMES_SHORT[config.weekly_day]} {config.weekly_time}"
        )
        return "\n".join(lines)

    def event(self, conversation_id: str, sender_id: str, args: List[str]) -> str:
        sub = args[0].lower() if args else ""
        if sub == "add":
            return self._add_event(conversation_id, sender_id, args[1:])
        if sub == "remove":
            return self._remove_event(args[1:])
        if sub == "tag":
            return self._tag_event(conversation_id, args[1:])
        if sub == "digest":
            return self._set_digest(args[1:])
        return "Usage: /event add|remove|tag|digest ...\nType /help for examples."

    def skip(self, conversation_id: str) -> Optional[str]:
        if self.pending_tags.discard(conversation_id):
            return "Skipped contact tagging."
        return None

    def _add_event(self, conversation_id: str, sender_id: str, args: List[str]) -> str:
        recurrence = args[0].lower() if args else ""

        if recurrence == "daily":
            if len(args) < 3:
                return DAILY_USAGE
            fields = {"time": args[1]}
            title_words, usage = args[2:], DAILY_USAGE
        elif recurrence == "weekly":
            day = parse_day(args[1]) if len(args) > 1 else None
            if day is None or len(args) < 4:
                return WEEKLY_USAGE
            fields = {"day_of_week": day, "time": args[2]}
            title_words, usage = args[3:], WEEKLY_USAGE
        elif recurrence == "once":
            if len(args) < 4:
                return ONCE_USAGE
            fields = {"date": args[1], "time": args[2]}
            title_words, usage = args[3:], ONCE_USAGE
        else:
            return EVENT_ADD_USAGE

        try:
            event = self.calendar.add_event(
                conversation_id=conversation_id,
                created_by=sender_id,
                recurrence=recurrence,
                title=" ".join(title_words),
                now=self.ctx.now(),
                **fields,
            )
        except ValidationError:
            return usage

        self.pending_tags.set(conversation_id, event.id, self.ctx.now())
        return f"✅ {_describe(event)} created! [{event.id}]\n\n{TAG_PROMPT}"

    def _remove_event(self, args: List[str]) -> str:
        if not args:
            return "Usage: /event remove <id>"
        event = self.calendar.remove_event(args[0])
        if event is None:
            return f"Event {args[0]} not found."
        return f'🗑️ Removed "{event.title}" [{event.id}]'

    def _tag_event(self, conversation_id: str, args: List[str]) -> str:
        if not args:
            return "Usage: /event tag <id> then send a contact"
        event = self.calendar.get_event(args[0])
        if event is None:
            return f"Event {args[0]} not found."
        self.pending_tags.set(conversation_id, event.id, self.ctx.now())
        return f'Send me a contact to tag to "{event.title}", or /skip to cancel.'

    def _set_digest(self, args: List[str]) -> str:
        kind = args[0].lower() if args else ""

        if kind == "daily":
            if len(args) < 2:
                return "Usage: /event digest daily HH:MM"
            time = args[1]
            try:
                self.calendar.set_daily_digest(time)
            except ValidationError:
                return "Usage: /event digest daily HH:MM"
            return f"📬 Daily digest will be sent at {time}."

        if kind == "weekly":
            day = parse_day(args[1]) if len(args) > 1 else None
            if day is None or len(args) < 3:
                return "Usage: /event digest weekly Sun HH:MM"
            time = args[2]
            try:
                self.calendar.set_weekly_digest(day, time)
            except ValidationError:
                return "Usage: /event digest weekly Sun HH:MM"
            return f"📬 Weekly digest will be sent on {DAY_NAMES_FULL[day]}s at {time}."

        return DIGEST_USAGE


def _describe(event: CalendarEvent) -> str:
    if event.recurrence == "daily":
        return f'Daily event "{event.title}" at {event.time}'
    if event.recurrence == "weekly":
        return (
            f'Weekly event "{event.title}" every '
            f"{DAY_NAMES_SHORT[event.day_of_week]} at {event.time}"
        )
    return f'Event "{event.title}" on {event.date} at {event.time}'
