"""Quick responses -- answers produced without calling the inference provider."""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import structlog

from .context import BrainContext

logger = structlog.get_logger()

STRESS_LIMIT = 80.0
STRESS_RELIEF = 10.0
QUICK_ENERGY_COST = 1.0

BREATH_MESSAGE = (
    "🧘 Taking a breath... I've been working hard. "
    "Give me a moment and try again."
)
EXHAUSTED_MESSAGE = (
    "🔋 I've run out of thinking power for today. My brain resets at "
    "midnight! Simple questions I can still handle."
)

GREETING_RESPONSES = [
    "Hey there! 👋",
    "Hi! What's up?",
    "Hello! How can I help?",
    "Hey! 👋",
]

THANKS_RESPONSES = [
    "You're welcome!",
    "No problem!",
    "Happy to help!",
    "Anytime!",
]

HOW_ARE_YOU_RESPONSES = {
    "tired": [
        "*yawn* A bit tired, but here for you!",
        "Running on low battery today... but still kicking!",
        "Feeling a bit sleepy, but ready to help.",
    ],
    "stressed": [
        "Bit overwhelmed right now, but managing!",
        "Been busy! Taking a breath...",
        "A lot going on, but I'm here.",
    ],
    "curious": [
        "Feeling curious and ready to explore! What's on your mind?",
        "Great! Been thinking about interesting stuff. What about you?",
        "Excited to chat! What's up?",
    ],
    "content": [
        "Doing well! How can I help?",
        "Good! What's on your mind?",
        "All good here! What can I do for you?",
    ],
}

REMINDER_REQUEST = re.compile(
    r"remind\s+me\s+in\s+(?P<amount>\d+)\s*"
    r"(?P<unit>min(?:ute)?s?|hours?|hrs?|h)\s+(?:to\s+)?(?P<task>.+)",
    re.I | re.S,
)


@dataclass
class QuickMatch:
    """What a handler sees when one of its patterns matched."""

    conversation_id: str
    text: str
    match: "re.Match[str]"


Handler = Callable[[BrainContext, QuickMatch], Optional[str]]


@dataclass(frozen=True)
class QuickPattern:
    """Ordered dispatch entry: patterns plus the handler they trigger.

    A handler returning None lets the router fall through to the next entry.
    """

    name: str
    patterns: Tuple["re.Pattern[str]", ...]
    handle: Handler


def parse_reminder_request(text: str) -> Optional[Tuple[int, str]]:
    """Parse "remind me in N minutes/hours [to] TASK" into (minutes, task)."""
    match = REMINDER_REQUEST.search(text)
    if not match:
        return None
    task = match.group("task").strip()
    if not task:
        return None
    amount = int(match.group("amount"))
    unit = match.group("unit").lower()
    minutes = amount * 60 if unit.startswith("h") else amount
    return minutes, task


def format_delay(minutes: int) -> str:
    """Human readable delay: "1 minute", "2 hours", "1 hour 30 minutes"."""
    hours, mins = divmod(minutes, 60)
    parts = []
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if mins or not hours:
        parts.append(f"{mins} minute{'s' if mins != 1 else ''}")
    return " ".join(parts)


# --- Handlers ---


def _greeting(ctx: BrainContext, quick: QuickMatch) -> Optional[str]:
    return ctx.rng.choice(GREETING_RESPONSES)


def _thanks(ctx: BrainContext, quick: QuickMatch) -> Optional[str]:
    return ctx.rng.choice(THANKS_RESPONSES)


def _time_of_day(ctx: BrainContext, quick: QuickMatch) -> Optional[str]:
    return f"It's {ctx.local_now():%H:%M} 🕐"


def _date(ctx: BrainContext, quick: QuickMatch) -> Optional[str]:
    now = ctx.local_now()
    return f"It's {now:%A, %B} {now.day}, {now.year} 📅"


def _how_are_you(ctx: BrainContext, quick: QuickMatch) -> Optional[str]:
    return ctx.rng.choice(HOW_ARE_YOU_RESPONSES[ctx.mood.label])


def _repeat_last(ctx: BrainContext, quick: QuickMatch) -> Optional[str]:
    last = ctx.last_responses.get(quick.conversation_id)
    if last:
        return f'I said: "{last}"'
    return "I haven't said anything yet in this conversation!"


def _set_reminder(ctx: BrainContext, quick: QuickMatch) -> Optional[str]:
    parsed = parse_reminder_request(quick.text)
    if not parsed:
        return None
    minutes, task = parsed
    ctx.reminders.schedule(quick.conversation_id, task, minutes, now=ctx.now())
    return f"⏰ Got it! I'll remind you in {format_delay(minutes)} to: {task}"


def _compile(*patterns: str) -> Tuple["re.Pattern[str]", ...]:
    return tuple(re.compile(p, re.I) for p in patterns)


DEFAULT_PATTERNS: List[QuickPattern] = [
    QuickPattern(
        "greeting",
        _compile(r"^(hi|hello|hey|yo|sup|hiya|howdy)[\s!.,?]*$"),
        _greeting,
    ),
    QuickPattern(
        "thanks",
        _compile(r"^(thanks|thank\s*you|thx|ty|cheers)[\s!.,?]*$"),
        _thanks,
    ),
    QuickPattern(
        "time",
        _compile(r"what\s*(time|hour)\s*(is\s*it)?", r"^time\??$"),
        _time_of_day,
    ),
    QuickPattern(
        "date",
        _compile(r"what\s*(day|date)\s*(is\s*it)?", r"^date\??$", r"today'?s?\s*date"),
        _date,
    ),
    QuickPattern(
        "how_are_you",
        _compile(
            r"how\s*(are|r)\s*(you|u)",
            r"how'?s?\s*(it\s*going|things)",
            r"you\s*(ok|okay|good|alright)",
        ),
        _how_are_you,
    ),
    QuickPattern(
        "repeat",
        _compile(
            r"what\s*did\s*(you|u)\s*say",
            r"repeat\s*that",
            r"say\s*that\s*again",
            r"^huh\??$",
        ),
        _repeat_last,
    ),
    QuickPattern(
        "reminder",
        _compile(r"remind\s+me\s+in\s+\d+"),
        _set_reminder,
    ),
]


class QuickResponseRouter:
    """First-match dispatch over quick patterns, guarded by mood and budget."""

    def __init__(
        self,
        ctx: BrainContext,
        patterns: Optional[Sequence[QuickPattern]] = None,
    ) -> None:
        self._ctx = ctx
        self._patterns = list(patterns if patterns is not None else DEFAULT_PATTERNS)

    def respond(self, conversation_id: str, text: str) -> Optional[str]:
        """Answer without the provider, or return None to fall through."""
        ctx = self._ctx

        if ctx.mood.stress >= STRESS_LIMIT:
            ctx.mood.adjust(stress=-STRESS_RELIEF)
            logger.info("Stress guard engaged", conversation_id=conversation_id)
            return BREATH_MESSAGE

        response = self._match(conversation_id, text)
        if response is not None:
            return response

        if ctx.usage_ratio >= 1.0:
            return EXHAUSTED_MESSAGE

        return None

    def _match(self, conversation_id: str, text: str) -> Optional[str]:
        for entry in self._patterns:
            for pattern in entry.patterns:
                match = pattern.search(text)
                if not match:
                    continue
                response = entry.handle(
                    self._ctx, QuickMatch(conversation_id, text, match)
                )
                if response is not None:
                    self._ctx.mood.adjust(energy=-QUICK_ENERGY_COST)
                    logger.debug(
                        "Quick response",
                        conversation_id=conversation_id,
                        pattern=entry.name,
                    )
                    return response
        return None
