"""Calendar events, digests and contact tagging."""

from .digest import DigestScheduler
from .models import CalendarData, CalendarEvent, DigestConfig, TaggedRecipient
from .pending import PendingContactTags
from .repository import CalendarRepository

__all__ = [
    "CalendarData",
    "CalendarEvent",
    "CalendarRepository",
    "DigestConfig",
    "DigestScheduler",
    "PendingContactTags",
    "TaggedRecipient",
]
