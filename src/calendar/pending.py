"""Pending contact tags: which event the next shared contact belongs to."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

PENDING_TAG_TTL = timedelta(seconds=120)


@dataclass
class PendingTag:
    event_id: str
    expires_at: datetime


class PendingContactTags:
    """Per-conversation pending tag with a short expiry."""

    def __init__(self, ttl: timedelta = PENDING_TAG_TTL) -> None:
        self.ttl = ttl
        self._pending: Dict[str, PendingTag] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._pending

    def set(self, conversation_id: str, event_id: str, now: datetime) -> None:
        self._pending[conversation_id] = PendingTag(event_id, now + self.ttl)

    def consume(self, conversation_id: str, now: datetime) -> Optional[str]:
        """Pop the pending event id; None when absent or expired."""
        pending = self._pending.pop(conversation_id, None)
        if pending is None or now > pending.expires_at:
            return None
        return pending.event_id

    def discard(self, conversation_id: str) -> bool:
        return self._pending.pop(conversation_id, None) is not None

    def sweep(self, now: datetime) -> int:
        """Drop expired entries. Returns how many were removed."""
        expired = [cid for cid, p in self._pending.items() if now > p.expires_at]
        for conversation_id in expired:
            del self._pending[conversation_id]
        return len(expired)
