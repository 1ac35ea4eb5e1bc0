"""Pydantic models for conversation sessions."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionMessage(BaseModel):
    """One turn of conversation history."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class Session(BaseModel):
    """Ordered message history for one conversation.

    ``total_messages`` counts every append, including messages since trimmed
    away; ``memory_checked`` is the count at the last memory update.
    """

    messages: List[SessionMessage] = Field(default_factory=list)
    last_activity: datetime = Field(default_factory=_utcnow)
    total_messages: int = 0
    memory_checked: int = 0

    def history(self, limit: int = 0) -> List[Dict[str, str]]:
        """Role/content pairs in chronological order, optionally the last ``limit``."""
        messages = self.messages[-limit:] if limit > 0 else self.messages
        return [{"role": m.role, "content": m.content} for m in messages]

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
