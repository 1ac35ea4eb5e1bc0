"""Memory data models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

MAX_FACTS = 20


class UserMemory(BaseModel):
    """Long-term memory for one conversation.

    ``summary_up_to`` is the timestamp of the newest message already folded
    into ``summary``.
    """

    facts: List[str] = Field(default_factory=list)
    summary: Optional[str] = None
    summary_up_to: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.facts and not self.summary

    def add_facts(self, new_facts: List[str]) -> None:
        """Append facts, keeping only the newest ``MAX_FACTS``."""
        self.facts = (self.facts + new_facts)[-MAX_FACTS:]
