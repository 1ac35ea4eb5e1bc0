"""Shared mutable state for message handling and the background tick.

One ``BrainContext`` is built at startup and passed by reference to the
quick-response router, the conversation service and the tick driver.
"""

import random
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Callable, Optional

from .budget import (
    BudgetParams,
    BudgetState,
    LadderDefaults,
    budget_aware_params,
    next_local_midnight,
)
from .mood import MoodState
from .reminders import ReminderQueue

LAST_RESPONSES_MAX = 100
LAST_RESPONSES_KEEP = 50


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LastResponses:
    """Most recent reply per conversation, oldest-written first."""

    def __init__(self) -> None:
        self._entries: "OrderedDict[str, str]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, conversation_id: str) -> Optional[str]:
        return self._entries.get(conversation_id)

    def set(self, conversation_id: str, text: str) -> None:
        self._entries[conversation_id] = text
        self._entries.move_to_end(conversation_id)

    def prune(self, max_size: int = LAST_RESPONSES_MAX, keep: int = LAST_RESPONSES_KEEP) -> int:
        """Drop the oldest entries once the map grows past ``max_size``."""
        if len(self._entries) <= max_size:
            return 0
        dropped = 0
        while len(self._entries) > keep:
            self._entries.popitem(last=False)
            dropped += 1
        return dropped


@dataclass
class ResourceState:
    """Provider health as seen from this process."""

    idle_since: datetime
    api_errors: int = 0
    cooldown_until: Optional[datetime] = None

    def in_cooldown(self, now: datetime) -> bool:
        return self.cooldown_until is not None and now < self.cooldown_until


@dataclass
class BrainContext:
    """Mood, budget, reminders and tracking maps for one process."""

    budget: BudgetState
    ladder: LadderDefaults
    tz: tzinfo
    resources: ResourceState
    mood: MoodState = field(default_factory=MoodState)
    reminders: ReminderQueue = field(default_factory=ReminderQueue)
    last_responses: LastResponses = field(default_factory=LastResponses)
    rng: random.Random = field(default_factory=random.Random)
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def create(
        cls,
        daily_budget: int,
        ladder: LadderDefaults,
        tz: tzinfo,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ) -> "BrainContext":
        """Fresh state with the first budget epoch ending at the next local midnight."""
        now = clock()
        return cls(
            budget=BudgetState(budget=daily_budget, reset_at=next_local_midnight(now, tz)),
            ladder=ladder,
            tz=tz,
            resources=ResourceState(idle_since=now),
            rng=rng or random.Random(),
            clock=clock,
        )

    def now(self) -> datetime:
        return self.clock()

    def local_now(self) -> datetime:
        return self.clock().astimezone(self.tz)

    @property
    def usage_ratio(self) -> float:
        return self.budget.ratio

    def params(self) -> BudgetParams:
        """Ladder parameters for the current usage."""
        return budget_aware_params(self.budget.used, self.budget.budget, self.ladder)
