"""Mood, budget ladder, quick responses and reminders."""

from .budget import BudgetParams, BudgetState, LadderDefaults, budget_aware_params
from .context import BrainContext, LastResponses, ResourceState
from .mood import MoodState, apply_mood_modifiers
from .quick_responses import QuickPattern, QuickResponseRouter
from .reminders import Reminder, ReminderQueue

__all__ = [
    "BrainContext",
    "BudgetParams",
    "BudgetState",
    "LadderDefaults",
    "LastResponses",
    "MoodState",
    "QuickPattern",
    "QuickResponseRouter",
    "Reminder",
    "ReminderQueue",
    "ResourceState",
    "apply_mood_modifiers",
    "budget_aware_params",
]
