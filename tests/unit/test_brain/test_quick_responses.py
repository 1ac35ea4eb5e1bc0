"""Tests for the quick response router."""

import re
from datetime import timedelta

import pytest

from src.brain.quick_responses import (
    BREATH_MESSAGE,
    EXHAUSTED_MESSAGE,
    GREETING_RESPONSES,
    HOW_ARE_YOU_RESPONSES,
    THANKS_RESPONSES,
    QuickPattern,
    QuickResponseRouter,
    format_delay,
    parse_reminder_request,
)


class TestGuards:
    """Tests for the stress and budget guards."""

    def test_stress_guard_wins(self, brain):
        """High stress answers with a breath and relieves some stress."""
        brain.mood.stress = 85
        router = QuickResponseRouter(brain)

        assert router.respond("42", "hello") == BREATH_MESSAGE
        assert brain.mood.stress == 75

    def test_stress_guard_beats_exhausted(self, brain):
        """The stress guard runs before the budget check."""
        brain.mood.stress = 90
        brain.budget.used = brain.budget.budget
        assert QuickResponseRouter(brain).respond("42", "explain rust") == BREATH_MESSAGE

    def test_pattern_beats_exhausted(self, brain):
        """Quick answers still work after the budget is spent."""
        brain.budget.used = brain.budget.budget
        router = QuickResponseRouter(brain)
        assert router.respond("42", "hi!") in GREETING_RESPONSES

    def test_exhausted_without_match(self, brain):
        """Unmatched text after the budget is spent gets the exhausted notice."""
        brain.budget.used = brain.budget.budget
        router = QuickResponseRouter(brain)
        assert router.respond("42", "explain quantum physics") == EXHAUSTED_MESSAGE

    def test_falls_through_under_budget(self, brain):
        """Unmatched text under budget is left for the provider."""
        router = QuickResponseRouter(brain)
        assert router.respond("42", "explain quantum physics") is None


class TestPatterns:
    """Tests for the default quick patterns."""

    def test_greeting_costs_energy(self, brain):
        """A quick answer costs one point of energy."""
        assert QuickResponseRouter(brain).respond("42", "Hello") in GREETING_RESPONSES
        assert brain.mood.energy == 99

    def test_thanks(self, brain):
        """Thanks gets a short acknowledgement."""
        assert QuickResponseRouter(brain).respond("42", "thank you!") in THANKS_RESPONSES

    def test_time(self, brain):
        """Time is reported in the deployment timezone."""
        assert QuickResponseRouter(brain).respond("42", "what time is it?") == "It's 14:30 🕐"

    def test_date(self, brain):
        """Date is spelled out with the weekday."""
        response = QuickResponseRouter(brain).respond("42", "what day is it")
        assert response == "It's Sunday, October 18, 2026 📅"

    def test_how_are_you_follows_mood(self, brain):
        """The answer pool matches the mood label."""
        brain.mood.energy = 10
        response = QuickResponseRouter(brain).respond("42", "how are you?")
        assert response in HOW_ARE_YOU_RESPONSES["tired"]

    def test_repeat_without_history(self, brain):
        """Nothing to repeat yet."""
        response = QuickResponseRouter(brain).respond("42", "what did you say")
        assert response == "I haven't said anything yet in this conversation!"

    def test_repeat_last_response(self, brain):
        """The last reply for the conversation is quoted back."""
        brain.last_responses.set("42", "Paris is the capital.")
        response = QuickResponseRouter(brain).respond("42", "say that again")
        assert response == 'I said: "Paris is the capital."'

    def test_reminder_is_scheduled(self, brain, clock):
        """Reminder requests are queued relative to the clock."""
        response = QuickResponseRouter(brain).respond(
            "42", "remind me in 5 minutes to stretch"
        )
        assert response == "⏰ Got it! I'll remind you in 5 minutes to: stretch"
        (reminder,) = brain.reminders.pending
        assert reminder.conversation_id == "42"
        assert reminder.message == "stretch"
        assert reminder.due_at == clock.now + timedelta(minutes=5)

    def test_reminder_in_hours(self, brain):
        """Hours are converted to minutes."""
        response = QuickResponseRouter(brain).respond(
            "42", "remind me in 2 hours to call mom"
        )
        assert response == "⏰ Got it! I'll remind you in 2 hours to: call mom"
        assert brain.reminders.pending[0].due_at - brain.now() == timedelta(hours=2)

    def test_handler_returning_none_falls_through(self, brain):
        """A matched handler that declines lets the next entry answer."""
        patterns = [
            QuickPattern("decline", (re.compile("x"),), lambda ctx, q: None),
            QuickPattern("accept", (re.compile("x"),), lambda ctx, q: "second"),
        ]
        router = QuickResponseRouter(brain, patterns=patterns)
        assert router.respond("42", "x") == "second"


class TestReminderParsing:
    """Tests for parse_reminder_request and format_delay."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("remind me in 10 min to check the oven", (10, "check the oven")),
            ("Remind me in 1 hour to leave", (60, "leave")),
            ("remind me in 3h take pills", (180, "take pills")),
        ],
    )
    def test_parses(self, text, expected):
        """Amount, unit and task are extracted."""
        assert parse_reminder_request(text) == expected

    @pytest.mark.parametrize(
        "text", ["remind me later to stretch", "remind me in 5 parsecs to go"]
    )
    def test_rejects(self, text):
        """Unparseable requests return None."""
        assert parse_reminder_request(text) is None

    @pytest.mark.parametrize(
        "minutes,expected",
        [(1, "1 minute"), (45, "45 minutes"), (60, "1 hour"), (90, "1 hour 30 minutes")],
    )
    def test_format_delay(self, minutes, expected):
        """Delays read naturally."""
        assert format_delay(minutes) == expected
