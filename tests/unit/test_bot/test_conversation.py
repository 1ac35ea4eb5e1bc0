"""Tests for the budget-aware conversation service."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.bot.conversation import (
    COOLING_DOWN_MESSAGE,
    DEFAULT_PERSONA,
    ConversationService,
    PersonaLoader,
)
from src.brain.quick_responses import EXHAUSTED_MESSAGE
from src.llm.interface import CompletionResult, InferenceError
from src.memory.extractor import FactExtractor
from src.memory.manager import MemoryManager
from src.sessions.store import SessionStore
from src.storage.json_store import JsonStore


def _result(text: str = "Sure thing.", input_tokens: int = 300, output_tokens: int = 200):
    return CompletionResult(
        text=text,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        model="big-model",
    )


@pytest.fixture
def provider():
    mock = MagicMock()
    mock.complete = AsyncMock(return_value=_result())
    return mock


@pytest.fixture
def sessions(clock):
    storage = MagicMock(spec=JsonStore)
    storage.read_json.return_value = None
    return SessionStore(storage, max_history=50, flush_delay=60, clock=clock)


@pytest.fixture
def service(brain, sessions, provider):
    return ConversationService(brain, sessions, provider, bot_name="Budgie")


class TestChat:
    """Tests for a successful provider round trip."""

    async def test_reply_charges_budget_and_energy(self, service, brain, sessions, provider):
        """Tokens are charged and both turns are recorded."""
        reply = await service.chat("42", "What's a good name for a cat?")

        assert reply == "Sure thing."
        assert brain.budget.used == 500
        assert brain.mood.energy == 99
        assert sessions.history("42") == [
            {"role": "user", "content": "What's a good name for a cat?"},
            {"role": "assistant", "content": "Sure thing."},
        ]

        system_prompt, history, params = provider.complete.await_args.args
        assert system_prompt.startswith("You are Budgie, a personal AI assistant.")
        assert history[-1] == {"role": "user", "content": "What's a good name for a cat?"}
        assert params.model == "big-model"
        assert params.max_output_tokens == 4096
        assert params.use_tools is True

    async def test_tool_rounds_are_charged(self, service, brain, provider):
        """Usage summed over tool rounds is charged in full."""
        result = _result(input_tokens=700, output_tokens=100)
        result.tool_calls = 2
        provider.complete.return_value = result

        await service.chat("42", "Any news about the launch?")

        assert brain.budget.used == 800
        assert brain.mood.energy == 98

    async def test_energy_cost_is_capped(self, service, brain, provider):
        """Huge replies cost at most ten energy."""
        provider.complete.return_value = _result(input_tokens=9000, output_tokens=1000)
        brain.budget.budget = 100_000
        await service.chat("42", "Write me an essay")
        assert brain.mood.energy == 90

    async def test_critical_band_narrows_request(self, service, brain, sessions, provider):
        """Near the budget the cheap model and a short history are used."""
        for i in range(10):
            sessions.append("42", "user", f"old {i}")
        brain.budget.used = 950

        await service.chat("42", "quick question")

        _, history, params = provider.complete.await_args.args
        assert params.model == "small-model"
        assert params.max_output_tokens == 500
        assert len(history) == 5
        assert history[-1]["content"] == "quick question"

    async def test_idle_raises_curiosity(self, service, brain, clock):
        """Messages after a quiet spell make the bot curious."""
        clock.advance(minutes=6)
        await service.chat("42", "hello again")
        assert brain.mood.curiosity == 60
        assert brain.resources.idle_since == clock.now

    async def test_success_resets_error_count(self, service, brain):
        """A good call clears the error streak."""
        brain.resources.api_errors = 3
        await service.chat("42", "hi there friend")
        assert brain.resources.api_errors == 0


class TestGuards:
    """Tests for calls that never reach the provider."""

    async def test_blocked_when_budget_spent(self, service, brain, sessions, provider):
        """A spent budget returns the exhausted notice."""
        brain.budget.used = brain.budget.budget

        assert await service.chat("42", "tell me a story") == EXHAUSTED_MESSAGE
        provider.complete.assert_not_awaited()
        assert sessions.history("42") == []

    async def test_cooldown(self, service, brain, clock, provider):
        """During a provider cooldown the call is skipped."""
        brain.resources.cooldown_until = clock.now + timedelta(seconds=30)

        assert await service.chat("42", "tell me a story") == COOLING_DOWN_MESSAGE
        provider.complete.assert_not_awaited()


class TestProviderErrors:
    """Tests for failure bookkeeping."""

    async def test_error_raises_stress(self, service, brain, provider):
        """Failures add stress and are re-raised."""
        provider.complete.side_effect = InferenceError("boom")

        with pytest.raises(InferenceError):
            await service.chat("42", "tell me a story")

        assert brain.mood.stress == 15
        assert brain.resources.api_errors == 1
        assert brain.resources.cooldown_until is None
        assert brain.budget.used == 0

    async def test_rate_limit_sets_cooldown(self, service, brain, clock, provider):
        """Rate limits add extra stress and honour Retry-After."""
        provider.complete.side_effect = InferenceError(
            "slow down", retry_after=20, is_rate_limit=True
        )

        with pytest.raises(InferenceError):
            await service.chat("42", "tell me a story")

        assert brain.mood.stress == 35
        assert brain.resources.cooldown_until == clock.now + timedelta(seconds=20)

    async def test_cooldown_starts_when_failure_is_seen(self, service, brain, clock, provider):
        """Time spent inside the provider call does not eat the cooldown."""

        async def slow_rate_limit(*args):
            clock.advance(seconds=40)
            raise InferenceError("slow down", retry_after=30, is_rate_limit=True)

        provider.complete.side_effect = slow_rate_limit

        with pytest.raises(InferenceError):
            await service.chat("42", "tell me a story")

        assert brain.resources.cooldown_until == clock.now + timedelta(seconds=30)
        assert brain.resources.in_cooldown(clock.now)
        assert await service.chat("42", "again?") == COOLING_DOWN_MESSAGE

    async def test_cooldown_is_never_shortened(self, service, brain, clock, provider):
        """A shorter Retry-After leaves a longer window from another call in place."""
        longer = clock.now + timedelta(minutes=2)

        async def overlapping_failure(*args):
            brain.resources.cooldown_until = longer
            raise InferenceError("slow down", retry_after=10, is_rate_limit=True)

        provider.complete.side_effect = overlapping_failure

        with pytest.raises(InferenceError):
            await service.chat("42", "tell me a story")

        assert brain.resources.cooldown_until == longer

    async def test_rate_limit_without_hint(self, service, brain, provider):
        """No Retry-After means no cooldown."""
        provider.complete.side_effect = InferenceError("slow down", is_rate_limit=True)

        with pytest.raises(InferenceError):
            await service.chat("42", "tell me a story")

        assert brain.resources.cooldown_until is None


class TestSystemPrompt:
    """Tests for prompt assembly."""

    def test_includes_persona_and_memory(self, brain, sessions, provider, tmp_path, clock):
        """Persona file and memory context are added."""
        (tmp_path / "persona.md").write_text("## Personality\n- Loves puns", encoding="utf-8")
        memory = MagicMock(spec=MemoryManager)
        memory.format_for_prompt.return_value = "## What you remember about this user"
        service = ConversationService(
            brain, sessions, provider, memory=memory, persona=PersonaLoader(tmp_path)
        )

        prompt = service.build_system_prompt("42", clock.now)

        assert "- Loves puns" in prompt
        assert "## What you remember about this user" in prompt
        assert "- Time: 2026-10-18T14:30:00+00:00" in prompt
        memory.format_for_prompt.assert_called_once_with("42")

    def test_default_persona(self, service, clock):
        """Without a persona loader the default personality is used."""
        assert DEFAULT_PERSONA in service.build_system_prompt("42", clock.now)


class TestMemoryUpdates:
    """Tests for background memory updates."""

    async def test_update_scheduled_after_reply(self, brain, sessions, provider):
        """The full history is handed to the memory manager."""
        memory = MagicMock(spec=MemoryManager)
        memory.format_for_prompt.return_value = ""
        memory.update_if_needed = AsyncMock()
        service = ConversationService(brain, sessions, provider, memory=memory)

        await service.chat("42", "I live in Lisbon")
        await asyncio.sleep(0)

        conversation_id, messages = memory.update_if_needed.await_args.args
        assert conversation_id == "42"
        assert [m.content for m in messages] == ["I live in Lisbon", "Sure thing."]
        assert memory.update_if_needed.await_args.kwargs == {"total": 2, "previous": 0}

    async def test_counts_keep_growing_past_history_cap(self, brain, clock, provider):
        """Trimmed sessions still report the running totals."""
        storage = MagicMock(spec=JsonStore)
        storage.read_json.return_value = None
        sessions = SessionStore(storage, max_history=4, flush_delay=60, clock=clock)
        memory = MagicMock(spec=MemoryManager)
        memory.format_for_prompt.return_value = ""
        memory.update_if_needed = AsyncMock()
        brain.budget.budget = 100_000
        service = ConversationService(brain, sessions, provider, memory=memory)

        for i in range(4):
            await service.chat("42", f"message {i}")
            await asyncio.sleep(0)

        totals = [
            (call.kwargs["total"], call.kwargs["previous"])
            for call in memory.update_if_needed.await_args_list
        ]
        assert totals == [(2, 0), (4, 2), (6, 4), (8, 6)]
        assert len(memory.update_if_needed.await_args.args[1]) == 4

    async def test_long_conversation_extracts_every_tenth_message(
        self, brain, clock, provider, tmp_path
    ):
        """With a small history cap facts are still extracted only every ten messages."""
        sessions = SessionStore(JsonStore(tmp_path), max_history=4, flush_delay=60, clock=clock)
        extractor = MagicMock(spec=FactExtractor)
        extractor.extract = AsyncMock(return_value=[])
        extractor.summarize = AsyncMock(return_value=None)
        brain.budget.budget = 100_000
        service = ConversationService(
            brain, sessions, provider, memory=MemoryManager(JsonStore(tmp_path), extractor)
        )

        for i in range(12):
            await service.chat("42", f"message {i}")
            await asyncio.sleep(0)

        # 24 messages seen: multiples of ten crossed at 10 and 20
        assert extractor.extract.await_count == 2

    async def test_update_failure_is_contained(self, brain, sessions, provider):
        """Memory errors never reach the caller."""
        memory = MagicMock(spec=MemoryManager)
        memory.format_for_prompt.return_value = ""
        memory.update_if_needed = AsyncMock(side_effect=RuntimeError("disk"))
        service = ConversationService(brain, sessions, provider, memory=memory)

        assert await service.chat("42", "I live in Lisbon") == "Sure thing."
        await asyncio.sleep(0)


class TestPersonaLoader:
    """Tests for PersonaLoader."""

    def test_missing_file(self, tmp_path):
        """No file means the default persona."""
        assert PersonaLoader(tmp_path).load() == DEFAULT_PERSONA

    def test_cached_within_ttl(self, tmp_path):
        """Edits are picked up only after the cache expires."""
        path = tmp_path / "persona.md"
        path.write_text("first", encoding="utf-8")
        cached = PersonaLoader(tmp_path, ttl=3600)
        assert cached.load() == "first"

        path.write_text("second", encoding="utf-8")
        assert cached.load() == "first"
        assert PersonaLoader(tmp_path, ttl=0).load() == "second"
