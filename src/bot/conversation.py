"""Conversation service -- one provider-backed reply per inbound message."""

import asyncio
import math
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Set

import structlog

from ..brain.context import BrainContext
from ..brain.mood import apply_mood_modifiers
from ..brain.quick_responses import EXHAUSTED_MESSAGE
from ..llm.interface import CompletionParams, InferenceError, InferenceProvider
from ..memory.manager import MemoryManager
from ..sessions.models import Session, SessionMessage
from ..sessions.store import SessionStore

logger = structlog.get_logger()

COOLING_DOWN_MESSAGE = "⏳ I'm cooling down for a moment. Try again shortly!"

IDLE_THRESHOLD = timedelta(minutes=5)
IDLE_CURIOSITY_BOOST = 10.0
ERROR_STRESS = 15.0
RATE_LIMIT_STRESS = 20.0
MAX_ENERGY_COST = 10
TOKENS_PER_ENERGY = 500
BUDGET_WARNING_RATIO = 0.9

PERSONA_FILE = "persona.md"
PERSONA_CACHE_SECONDS = 60.0

DEFAULT_PERSONA = """\
## Personality
- Helpful, direct, and efficient
- You run on a daily token budget, so you appreciate brevity
- You remember context from the conversation"""

SYSTEM_PROMPT_TEMPLATE = """\
You are {bot_name}, a personal AI assistant. You communicate via Telegram.

{persona}

## Capabilities
- Answer questions and have conversations
- Help with tasks, planning, and problem-solving
- Set reminders ("remind me in 30 min to call mom")
- Manage a shared calendar with daily/weekly event digests

## Commands (users type these)
- /help - Show all commands
- /calendar - Show all events
- /event add daily HH:MM Title - Add daily recurring event
- /event add weekly Mon HH:MM Title - Add weekly event
- /event add once YYYY-MM-DD HH:MM Title - Add one-time event
- /event remove <id> - Remove an event
- /event tag <id> - Tag a contact to an event (then share a contact)
- /event digest daily HH:MM - Set daily digest time
- /event digest weekly Day HH:MM - Set weekly digest time
- /status - Show bot status
- /remember - Show stored memories
- /forget - Clear memories
- /clear - Clear conversation history

## Guidelines
- Keep responses concise for mobile reading
- Use markdown sparingly
- If asked what you can do, mention your key capabilities and suggest /help
- Be warm but not overly effusive
- If you don't know something, say so

## Current Context
- Platform: Telegram
- Time: {now}
"""


class PersonaLoader:
    """Reads ``persona.md`` from the workspace, re-checking once a minute."""

    def __init__(self, workspace_dir: Path, ttl: float = PERSONA_CACHE_SECONDS) -> None:
        self.path = Path(workspace_dir) / PERSONA_FILE
        self.ttl = ttl
        self._content: Optional[str] = None
        self._loaded_at: Optional[float] = None

    def load(self) -> str:
        now = time.monotonic()
        if self._loaded_at is not None and now - self._loaded_at < self.ttl:
            return self._content or DEFAULT_PERSONA

        try:
            self._content = self.path.read_text(encoding="utf-8").strip() or None
            logger.debug("Persona loaded", path=str(self.path))
        except FileNotFoundError:
            self._content = None
        except OSError as exc:
            logger.warning("Failed to read persona", path=str(self.path), error=str(exc))
            self._content = None
        self._loaded_at = now
        return self._content or DEFAULT_PERSONA


class ConversationService:
    """Budget-aware chat against the inference provider."""

    def __init__(
        self,
        ctx: BrainContext,
        sessions: SessionStore,
        provider: InferenceProvider,
        memory: Optional[MemoryManager] = None,
        persona: Optional[PersonaLoader] = None,
        bot_name: str = "Budgetbot",
    ) -> None:
        self.ctx = ctx
        self.sessions = sessions
        self.provider = provider
        self.memory = memory
        self.persona = persona
        self.bot_name = bot_name
        self._background: Set["asyncio.Task[None]"] = set()

    def build_system_prompt(self, conversation_id: str, now: datetime) -> str:
        persona = self.persona.load() if self.persona else DEFAULT_PERSONA
        prompt = SYSTEM_PROMPT_TEMPLATE.format(
            bot_name=self.bot_name,
            persona=persona,
            now=now.astimezone(self.ctx.tz).isoformat(timespec="seconds"),
        )
        if self.memory:
            memory_context = self.memory.format_for_prompt(conversation_id)
            if memory_context:
                prompt = f"{prompt}\n{memory_context}\n"
        return prompt

    async def chat(self, conversation_id: str, text: str) -> str:
        """Produce the assistant's reply to ``text``.

        Raises:
            InferenceError: When the provider call fails; mood and resource
                state are updated before re-raising.
        """
        ctx = self.ctx
        params = ctx.params()
        if params.should_block:
            logger.info("Budget exhausted, blocking call", conversation_id=conversation_id)
            return EXHAUSTED_MESSAGE

        now = ctx.now()
        if ctx.resources.in_cooldown(now):
            logger.info("Provider cooling down", conversation_id=conversation_id)
            return COOLING_DOWN_MESSAGE

        self.sessions.append(conversation_id, "user", text)
        history = self.sessions.history(conversation_id, limit=params.max_history)

        if now - ctx.resources.idle_since > IDLE_THRESHOLD:
            ctx.mood.adjust(curiosity=IDLE_CURIOSITY_BOOST)
        ctx.resources.idle_since = now

        system_prompt = self.build_system_prompt(conversation_id, now)

        try:
            result = await self.provider.complete(
                system_prompt,
                history,
                CompletionParams(
                    model=params.model,
                    max_output_tokens=params.max_output_tokens,
                    use_tools=True,
                ),
            )
        except InferenceError as exc:
            self._record_failure(exc)
            raise

        tokens = result.total_tokens
        ctx.budget.charge(tokens)
        ctx.mood.adjust(energy=-min(MAX_ENERGY_COST, math.ceil(tokens / TOKENS_PER_ENERGY)))
        ctx.resources.api_errors = 0

        ratio = ctx.usage_ratio
        if ratio >= BUDGET_WARNING_RATIO:
            logger.warning(
                "Token budget running out",
                used=ctx.budget.used,
                budget=ctx.budget.budget,
                ratio=round(ratio, 3),
            )

        reply = apply_mood_modifiers(result.text, ctx.mood, ctx.rng)
        session = self.sessions.append(conversation_id, "assistant", reply)

        logger.info(
            "Chat reply",
            conversation_id=conversation_id,
            model=result.model,
            tokens=tokens,
            tool_calls=result.tool_calls,
        )
        self._schedule_memory_update(conversation_id, session)
        return reply

    def _record_failure(self, exc: InferenceError) -> None:
        resources = self.ctx.resources
        resources.api_errors += 1
        self.ctx.mood.adjust(stress=ERROR_STRESS)

        if exc.is_rate_limit:
            self.ctx.mood.adjust(stress=RATE_LIMIT_STRESS)
            if exc.retry_after is not None:
                # Starts when the failure is seen; an active window is only extended
                until = self.ctx.now() + timedelta(seconds=exc.retry_after)
                if resources.cooldown_until is None or until > resources.cooldown_until:
                    resources.cooldown_until = until

        logger.error(
            "Provider error",
            api_errors=resources.api_errors,
            rate_limited=exc.is_rate_limit,
            retry_after=exc.retry_after,
            error=str(exc),
        )

    def _schedule_memory_update(self, conversation_id: str, session: Session) -> None:
        if not self.memory:
            return
        previous = session.memory_checked
        session.memory_checked = session.total_messages
        task = asyncio.create_task(
            self._update_memory(
                conversation_id,
                list(session.messages),
                session.total_messages,
                previous,
            )
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _update_memory(
        self,
        conversation_id: str,
        messages: List[SessionMessage],
        total: int,
        previous: int,
    ) -> None:
        try:
            await self.memory.update_if_needed(
                conversation_id, messages, total=total, previous=previous
            )
        except Exception as exc:
            logger.error(
                "Background memory update failed",
                conversation_id=conversation_id,
                error=str(exc),
            )
