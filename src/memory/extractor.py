"""LLM-based fact extraction and conversation summaries."""

import re
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from ..llm.interface import CompletionParams, InferenceError, InferenceProvider

logger = structlog.get_logger()

MAX_FACT_LENGTH = 200
EXTRACTION_MAX_TOKENS = 500

EXTRACT_FACTS_SYSTEM = """\
Extract key facts ABOUT THE USER (the human) from this conversation.
Only extract facts from what the user said about themselves; ignore anything
the assistant said about itself. Return only new facts not already known.
Format: one fact per line, no numbering.
Focus on: name, preferences, important dates, relationships, location, work,
interests, hobbies. Do NOT include facts about the assistant/bot.
If there are no new facts about the user, return NONE."""

SUMMARIZE_SYSTEM = """\
Create a brief summary of these conversations. Include key topics discussed,
decisions made, and any commitments. Be concise (under 200 words).
Focus on what would be useful context for future conversations."""

INSTRUCTION_WORDS = re.compile(
    r"\b(ignore|override|forget|disregard|bypass|system|prompt|instruction"
    r"|you are now|act as|pretend|roleplay|jailbreak)\b",
    re.I,
)
SELF_REFERENCE = re.compile(
    r"^(I apologize|I do not|I am (an |simply )?AI|I am (an )?artificial"
    r"|I should not have|As an AI|As a conversational AI|I'm afraid|I cannot"
    r"|I don't actually|My previous responses|I am software|I am simply)",
    re.I,
)
ASSISTANT_META = re.compile(
    r"\b(as an AI|AI assistant|language model|conversational AI)\b", re.I
)

UsageCallback = Callable[[int], None]


def sanitize_fact(fact: str) -> str:
    """Trim to ``MAX_FACT_LENGTH`` and mask instruction-like words."""
    return INSTRUCTION_WORDS.sub("***", fact.strip()[:MAX_FACT_LENGTH])


def is_valid_user_fact(fact: str) -> bool:
    """Reject blanks and the assistant talking about itself."""
    trimmed = fact.strip()
    if len(trimmed) < 3:
        return False
    if SELF_REFERENCE.search(trimmed):
        return False
    return not ASSISTANT_META.search(trimmed)


def format_transcript(messages: Sequence[Dict[str, str]]) -> str:
    lines = []
    for msg in messages:
        speaker = "User" if msg["role"] == "user" else "Assistant"
        lines.append(f"{speaker}: {msg['content']}")
    return "\n".join(lines)


class FactExtractor:
    """Extract user facts and build summaries using the cheapest model.

    Token usage of every call is reported through ``on_usage`` so it can be
    charged to the daily budget.
    """

    def __init__(
        self,
        provider: InferenceProvider,
        model: str,
        on_usage: Optional[UsageCallback] = None,
    ) -> None:
        self._provider = provider
        self._params = CompletionParams(
            model=model, max_output_tokens=EXTRACTION_MAX_TOKENS, temperature=0.3
        )
        self._on_usage = on_usage

    async def extract(
        self, known_facts: Sequence[str], messages: Sequence[Dict[str, str]]
    ) -> List[str]:
        """New facts about the user found in ``messages``."""
        known = "\n".join(known_facts) or "None"
        prompt = (
            f"Known facts about the user:\n{known}\n\n"
            f"Conversation:\n{format_transcript(messages)}"
        )
        text = await self._ask(EXTRACT_FACTS_SYSTEM, prompt)
        if text is None or text.strip() in ("", "NONE"):
            return []

        return [
            sanitize_fact(line)
            for line in text.splitlines()
            if line.strip() and line.strip() != "NONE" and is_valid_user_fact(line)
        ]

    async def summarize(
        self, previous: Optional[str], messages: Sequence[Dict[str, str]]
    ) -> Optional[str]:
        """Fold ``messages`` into the previous summary."""
        transcript = "\n".join(f"{m['role']}: {m['content']}" for m in messages)
        prompt = f"New messages:\n{transcript}"
        if previous:
            prompt = f"Previous summary:\n{previous}\n\n{prompt}"

        text = await self._ask(SUMMARIZE_SYSTEM, prompt)
        return text.strip() if text and text.strip() else None

    async def _ask(self, system: str, prompt: str) -> Optional[str]:
        try:
            result = await self._provider.complete(
                system, [{"role": "user", "content": prompt}], self._params
            )
        except InferenceError as exc:
            logger.warning("Memory extraction call failed", error=str(exc))
            return None

        if self._on_usage:
            self._on_usage(result.total_tokens)
        return result.text
