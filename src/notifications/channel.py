"""Outbound Telegram delivery for replies, reminders and digests."""

from typing import List

import structlog
from telegram import Bot
from telegram.constants import MessageLimit
from telegram.error import TelegramError

logger = structlog.get_logger()

MAX_CHUNK = MessageLimit.MAX_TEXT_LENGTH


def split_message(text: str, limit: int = MAX_CHUNK) -> List[str]:
    """Split text into chunks of at most ``limit`` characters.

    Prefers breaking at the last newline inside each window.
    """
    chunks: List[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining or not chunks:
        chunks.append(remaining)
    return chunks


class TelegramChannel:
    """Messaging channel backed by the Bot API."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send(self, conversation_id: str, text: str) -> None:
        """Send ``text`` to a chat. Raises TelegramError on failure."""
        for chunk in split_message(text):
            try:
                await self.bot.send_message(chat_id=int(conversation_id), text=chunk)
            except TelegramError as exc:
                logger.error(
                    "Failed to send message",
                    conversation_id=conversation_id,
                    error=str(exc),
                )
                raise
