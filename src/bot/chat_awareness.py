"""Multi-chat awareness -- understand chat type and bot trigger context."""

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from telegram import Update


@dataclass
class ChatContext:
    """Context extracted from a Telegram update."""

    chat_id: int
    chat_type: str  # "private" | "group" | "supergroup"
    is_private: bool
    is_group: bool
    bot_mentioned: bool
    is_reply_to_bot: bool
    alias_mentioned: bool
    user_id: int


class ChatAwareness:
    """Decide whether the bot was addressed and clean up the message text."""

    def __init__(self, bot_username: str, aliases: Sequence[str] = ()) -> None:
        self.bot_username = bot_username.lstrip("@")
        self.aliases = [a for a in aliases if a]
        self._mention = (
            re.compile(rf"@{re.escape(self.bot_username)}\b", re.I)
            if self.bot_username
            else None
        )
        self._alias = (
            re.compile(
                r"\b(" + "|".join(re.escape(a) for a in self.aliases) + r")\b", re.I
            )
            if self.aliases
            else None
        )

    def analyze(self, update: Update) -> ChatContext:
        """Extract chat context from a Telegram update."""
        chat = update.effective_chat
        message = update.effective_message
        user = update.effective_user

        chat_id = chat.id if chat else 0
        chat_type = getattr(chat, "type", "private") if chat else "private"
        text = (message.text or "") if message else ""

        bot_mentioned = bool(self._mention and self._mention.search(text))

        if not bot_mentioned and message and message.entities and self.bot_username:
            for entity in message.entities:
                if entity.type != "mention":
                    continue
                mention_text = text[entity.offset : entity.offset + entity.length]
                if mention_text.lower() == f"@{self.bot_username.lower()}":
                    bot_mentioned = True
                    break

        is_reply_to_bot = False
        if message and message.reply_to_message and self.bot_username:
            reply_from = message.reply_to_message.from_user
            if reply_from and reply_from.username:
                is_reply_to_bot = (
                    reply_from.username.lower() == self.bot_username.lower()
                )

        return ChatContext(
            chat_id=chat_id,
            chat_type=chat_type,
            is_private=chat_type == "private",
            is_group=chat_type in ("group", "supergroup"),
            bot_mentioned=bot_mentioned,
            is_reply_to_bot=is_reply_to_bot,
            alias_mentioned=bool(self._alias and self._alias.search(text)),
            user_id=user.id if user else 0,
        )

    def should_respond(self, ctx: ChatContext) -> bool:
        """Private chats always; groups only when addressed."""
        if ctx.is_private:
            return True
        return ctx.bot_mentioned or ctx.is_reply_to_bot or ctx.alias_mentioned

    def strip_mention(self, text: str) -> str:
        """Remove ``@botname`` from the text."""
        if not self._mention:
            return text.strip()
        return re.sub(r"\s{2,}", " ", self._mention.sub("", text)).strip()


def truncate_message(text: str, max_length: int) -> str:
    """Cap inbound text at ``max_length`` characters."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "... (truncated)"


def contact_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    name = " ".join(part for part in (first_name, last_name) if part)
    return name or "Unknown"
