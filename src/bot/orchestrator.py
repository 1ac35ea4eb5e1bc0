"""Message orchestrator -- single entry point for all Telegram updates.

Text goes through commands, then quick responses, then the conversation
service. Shared contacts attach recipients to the event awaiting a tag.
"""

from typing import Any, Callable, Dict, Optional

import structlog
from telegram import BotCommand, Update
from telegram.constants import ChatAction
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from ..calendar.models import TaggedRecipient
from ..config.settings import Settings
from ..llm.interface import InferenceError
from .chat_awareness import ChatAwareness, contact_name, truncate_message

logger = structlog.get_logger()

ERROR_STRESS = 10.0
APOLOGY_MESSAGE = "😵 Sorry, something went wrong on my side. Please try again in a moment."
PROVIDER_APOLOGY_MESSAGE = "😵 Sorry, I couldn't reach my brain just now. Please try again shortly."


class MessageOrchestrator:
    """Routes Telegram updates to commands, quick responses and chat."""

    def __init__(self, settings: Settings, deps: Dict[str, Any]):
        self.settings = settings
        self.deps = deps

    def _inject_deps(self, handler: Callable) -> Callable:  # type: ignore[type-arg]
        """Wrap handler to inject dependencies into context.bot_data."""

        async def wrapped(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
            for key, value in self.deps.items():
                context.bot_data[key] = value
            context.bot_data["settings"] = self.settings
            await handler(update, context)

        return wrapped

    def register_handlers(self, app: Application) -> None:
        """Text (commands included) and contact shares."""
        app.add_handler(
            MessageHandler(filters.TEXT, self._inject_deps(self.handle_text))
        )
        app.add_handler(
            MessageHandler(filters.CONTACT, self._inject_deps(self.handle_contact))
        )
        app.add_error_handler(self.error_handler)

    async def get_bot_commands(self) -> list:  # type: ignore[type-arg]
        return [
            BotCommand("help", "Show available commands"),
            BotCommand("status", "Mood and token budget"),
            BotCommand("clear", "Clear conversation history"),
            BotCommand("remember", "Show what I remember about you"),
            BotCommand("forget", "Clear my memory of you"),
            BotCommand("calendar", "Show all events"),
            BotCommand("event", "Add, remove or tag events"),
            BotCommand("skip", "Stop tagging contacts"),
        ]

    def is_allowed(self, user_id: Optional[int]) -> bool:
        """Empty allow-list means everyone."""
        allow_list = self.settings.allow_list
        if not allow_list:
            return True
        return user_id is not None and str(user_id) in allow_list

    def _awareness(self, context: ContextTypes.DEFAULT_TYPE) -> ChatAwareness:
        username = self.settings.telegram_bot_username
        if not username and context.bot is not None:
            username = context.bot.username or ""
        return ChatAwareness(username, self.settings.bot_name_aliases)

    async def handle_text(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Answer a text message."""
        message = update.effective_message
        user = update.effective_user
        if not message or not message.text or not update.effective_chat:
            return

        user_id = user.id if user else None
        if not self.is_allowed(user_id):
            logger.warning("Blocked sender", user_id=user_id)
            return

        awareness = self._awareness(context)
        chat_ctx = awareness.analyze(update)
        if not awareness.should_respond(chat_ctx):
            return

        conversation_id = str(update.effective_chat.id)
        sender_id = str(user_id) if user_id is not None else conversation_id
        text = truncate_message(
            awareness.strip_mention(message.text), self.settings.max_message_length
        )
        if not text:
            return

        logger.info(
            "Text message",
            conversation_id=conversation_id,
            user_id=user_id,
            message_length=len(text),
        )

        brain = context.bot_data["brain"]
        try:
            response = await self._respond(conversation_id, sender_id, text, context)
        except InferenceError as exc:
            logger.warning(
                "Reply failed, provider error",
                conversation_id=conversation_id,
                error=str(exc),
            )
            brain.mood.adjust(stress=ERROR_STRESS)
            response = PROVIDER_APOLOGY_MESSAGE
        except Exception as exc:
            logger.exception(
                "Reply failed", conversation_id=conversation_id, error=str(exc)
            )
            brain.mood.adjust(stress=ERROR_STRESS)
            response = APOLOGY_MESSAGE

        if not response:
            return

        brain.last_responses.set(conversation_id, response)
        await context.bot_data["channel"].send(conversation_id, response)

    async def _respond(
        self,
        conversation_id: str,
        sender_id: str,
        text: str,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> Optional[str]:
        commands = context.bot_data["commands"]
        response = commands.handle(conversation_id, sender_id, text)
        if response is not None:
            return response

        response = context.bot_data["quick_router"].respond(conversation_id, text)
        if response is not None:
            return response

        try:
            await context.bot.send_chat_action(
                chat_id=int(conversation_id), action=ChatAction.TYPING
            )
        except TelegramError as exc:
            logger.debug("Typing indicator failed", error=str(exc))

        return await context.bot_data["conversation"].chat(conversation_id, text)

    async def handle_contact(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Tag a shared contact to the event awaiting one."""
        message = update.effective_message
        user = update.effective_user
        if not message or not message.contact or not update.effective_chat:
            return
        if not self.is_allowed(user.id if user else None):
            logger.warning("Blocked sender", user_id=user.id if user else None)
            return

        conversation_id = str(update.effective_chat.id)
        brain = context.bot_data["brain"]
        pending = context.bot_data["pending_tags"]
        event_id = pending.consume(conversation_id, brain.now())
        if event_id is None:
            return

        reply = self._tag_contact(conversation_id, event_id, message.contact, context)
        await context.bot_data["channel"].send(conversation_id, reply)

    def _tag_contact(
        self,
        conversation_id: str,
        event_id: str,
        contact: Any,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> str:
        calendar = context.bot_data["calendar"]
        event = calendar.get_event(event_id)
        if event is None:
            return f"Event {event_id} no longer exists."

        # Keep tagging until the user sends /skip or the tag expires
        brain = context.bot_data["brain"]
        context.bot_data["pending_tags"].set(conversation_id, event_id, brain.now())

        name = contact_name(contact.first_name, contact.last_name)
        if contact.user_id is None:
            return f"Could not tag {name}: they are not on Telegram. Skipping."

        added = calendar.tag_recipients(
            event_id,
            [TaggedRecipient(recipient_id=str(contact.user_id), name=name)],
        )
        if not added:
            return f'{name} is already tagged to "{event.title}".'

        names = ", ".join(r.name for r in added)
        return (
            f'👤 Tagged {names} to "{event.title}"!\n\n'
            "Send another contact to tag more, or /skip to finish."
        )

    async def error_handler(
        self, update: object, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        logger.error("Unhandled update error", error=str(context.error))
