"""Application entrypoint: load settings, wire components, run polling."""

import argparse
import logging
import sys
from typing import Any, Dict

import structlog
from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application

from .background.tick import TickDriver
from .bot.conversation import ConversationService, PersonaLoader
from .bot.handlers.commands import CommandRouter
from .bot.orchestrator import MessageOrchestrator
from .brain.budget import LadderDefaults
from .brain.context import BrainContext
from .brain.quick_responses import QuickResponseRouter
from .calendar.digest import DigestScheduler
from .calendar.pending import PendingContactTags
from .calendar.repository import CalendarRepository
from .config.settings import ConfigurationError, Settings, load_settings
from .llm.chat_provider import ChatProvider
from .llm.web_search import WebSearch
from .memory.extractor import FactExtractor
from .memory.manager import MemoryManager
from .notifications.channel import TelegramChannel
from .sessions.store import SessionStore
from .storage.json_store import JsonStore

logger = structlog.get_logger()


def configure_logging(level: str) -> None:
    """Route stdlib logging and structlog to the console at ``level``."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    # python-telegram-bot polls through httpx; one line per request is noise
    logging.getLogger("httpx").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_components(settings: Settings, app: Application) -> Dict[str, Any]:
    """Construct every long-lived component once."""
    tz = settings.tz
    store = JsonStore(settings.workspace_dir)

    brain = BrainContext.create(
        daily_budget=settings.daily_token_budget,
        ladder=LadderDefaults(
            model=settings.model_default,
            cheap_model=settings.model_cheap,
            max_output_tokens=settings.max_output_tokens,
            max_history=settings.max_history,
        ),
        tz=tz,
    )
    provider = ChatProvider(
        api_key=settings.openai_api_key_str,
        base_url=settings.openai_base_url,
        timeout=settings.request_timeout_seconds,
        max_retries=settings.max_retries,
        web_search=WebSearch(settings.tavily_api_key_str),
    )
    sessions = SessionStore(
        store,
        max_history=settings.max_history,
        max_cached=settings.max_cached_sessions,
        flush_delay=settings.session_flush_delay_seconds,
    )
    memory = MemoryManager(
        store,
        FactExtractor(provider, settings.model_cheap, on_usage=brain.budget.charge),
    )
    calendar = CalendarRepository(store)
    pending_tags = PendingContactTags()
    channel = TelegramChannel(app.bot)

    conversation = ConversationService(
        brain,
        sessions,
        provider,
        memory=memory,
        persona=PersonaLoader(settings.workspace_dir),
        bot_name=settings.bot_name,
    )
    tick = TickDriver(
        brain,
        channel.send,
        sessions=sessions,
        digests=DigestScheduler(calendar, tz),
        pending_tags=pending_tags,
        interval=settings.tick_interval_seconds,
    )

    return {
        "brain": brain,
        "sessions": sessions,
        "memory_manager": memory,
        "calendar": calendar,
        "pending_tags": pending_tags,
        "channel": channel,
        "conversation": conversation,
        "quick_router": QuickResponseRouter(brain),
        "commands": CommandRouter(brain, sessions, calendar, pending_tags, memory),
        "tick": tick,
    }


def create_application(settings: Settings) -> Application:
    """Build the Telegram application with handlers and lifecycle hooks."""
    deps: Dict[str, Any] = {}
    orchestrator = MessageOrchestrator(settings, deps)

    async def post_init(application: Application) -> None:
        await deps["tick"].start()
        try:
            await application.bot.set_my_commands(
                await orchestrator.get_bot_commands()
            )
        except TelegramError as exc:
            logger.warning("Failed to register bot commands", error=str(exc))
        logger.info(
            "Bot started",
            workspace=str(settings.workspace_dir),
            timezone=settings.timezone,
            daily_token_budget=settings.daily_token_budget,
            web_search=settings.tavily_api_key_str is not None,
        )

    async def post_shutdown(application: Application) -> None:
        await deps["tick"].stop()
        deps["sessions"].flush_all()
        logger.info("Bot stopped")

    app = (
        Application.builder()
        .token(settings.telegram_bot_token_str)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    deps.update(build_components(settings, app))
    orchestrator.register_handlers(app)
    return app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Budget-aware Telegram assistant")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    configure_logging("DEBUG" if args.debug else settings.log_level)
    app = create_application(settings)
    app.run_polling(allowed_updates=Update.ALL_TYPES)
    return 0


if __name__ == "__main__":
    sys.exit(main())
