"""Session store -- bounded in-memory cache with debounced persistence.

The cache holds at most ``max_cached`` sessions; the least recently active
ones are evicted from memory only, their durable copy stays on disk and is
reloaded transparently on next access. Writes are debounced per
conversation: the first append schedules a flush ``flush_delay`` seconds
later and further appends inside that window just mutate the in-memory
session, so the single write carries the final state.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError

from ..storage.json_store import JsonStore, StorageError
from .models import Session, SessionMessage

logger = structlog.get_logger()

MAX_CACHED_SESSIONS = 20
FLUSH_DELAY_SECONDS = 1.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Per-conversation message history."""

    def __init__(
        self,
        storage: JsonStore,
        max_history: int,
        max_cached: int = MAX_CACHED_SESSIONS,
        flush_delay: float = FLUSH_DELAY_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._max_history = max_history
        self._max_cached = max_cached
        self._flush_delay = flush_delay
        self._clock = clock
        self._cache: Dict[str, Session] = {}
        # Sessions with a scheduled flush, kept even if evicted from the cache
        self._unflushed: Dict[str, Session] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._cache

    @property
    def cached_ids(self) -> List[str]:
        return list(self._cache)

    def has_pending_flush(self, conversation_id: str) -> bool:
        return conversation_id in self._timers

    @staticmethod
    def storage_key(conversation_id: str) -> str:
        return f"sessions/{conversation_id}"

    def get(self, conversation_id: str) -> Session:
        """Return the session, loading or creating it on a cache miss."""
        session = self._cache.get(conversation_id)
        if session is not None:
            return session

        session = self._unflushed.get(conversation_id)
        if session is None:
            session = self._load(conversation_id)
        self._cache[conversation_id] = session
        self.evict(protect=conversation_id)
        return session

    def history(self, conversation_id: str, limit: int = 0) -> List[Dict[str, str]]:
        return self.get(conversation_id).history(limit)

    def append(self, conversation_id: str, role: str, content: str) -> Session:
        """Add a message, trim to ``max_history`` and schedule a flush."""
        session = self.get(conversation_id)
        now = self._clock()
        session.messages.append(SessionMessage(role=role, content=content, timestamp=now))
        session.total_messages += 1
        session.last_activity = now

        if len(session.messages) > self._max_history:
            session.messages = session.messages[-self._max_history :]

        self._schedule_flush(conversation_id, session)
        return session

    def clear(self, conversation_id: str) -> None:
        """Forget a session in memory and on disk, cancelling any pending flush."""
        timer = self._timers.pop(conversation_id, None)
        if timer is not None:
            timer.cancel()
        self._unflushed.pop(conversation_id, None)
        self._cache.pop(conversation_id, None)

        try:
            self._storage.delete(self.storage_key(conversation_id))
        except StorageError as exc:
            logger.error(
                "Failed to delete session",
                conversation_id=conversation_id,
                error=str(exc),
            )

    def evict(self, protect: Optional[str] = None) -> int:
        """Drop least recently active sessions beyond ``max_cached``."""
        excess = len(self._cache) - self._max_cached
        if excess <= 0:
            return 0

        candidates = sorted(
            (session.last_activity, conversation_id)
            for conversation_id, session in self._cache.items()
            if conversation_id != protect
        )
        evicted = [conversation_id for _, conversation_id in candidates[:excess]]
        for conversation_id in evicted:
            del self._cache[conversation_id]

        logger.debug("Evicted sessions from cache", count=len(evicted))
        return len(evicted)

    def flush_all(self) -> None:
        """Write every pending session now (used on shutdown)."""
        for conversation_id in list(self._unflushed):
            timer = self._timers.pop(conversation_id, None)
            if timer is not None:
                timer.cancel()
            self._flush(conversation_id)

    def _load(self, conversation_id: str) -> Session:
        raw = self._storage.read_json(self.storage_key(conversation_id))
        if raw is None:
            return Session(last_activity=self._clock())
        try:
            return Session.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "Discarding unreadable session",
                conversation_id=conversation_id,
                error=str(exc),
            )
            return Session(last_activity=self._clock())

    def _schedule_flush(self, conversation_id: str, session: Session) -> None:
        self._unflushed[conversation_id] = session
        if conversation_id in self._timers:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._flush(conversation_id)
            return
        self._timers[conversation_id] = loop.call_later(
            self._flush_delay, self._flush, conversation_id
        )

    def _flush(self, conversation_id: str) -> None:
        self._timers.pop(conversation_id, None)
        session = self._unflushed.pop(conversation_id, None)
        if session is None:
            return
        try:
            self._storage.write_json(
                self.storage_key(conversation_id), session.to_storage()
            )
            logger.debug(
                "Session flushed",
                conversation_id=conversation_id,
                messages=len(session.messages),
            )
        except StorageError as exc:
            logger.error(
                "Failed to save session",
                conversation_id=conversation_id,
                error=str(exc),
            )
