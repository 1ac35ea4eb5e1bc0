"""Conversation sessions."""

from .models import Session, SessionMessage
from .store import SessionStore

__all__ = ["Session", "SessionMessage", "SessionStore"]
