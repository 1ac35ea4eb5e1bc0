"""Outbound message delivery."""

from .channel import TelegramChannel

__all__ = ["TelegramChannel"]
