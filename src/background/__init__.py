"""Background tick driver."""

from .tick import TickDriver

__all__ = ["TickDriver"]
