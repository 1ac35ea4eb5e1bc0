"""Persistent memory for user facts and conversation summaries."""

from .extractor import FactExtractor
from .manager import MemoryManager
from .models import UserMemory

__all__ = ["FactExtractor", "MemoryManager", "UserMemory"]
