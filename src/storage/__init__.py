"""Durable storage."""

from .json_store import JsonStore, StorageError

__all__ = ["JsonStore", "StorageError"]
