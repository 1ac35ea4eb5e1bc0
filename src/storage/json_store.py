"""Durable key/value storage backed by small JSON files.

Keys are slash-separated (``sessions/12345``); each segment is sanitised
and the value is written to ``<root>/<segments>.json``. Reads never raise:
a missing, unreadable or corrupt file is reported as absent.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Optional

import structlog

logger = structlog.get_logger()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class StorageError(Exception):
    """Raised when a value cannot be written to durable storage."""


class JsonStore:
    """JSON document store rooted at a workspace directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        """Map a key to its file path."""
        parts = [_UNSAFE_CHARS.sub("_", part) for part in key.split("/") if part]
        if not parts:
            raise ValueError(f"Invalid storage key: {key!r}")
        parts[-1] = f"{parts[-1]}.json"
        return self.root.joinpath(*parts)

    def read_json(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when absent or unreadable."""
        path = self.path_for(key)
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read stored value", key=key, error=str(exc))
            return None

    def write_json(self, key: str, value: Any) -> None:
        """Write a value, replacing any previous one atomically."""
        path = self.path_for(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(value, fh, separators=(",", ":"), ensure_ascii=False)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        """Delete a stored value. Returns True if something was removed."""
        path = self.path_for(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
