"""Budget-aware Telegram assistant."""

__version__ = "0.1.0"
