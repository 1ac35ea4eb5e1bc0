"""Telegram bot: orchestration, commands and the conversation service."""
