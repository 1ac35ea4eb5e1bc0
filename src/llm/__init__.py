"""Inference provider abstraction and the OpenAI-compatible client."""

from .chat_provider import ChatProvider
from .interface import (
    CompletionParams,
    CompletionResult,
    InferenceError,
    InferenceProvider,
)

__all__ = [
    "ChatProvider",
    "CompletionParams",
    "CompletionResult",
    "InferenceError",
    "InferenceProvider",
]
