"""Inference provider interface and shared types.

Decouples the conversation service and memory extraction from any specific
LLM SDK: anything that can turn a system prompt plus history into text and
token counts can be plugged in.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol


@dataclass(frozen=True)
class CompletionParams:
    """Per-call knobs, normally produced by the budget ladder.

    ``use_tools`` offers the provider's configured tools to the model.
    """

    model: str
    max_output_tokens: int
    temperature: float = 0.7
    use_tools: bool = False


@dataclass
class CompletionResult:
    """Unified response from any inference provider.

    Token counts cover every round of a tool-calling exchange.
    """

    text: str
    input_tokens: int
    output_tokens: int
    model: str
    tool_calls: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class InferenceError(Exception):
    """Provider call failed.

    ``retry_after`` is the provider's suggested wait in seconds, when known.
    """

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        is_rate_limit: bool = False,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.is_rate_limit = is_rate_limit


class InferenceProvider(Protocol):
    """Protocol every inference backend implements."""

    async def complete(
        self,
        system_prompt: str,
        history: List[Dict[str, str]],
        params: CompletionParams,
    ) -> CompletionResult:
        """Generate the next assistant message.

        Args:
            system_prompt: Instructions placed before the history.
            history: Chronological ``{"role", "content"}`` messages.
            params: Model and output limits for this call.

        Returns:
            CompletionResult with the reply text and token usage.

        Raises:
            InferenceError: On any provider failure.
        """
        ...
