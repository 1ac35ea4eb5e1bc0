"""OpenAI-compatible chat provider.

Uses the openai SDK, so any vendor exposing the chat completions API
(OpenAI, DeepSeek, local gateways) works by pointing ``base_url`` at it.
When a web search client is configured and the call asks for tools, the
model may request searches; each request is answered and the model is
called again until it replies with text.
"""

import json
import time
from typing import Any, Dict, List, Optional

import openai
import structlog
from openai import AsyncOpenAI

from .interface import CompletionParams, CompletionResult, InferenceError
from .web_search import WEB_SEARCH_TOOL, WebSearch

logger = structlog.get_logger()

MAX_TOOL_ROUNDS = 3


def _retry_after(exc: openai.APIStatusError) -> Optional[float]:
    """Read the Retry-After header (seconds) from a failed response."""
    header = exc.response.headers.get("retry-after")
    if not header:
        return None
    try:
        return max(0.0, float(header))
    except ValueError:
        return None


class ChatProvider:
    """Chat completions client implementing ``InferenceProvider``."""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        web_search: Optional[WebSearch] = None,
    ) -> None:
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.web_search = web_search if web_search and web_search.enabled else None

    @property
    def tools(self) -> List[Dict[str, Any]]:
        return [WEB_SEARCH_TOOL] if self.web_search else []

    async def complete(
        self,
        system_prompt: str,
        history: List[Dict[str, str]],
        params: CompletionParams,
    ) -> CompletionResult:
        """Send system prompt + history, return the reply and token usage."""
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            *history,
        ]
        tools = self.tools if params.use_tools else []
        start = time.monotonic()
        input_tokens = 0
        output_tokens = 0
        tool_calls = 0

        for round_number in range(MAX_TOOL_ROUNDS + 1):
            request: Dict[str, Any] = {}
            if tools:
                request["tools"] = tools
                # Last round must answer in text
                if round_number == MAX_TOOL_ROUNDS:
                    request["tool_choice"] = "none"

            response = await self._create(messages, params, **request)
            if not response.choices:
                logger.error("Provider returned no choices", model=params.model)
                raise InferenceError("Provider returned no choices")

            usage = response.usage
            input_tokens += usage.prompt_tokens if usage else 0
            output_tokens += usage.completion_tokens if usage else 0

            message = response.choices[0].message
            requested = (message.tool_calls or []) if tools else []
            if not requested or round_number == MAX_TOOL_ROUNDS:
                break

            messages.append(
                {
                    "role": "assistant",
                    "content": message.content,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.function.name,
                                "arguments": call.function.arguments,
                            },
                        }
                        for call in requested
                    ],
                }
            )
            for call in requested:
                tool_calls += 1
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": await self._run_tool(
                            call.function.name, call.function.arguments
                        ),
                    }
                )

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.debug(
            "Completion finished",
            model=response.model or params.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            tool_calls=tool_calls,
            duration_ms=duration_ms,
        )

        return CompletionResult(
            text=message.content or "",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=response.model or params.model,
            tool_calls=tool_calls,
        )

    async def _create(
        self, messages: List[Dict[str, Any]], params: CompletionParams, **extra: Any
    ) -> Any:
        try:
            return await self.client.chat.completions.create(
                model=params.model,
                messages=list(messages),
                max_tokens=params.max_output_tokens,
                temperature=params.temperature,
                **extra,
            )
        except openai.RateLimitError as exc:
            retry_after = _retry_after(exc)
            logger.warning(
                "Provider rate limited", model=params.model, retry_after=retry_after
            )
            raise InferenceError(
                str(exc), retry_after=retry_after, is_rate_limit=True
            ) from exc
        except openai.APIError as exc:
            logger.error("Provider call failed", model=params.model, error=str(exc))
            raise InferenceError(str(exc)) from exc

    async def _run_tool(self, name: str, arguments: str) -> str:
        if name != WEB_SEARCH_TOOL["function"]["name"] or not self.web_search:
            logger.warning("Model requested unknown tool", tool=name)
            return f"Unknown tool: {name}"

        try:
            query = str(json.loads(arguments or "{}").get("query", "")).strip()
        except (ValueError, AttributeError):
            query = ""
        if not query:
            return "Search failed: no query given"

        logger.info("Running web search", query=query)
        return await self.web_search.search(query)
