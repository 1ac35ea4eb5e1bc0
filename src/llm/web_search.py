"""Web search tool backed by the Tavily search API.

Tool failures are returned as text rather than raised: the model reads
the result and can tell the user the search did not work.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

logger = structlog.get_logger()

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
MAX_RESULTS = 5
SEARCH_TIMEOUT_SECONDS = 15.0

NO_RESULTS_MESSAGE = "No results found."
NOT_CONFIGURED_MESSAGE = "Web search not available (no API key configured)"

WEB_SEARCH_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "web_search",
        "description": (
            "Search the web for current information. Use this when the user "
            "asks about recent events, news, current prices, weather, or "
            "anything that requires up-to-date information."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"},
            },
            "required": ["query"],
        },
    },
}


def format_results(results: List[Dict[str, Any]]) -> str:
    """Numbered ``[n] title / content / Source: url`` blocks."""
    if not results:
        return NO_RESULTS_MESSAGE
    return "\n\n".join(
        f"[{i}] {r.get('title', '')}\n{r.get('content', '')}\nSource: {r.get('url', '')}"
        for i, r in enumerate(results, start=1)
    )


class WebSearch:
    """Async Tavily client."""

    def __init__(
        self,
        api_key: Optional[str],
        url: str = TAVILY_SEARCH_URL,
        timeout: float = SEARCH_TIMEOUT_SECONDS,
        max_results: int = MAX_RESULTS,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self.max_results = max_results

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str) -> str:
        if not self.api_key:
            return NOT_CONFIGURED_MESSAGE

        payload = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": "basic",
            "max_results": self.max_results,
        }
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, json=payload) as resp:
                    if resp.status != 200:
                        raise aiohttp.ClientError(f"Tavily API error: {resp.status}")
                    data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("Web search failed", query=query, error=str(exc))
            return f"Search failed: {exc}"

        results = (data.get("results") or []) if isinstance(data, dict) else []
        logger.info("Web search finished", query=query, results=len(results))
        return format_results(results)
