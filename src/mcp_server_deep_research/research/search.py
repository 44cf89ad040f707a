"""Web search providers returning ranked SearchResult documents."""

import logging
from typing import TYPE_CHECKING, Any, Protocol

import pydantic

from ..config import SearchSettings
from ..exceptions import SearchError
from .models import SearchResult
from .prompts import get_browser_search_task

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel

logger = logging.getLogger(__name__)


class SearchProvider(Protocol):
    """Turns a query string into a small set of ranked documents."""

    async def search(self, query: str) -> list[SearchResult]: ...


def _to_result(title: Any, url: Any, content: Any) -> SearchResult | None:
    """Build a SearchResult, dropping documents without a usable URL."""
    try:
        return SearchResult(title=str(title or url or ""), url=str(url or ""), content=str(content or ""))
    except pydantic.ValidationError:
        logger.warning(f"Dropping search hit with invalid URL: {url!r}")
        return None


class TavilySearchProvider:
    """Search via the Tavily API, returning page text for each hit."""

    def __init__(self, api_key: str, max_results: int = 1, client: Any = None):
        if client is None:
            from tavily import AsyncTavilyClient

            client = AsyncTavilyClient(api_key=api_key)
        self.client = client
        self.max_results = max_results

    async def search(self, query: str) -> list[SearchResult]:
        try:
            response = await self.client.search(
                query,
                max_results=self.max_results,
                include_raw_content=True,
            )
        except Exception as e:
            raise SearchError(f"Tavily search failed for '{query}': {e}") from e

        results: list[SearchResult] = []
        for hit in response.get("results", [])[: self.max_results]:
            result = _to_result(hit.get("title"), hit.get("url"), hit.get("raw_content") or hit.get("content"))
            if result is not None:
                results.append(result)
        logger.debug(f"Tavily returned {len(results)} result(s) for '{query}'")
        return results


class BrowserSearchProvider:
    """Search by driving a real browser with a browser-use agent.

    Yields at most one document: the last page the agent visited, with the
    agent's summary of it as content.
    """

    def __init__(self, llm: "BaseChatModel", headless: bool = True, max_steps: int = 15):
        self.llm = llm
        self.headless = headless
        self.max_steps = max_steps

    async def search(self, query: str) -> list[SearchResult]:
        from browser_use import Agent, BrowserProfile

        try:
            agent = Agent(
                task=get_browser_search_task(query),
                llm=self.llm,
                browser_profile=BrowserProfile(headless=self.headless),
                max_steps=self.max_steps,
            )
            history = await agent.run()
        except Exception as e:
            raise SearchError(f"Browser search failed for '{query}': {e}") from e

        summary = history.final_result() or ""
        for step in reversed(history.history):
            state = getattr(step, "state", None)
            url = getattr(state, "url", None)
            if url and url.startswith("http"):
                result = _to_result(getattr(state, "title", None), url, summary)
                return [result] if result else []
        return []


def get_search_provider(search_settings: SearchSettings, llm: "BaseChatModel | None" = None) -> SearchProvider:
    """Create the configured search provider.

    Raises:
        SearchError: If the provider cannot be configured.
    """
    match search_settings.provider:
        case "tavily":
            api_key = search_settings.get_tavily_api_key()
            if not api_key:
                raise SearchError("Tavily search requires TAVILY_API_KEY or MCP_SEARCH_TAVILY_API_KEY to be set.")
            return TavilySearchProvider(api_key=api_key, max_results=search_settings.results_per_search)
        case "browser":
            if llm is None:
                raise SearchError("Browser search requires an LLM to drive the agent.")
            return BrowserSearchProvider(llm, headless=search_settings.headless, max_steps=search_settings.browser_max_steps)
        case _:
            raise SearchError(f"Unsupported search provider: {search_settings.provider}")
